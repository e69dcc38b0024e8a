# blob_tracking/__init__.py
"""Color-blob tracking package - re-export high-level API."""
from .processor import TrackingProcessor         # noqa: F401
from .config import (                            # noqa: F401
    CameraConfig, ColorRange, ConfigurationError, DecisionConfig,
    SchedulerConfig, SegmentationConfig,
)
from .camera import DeviceUnavailable, FrameSource  # noqa: F401
from .common import BoundingRect, Direction, MotionTrend, TrackerState  # noqa: F401
