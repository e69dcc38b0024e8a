# camera.py
"""A thin wrapper around cv2.VideoCapture used as the tracker's frame source."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import cv2
import numpy as np

from blob_tracking.config import CameraConfig

logger = logging.getLogger(__name__)

CaptureFactory = Callable[[int, int], "cv2.VideoCapture"]


class DeviceUnavailable(RuntimeError):
    """Raised when the camera device cannot be opened."""


def default_capture(index: int, backend: int) -> cv2.VideoCapture:
    return cv2.VideoCapture(index, backend)


class FrameSource:
    def __init__(
        self,
        config: CameraConfig | None = None,
        capture_factory: CaptureFactory = default_capture,
    ) -> None:
        self.config = config or CameraConfig()
        self._factory = capture_factory
        self.cap: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()

        # Exposed runtime values
        self.device_index: Optional[int] = None
        self.actual_width = 0
        self.actual_height = 0
        self.actual_fps = 0.0

    # --------------- Public API ---------------------
    def open(self, index: int | None = None) -> bool:
        """Open device ``index`` (defaults to the configured one). Returns success."""
        index = self.config.device_index if index is None else index
        if index < 0:
            logger.error("Invalid camera index %d", index)
            return False

        with self._lock:
            if self.cap is not None:
                if self.device_index == index and self.cap.isOpened():
                    return True
                self._release_locked()

            backend = cv2.CAP_V4L2 if self.config.use_v4l2 else cv2.CAP_ANY
            logger.info("Starting camera with ID %d", index)
            cap = self._factory(index, backend)
            if cap is None or not cap.isOpened():
                logger.error("Could not open device %d", index)
                if cap is not None:
                    cap.release()
                return False

            # Apply settings
            if self.config.width > 0:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
            if self.config.height > 0:
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
            if self.config.fps_request > 0:
                cap.set(cv2.CAP_PROP_FPS, self.config.fps_request)

            # Query what we actually got
            self.actual_width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            self.actual_height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            self.actual_fps = float(cap.get(cv2.CAP_PROP_FPS))
            self.cap = cap
            self.device_index = index

        logger.info(
            "Camera %d is running (%dx%d@%.1f FPS)",
            index, self.actual_width, self.actual_height, self.actual_fps,
        )
        return True

    def read(self) -> Optional[np.ndarray]:
        """Blocking single-frame read. ``None`` means no frame this call."""
        cap = self.cap
        if cap is None or not cap.isOpened():
            return None
        ret, frame = cap.read()
        if not ret or frame is None or frame.size == 0:
            return None
        return frame

    def is_opened(self) -> bool:
        cap = self.cap
        return bool(cap is not None and cap.isOpened())

    def close(self) -> None:
        """Release the device. Safe to call when already closed."""
        with self._lock:
            self._release_locked()

    def _release_locked(self) -> None:
        if self.cap is not None:
            logger.info("Releasing capture device %s", self.device_index)
            self.cap.release()
            self.cap = None
            self.device_index = None

    # --------------- Context ---------------------
    def __enter__(self) -> "FrameSource":
        if not self.open():
            raise DeviceUnavailable(f"camera {self.config.device_index} unavailable")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_opened() else "closed"
        return f"<FrameSource device={self.config.device_index!r} ({state})>"
