# processor.py
"""Glue logic that wires camera -> segmentation -> decision -> sinks."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

import numpy as np

from blob_tracking.camera import CaptureFactory, FrameSource, default_capture
from blob_tracking.common import CycleOutput, CycleResult, TrackerState
from blob_tracking.config import (
    CameraConfig,
    ColorRange,
    DecisionConfig,
    SchedulerConfig,
    SegmentationConfig,
    SharedColorRange,
)
from blob_tracking.decision import Decision, DecisionEngine
from blob_tracking.imaging import draw_annotations
from blob_tracking.scheduler import AcquisitionHandle, AcquisitionScheduler
from blob_tracking.segmentation import SegmentationPipeline
from blob_tracking.sinks import Sink, SinkFanout

logger = logging.getLogger(__name__)


def status_text(decision: Decision, colors: ColorRange) -> str:
    if not decision.object_present:
        label = "Object not present"
    else:
        label = decision.direction.label
    if decision.motion is not None:
        label = f"{label} ({decision.motion.value})"
    return f"{label} | {colors.describe()}"


class TrackingProcessor:
    """The main high-level orchestrator."""

    def __init__(
        self,
        camera_cfg: CameraConfig | None = None,
        segmentation_cfg: SegmentationConfig | None = None,
        decision_cfg: DecisionConfig | None = None,
        scheduler_cfg: SchedulerConfig | None = None,
        color_range: ColorRange | None = None,
        sinks: Iterable[Sink] = (),
        capture_factory: CaptureFactory = default_capture,
    ) -> None:
        # Save configs
        self.camera_cfg = camera_cfg or CameraConfig()
        self.scheduler_cfg = scheduler_cfg or SchedulerConfig()

        # Build sub-systems
        self.source = FrameSource(self.camera_cfg, capture_factory)
        self.pipeline = SegmentationPipeline(segmentation_cfg)
        self.engine = DecisionEngine(decision_cfg)
        self.colors = SharedColorRange(color_range)
        self.sinks = SinkFanout(sinks)
        self.scheduler = AcquisitionScheduler(self.source, self.process_frame, self.sinks)

        self.total_frames = 0

    # ---------------------------------------------------------------------
    #                         Start / stop
    # ---------------------------------------------------------------------
    def start(self, camera_index: Optional[int] = None, fps: Optional[float] = None) -> int:
        """Begin tracking. Returns the period in ms; see ``AcquisitionScheduler.start``."""
        index = self.camera_cfg.device_index if camera_index is None else camera_index
        fps = self.scheduler_cfg.fps if fps is None else fps
        return self.scheduler.start(index, fps, on_start=self._reset)

    def _reset(self) -> None:
        # Runs under the scheduler lock, before the worker exists
        self.engine.reset()
        self.total_frames = 0

    def stop(self) -> None:
        self.scheduler.stop()
        logger.info("Tracking stopped. Total frames: %d", self.total_frames)

    @property
    def running(self) -> bool:
        return self.scheduler.active

    @property
    def handle(self) -> AcquisitionHandle:
        return self.scheduler.handle

    @property
    def state(self) -> TrackerState:
        # Frozen dataclass, replaced wholesale each cycle
        return self.engine.state

    def set_color_range(self, value: ColorRange) -> None:
        self.colors.set(value)

    def __enter__(self) -> "TrackingProcessor":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # ---------------------------------------------------------------------
    #                          Per-frame cycle
    # ---------------------------------------------------------------------
    def process_frame(self) -> CycleResult:
        frame = self.source.read()
        if frame is None:
            return CycleResult.skipped("no frame from device")
        return self.process(frame)

    def process(self, frame: np.ndarray) -> CycleResult:
        """Run one segmentation + decision cycle on ``frame``."""
        try:
            colors = self.colors.get()  # one snapshot for the whole cycle
            seg = self.pipeline.run(frame, colors)
            h, w = frame.shape[:2]
            decision = self.engine.decide(seg.rects, (w, h))
            annotated = draw_annotations(frame.copy(), decision.annotations)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Cycle failed", exc_info=True)
            return CycleResult.failure(f"{type(exc).__name__}: {exc}")

        # Committed only once the whole cycle has succeeded
        self.engine.commit(decision)
        self.total_frames += 1
        diagnostics = self.scheduler_cfg.diagnostics
        return CycleResult.success(
            CycleOutput(
                frame=annotated,
                status=status_text(decision, colors),
                state=decision.state,
                motion=decision.motion,
                mask=seg.mask if diagnostics else None,
                morph=seg.morph if diagnostics else None,
                index=self.total_frames,
            )
        )
