# decision.py
"""Steering decision (left / centered / right) plus motion-trend telemetry."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from blob_tracking.common import (
    Annotation,
    BoundingRect,
    Direction,
    MotionTrend,
    TrackerState,
)
from blob_tracking.config import DecisionConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    direction: Direction
    object_present: bool
    state: TrackerState
    annotations: List[Annotation] = field(default_factory=list)
    motion: Optional[MotionTrend] = None


def center_target(frame_size: Tuple[int, int], width: int = 200, height: int = 100) -> BoundingRect:
    """Fixed-size rectangle centered in a ``(width, height)`` frame."""
    fw, fh = frame_size
    return BoundingRect(fw // 2 - width // 2, fh // 2 - height // 2, width, height)


def steer(candidate: BoundingRect, target: BoundingRect) -> Direction:
    if candidate.intersects(target):
        return Direction.CENTERED
    if candidate.x > target.x + target.width:
        return Direction.RIGHT
    # Anything else, including blobs above/below the target, steers left
    return Direction.LEFT


class DecisionEngine:
    """
    Memoryless for direction: every cycle starts from the current candidates.
    Only ``last_accepted`` crosses cycles, and only for motion trend.
    """

    def __init__(self, cfg: DecisionConfig | None = None) -> None:
        self.cfg = cfg or DecisionConfig()
        self.cfg.validate()
        self.state = TrackerState()

    # ------------------------------------------------------------------ #
    #   H E L P E R S
    # ------------------------------------------------------------------ #
    def qualifies(self, rect: BoundingRect) -> bool:
        return (
            rect.width > self.cfg.min_bbox_width
            and rect.height > self.cfg.min_bbox_height
        )

    def _select(self, candidates: Sequence[BoundingRect]) -> List[BoundingRect]:
        if self.cfg.selection == "largest" and candidates:
            # max() keeps the first of equal areas, so ties resolve by discovery order
            return [max(candidates, key=lambda r: r.area)]
        return list(candidates)

    def motion_trend(
        self, previous: Optional[BoundingRect], current: Optional[BoundingRect]
    ) -> Optional[MotionTrend]:
        if previous is None or current is None:
            return None
        delta = current.x - previous.x
        if abs(delta) <= self.cfg.motion_threshold_px:
            return None
        return MotionTrend.MOVING_RIGHT if delta > 0 else MotionTrend.MOVING_LEFT

    def _indicator(self, direction: Direction, frame_size: Tuple[int, int]) -> Optional[Annotation]:
        fw, fh = frame_size
        strip = min(self.cfg.indicator_width, fw)
        if direction is Direction.RIGHT:
            rect = BoundingRect(fw - strip, 0, strip, fh)
        elif direction is Direction.LEFT:
            rect = BoundingRect(0, 0, strip, fh)
        else:
            return None
        return Annotation(rect, self.cfg.indicator_color, -1)

    # ------------------------------------------------------------------ #
    #   D E C I D E
    # ------------------------------------------------------------------ #
    def decide(
        self,
        candidates: Sequence[BoundingRect],
        frame_size: Tuple[int, int],
        state: TrackerState | None = None,
    ) -> Decision:
        """
        Pure decision step. ``state`` defaults to the engine's own state;
        the engine's state is *not* updated here (see :meth:`update`).
        """
        prev = self.state if state is None else state
        cfg = self.cfg
        target = center_target(frame_size, cfg.target_width, cfg.target_height)

        annotations = [Annotation(target, cfg.target_color, cfg.target_thickness)]
        direction = Direction.CENTERED
        accepted: Optional[BoundingRect] = None

        # Last evaluated candidate sets the direction
        for rect in self._select(candidates):
            direction = steer(rect, target)
            if self.qualifies(rect):
                accepted = rect
                annotations.append(Annotation(rect, cfg.bbox_color, cfg.bbox_thickness))

        indicator = self._indicator(direction, frame_size)
        if indicator is not None:
            annotations.append(indicator)

        present = len(candidates) > 0
        motion = self.motion_trend(prev.last_accepted, accepted)
        new_state = TrackerState(
            direction=direction, object_present=present, last_accepted=accepted
        )
        return Decision(direction, present, new_state, annotations, motion)

    def update(
        self, candidates: Sequence[BoundingRect], frame_size: Tuple[int, int]
    ) -> Decision:
        """Decide against the engine's own state and commit the result."""
        return self.commit(self.decide(candidates, frame_size, self.state))

    def commit(self, decision: Decision) -> Decision:
        """Make ``decision`` the engine's current state."""
        if decision.motion is not None:
            logger.debug("Motion trend: %s", decision.motion.value)
        self.state = decision.state
        return decision

    def reset(self) -> None:
        self.state = TrackerState()
