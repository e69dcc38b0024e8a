# common.py
"""Objects that are shared across multiple modules."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Tuple

import numpy as np


class Direction(IntEnum):
    LEFT = -1
    CENTERED = 0
    RIGHT = 1

    @property
    def label(self) -> str:
        return {
            Direction.LEFT: "turn left",
            Direction.CENTERED: "centered",
            Direction.RIGHT: "turn right",
        }[self]


class MotionTrend(str, Enum):
    MOVING_LEFT = "moving left"
    MOVING_RIGHT = "moving right"


@dataclass(frozen=True)
class BoundingRect:
    """Axis-aligned rectangle in frame-pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def tl(self) -> Tuple[int, int]:
        return (self.x, self.y)

    @property
    def br(self) -> Tuple[int, int]:
        return (self.x + self.width, self.y + self.height)

    def intersects(self, other: "BoundingRect") -> bool:
        """True iff the interiors overlap on both axes; touching edges do not count."""
        if self.width <= 0 or self.height <= 0 or other.width <= 0 or other.height <= 0:
            return False
        return (
            self.x < other.x + other.width
            and other.x < self.x + self.width
            and self.y < other.y + other.height
            and other.y < self.y + self.height
        )


@dataclass(frozen=True)
class TrackerState:
    """
    Per-cycle snapshot of the decision engine.
    Frozen, so readers on other threads always get a consistent copy.
    """
    direction: Direction = Direction.CENTERED
    object_present: bool = False
    last_accepted: Optional[BoundingRect] = None


@dataclass(frozen=True)
class Annotation:
    rect: BoundingRect
    color: Tuple[int, int, int]
    thickness: int   # cv2 convention: -1 fills the rectangle


@dataclass
class CycleOutput:
    """Everything one completed cycle hands to the rendering/telemetry sinks."""
    frame: np.ndarray
    status: str
    state: TrackerState
    motion: Optional[MotionTrend] = None
    mask: Optional[np.ndarray] = None
    morph: Optional[np.ndarray] = None
    index: int = 0


@dataclass
class CycleResult:
    """Outcome of a single tick: success with output, a skip, or a failure."""
    output: Optional[CycleOutput] = None
    reason: str = ""
    failed: bool = False

    @property
    def ok(self) -> bool:
        return self.output is not None

    @classmethod
    def success(cls, output: CycleOutput) -> "CycleResult":
        return cls(output=output)

    @classmethod
    def skipped(cls, reason: str) -> "CycleResult":
        return cls(reason=reason)

    @classmethod
    def failure(cls, reason: str) -> "CycleResult":
        return cls(reason=reason, failed=True)
