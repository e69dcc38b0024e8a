# config.py
"""Typed configuration blobs for the whole system."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, Literal, Tuple

HSV = Tuple[int, int, int]
BGR = Tuple[int, int, int]

# H ranges 0-180, S and V range 0-255 (OpenCV 8-bit HSV)
HSV_MAX: HSV = (180, 255, 255)


class ConfigurationError(ValueError):
    """Raised when a configuration value is rejected before it is applied."""


def period_ms(fps: float) -> int:
    """
    Convert a frames-per-second setting into a scheduling period in ms.
    Halves round up (80 fps -> 13 ms), never below 1 ms.
    """
    if fps is None or fps <= 0:
        raise ConfigurationError(f"fps must be positive, got {fps!r}")
    return max(1, int(1000.0 / fps + 0.5))


@dataclass
class CameraConfig:
    device_index: int = 0
    width: int = 640
    height: int = 480
    fps_request: int = 0        # 0 = keep driver default
    use_v4l2: bool = False


@dataclass
class SegmentationConfig:
    blur_kernel: int = 7
    # Erode with the small element, then dilate with the large one
    erode_kernel: int = 12
    erode_iterations: int = 2
    dilate_kernel: int = 24
    dilate_iterations: int = 2


@dataclass
class DecisionConfig:
    target_width: int = 200
    target_height: int = 100
    min_bbox_width: int = 20
    min_bbox_height: int = 20
    motion_threshold_px: int = 20
    selection: Literal["last", "largest"] = "last"
    # Drawing (BGR)
    bbox_color: BGR = (255, 0, 0)
    bbox_thickness: int = 4
    target_color: BGR = (0, 0, 255)
    target_thickness: int = 10
    indicator_color: BGR = (0, 165, 255)
    indicator_width: int = 20

    def validate(self) -> None:
        if self.selection not in ("last", "largest"):
            raise ConfigurationError(f"unknown selection mode {self.selection!r}")
        if self.target_width <= 0 or self.target_height <= 0:
            raise ConfigurationError("center target must have a positive size")
        if self.motion_threshold_px < 0:
            raise ConfigurationError("motion threshold must be >= 0")


@dataclass
class SchedulerConfig:
    fps: float = 10.0
    diagnostics: bool = False


@dataclass(frozen=True)
class ColorRange:
    """Inclusive lower/upper HSV bounds used for thresholding."""
    lower: HSV = (33, 9, 146)
    upper: HSV = (88, 255, 255)

    def validate(self) -> "ColorRange":
        if len(self.lower) != 3 or len(self.upper) != 3:
            raise ConfigurationError("color bounds must have exactly 3 components")
        for i, (lo, hi, top) in enumerate(zip(self.lower, self.upper, HSV_MAX)):
            if not (0 <= lo <= top and 0 <= hi <= top):
                raise ConfigurationError(
                    f"component {i} out of range [0, {top}]: {lo}-{hi}"
                )
            if lo > hi:
                raise ConfigurationError(
                    f"component {i}: lower {lo} is greater than upper {hi}"
                )
        return self

    @classmethod
    def from_values(cls, lower, upper) -> "ColorRange":
        try:
            lo = tuple(int(v) for v in lower)
            hi = tuple(int(v) for v in upper)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid color bounds: {exc}") from exc
        return cls(lo, hi).validate()  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColorRange":
        if "hsv_lower" not in data or "hsv_upper" not in data:
            raise ConfigurationError("expected 'hsv_lower' and 'hsv_upper' keys")
        return cls.from_values(data["hsv_lower"], data["hsv_upper"])

    def to_dict(self) -> Dict[str, Any]:
        return {"hsv_lower": list(self.lower), "hsv_upper": list(self.upper)}

    def describe(self) -> str:
        return (
            f"Hue range: {self.lower[0]}-{self.upper[0]}  "
            f"Saturation range: {self.lower[1]}-{self.upper[1]}  "
            f"Value range: {self.lower[2]}-{self.upper[2]}"
        )


class SharedColorRange:
    """
    Single-writer color range shared between a controller and the worker.

    The controller publishes whole ``ColorRange`` values; the worker takes
    one snapshot per cycle, so a cycle never sees a half-updated range.
    """

    def __init__(self, initial: ColorRange | None = None) -> None:
        self._value = (initial or ColorRange()).validate()
        self._lock = threading.Lock()

    def set(self, value: ColorRange) -> None:
        value.validate()
        with self._lock:
            self._value = value

    def get(self) -> ColorRange:
        with self._lock:
            return self._value
