# segmentation.py
"""Color segmentation: raw frame -> candidate bounding rectangles."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import ModuleType
from typing import List, Optional

import numpy as np

from blob_tracking import imaging
from blob_tracking.common import BoundingRect
from blob_tracking.config import ColorRange, SegmentationConfig


@dataclass
class SegmentationResult:
    rects: List[BoundingRect] = field(default_factory=list)
    mask: Optional[np.ndarray] = None
    morph: Optional[np.ndarray] = None


class SegmentationPipeline:
    """
    blur -> HSV -> inRange -> erode x2 (small) -> dilate x2 (large)
    -> contours -> bounding rects.

    Eroding first removes speckle noise; the larger dilation afterwards lets
    the surviving blob grow back to roughly its original extent.
    """

    def __init__(
        self,
        config: SegmentationConfig | None = None,
        library: ModuleType = imaging,
    ) -> None:
        self.config = config or SegmentationConfig()
        self.lib = library

    def run(self, frame: np.ndarray, color_range: ColorRange) -> SegmentationResult:
        cfg = self.config
        lib = self.lib

        blurred = lib.smooth(frame, cfg.blur_kernel)
        hsv = lib.convert_colorspace(blurred)
        mask = lib.range_threshold(hsv, color_range.lower, color_range.upper)

        morph = mask
        for _ in range(cfg.erode_iterations):
            morph = lib.erode(morph, cfg.erode_kernel)
        for _ in range(cfg.dilate_iterations):
            morph = lib.dilate(morph, cfg.dilate_kernel)

        contours, _hierarchy = lib.find_contours(morph)
        # Contour discovery order is kept; callers must not rely on any sorting
        rects = [lib.bounding_rect(c) for c in contours]
        return SegmentationResult(rects=rects, mask=mask, morph=morph)

    def segment(self, frame: np.ndarray, color_range: ColorRange) -> List[BoundingRect]:
        return self.run(frame, color_range).rects
