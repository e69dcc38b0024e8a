# imaging.py
"""OpenCV primitives used by the segmentation pipeline and the overlay."""
from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

import cv2
import numpy as np

from blob_tracking.common import Annotation, BoundingRect


def smooth(frame: np.ndarray, kernel_size: int) -> np.ndarray:
    """Normalized box blur (noise reduction)."""
    return cv2.blur(frame, (kernel_size, kernel_size))


def convert_colorspace(frame: np.ndarray) -> np.ndarray:
    """BGR (or gray / BGRA) camera frame -> HSV."""
    if frame.ndim == 2 or (frame.ndim == 3 and frame.shape[2] == 1):
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    elif frame.ndim == 3 and frame.shape[2] == 4:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    return cv2.cvtColor(frame, cv2.COLOR_BGR2HSV)


def range_threshold(
    frame: np.ndarray, lower: Sequence[int], upper: Sequence[int]
) -> np.ndarray:
    """Binary mask: 255 where every channel lies inside [lower, upper]."""
    return cv2.inRange(
        frame,
        np.array(lower, dtype=np.uint8),
        np.array(upper, dtype=np.uint8),
    )


def _rect_element(size: int) -> np.ndarray:
    return cv2.getStructuringElement(cv2.MORPH_RECT, (size, size))


def erode(mask: np.ndarray, element_size: int) -> np.ndarray:
    return cv2.erode(mask, _rect_element(element_size))


def dilate(mask: np.ndarray, element_size: int) -> np.ndarray:
    return cv2.dilate(mask, _rect_element(element_size))


def find_contours(mask: np.ndarray) -> Tuple[List[np.ndarray], np.ndarray | None]:
    """
    Two-level hierarchy (outer boundaries plus their holes).

    Returns ``(contours, hierarchy)``; hierarchy is ``None`` for an empty mask.
    """
    contours, hierarchy = cv2.findContours(
        mask, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_SIMPLE
    )
    return list(contours), hierarchy


def bounding_rect(contour: np.ndarray) -> BoundingRect:
    x, y, w, h = cv2.boundingRect(contour)
    return BoundingRect(int(x), int(y), int(w), int(h))


def draw_annotations(frame: np.ndarray, annotations: Iterable[Annotation]) -> np.ndarray:
    """Composite rectangles onto ``frame`` in place and return it."""
    for ann in annotations:
        cv2.rectangle(frame, ann.rect.tl, ann.rect.br, ann.color, ann.thickness)
    return frame
