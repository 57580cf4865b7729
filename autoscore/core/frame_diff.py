"""
Frame differencing.

Compares a frame against a reference to find the region that changed:
grayscale -> absdiff -> threshold -> one 3x3 dilation -> contours.

Used for three things:
- frame-to-frame motion (previous frame as reference)
- new dart vs. the accumulating reference (board + landed darts)
- dart removal vs. the original empty-board reference
"""
import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from autoscore.core.config import FrameDiffConfig
from autoscore.core.contours import contour_centroid, farthest_point, find_contours
from autoscore.core.geometry import Point
from autoscore.core.imaging import check_same_shape, ensure_frame, to_grayscale

logger = logging.getLogger(__name__)

DILATE_KERNEL = np.ones((3, 3), np.uint8)


@dataclass
class FrameDiffResult:
    """Result of comparing two frames."""
    diff_mask: np.ndarray                  # Cleaned binary mask (0/255)
    largest_contour: Optional[np.ndarray]  # Biggest changed region, if any qualified
    center_of_mass: Optional[Point]
    tip: Optional[Point]                   # Point of the region farthest from its centroid
    change_area: int                       # Pixels in regions that passed the size filter
    largest_area: int

    @property
    def is_significant(self) -> bool:
        return self.largest_contour is not None


def compute_diff_mask(
    current_gray: np.ndarray,
    reference_gray: np.ndarray,
    threshold: int
) -> np.ndarray:
    """Threshold the absolute difference, then close small gaps with one dilation."""
    diff = cv2.absdiff(current_gray, reference_gray)
    _, mask = cv2.threshold(diff, threshold, 255, cv2.THRESH_BINARY)
    # No erosion afterwards: the dilated mask feeds contour extraction directly
    return cv2.dilate(mask, DILATE_KERNEL, iterations=1)


def detect_frame_difference(
    current_frame: np.ndarray,
    reference_frame: np.ndarray,
    config: Optional[FrameDiffConfig] = None
) -> FrameDiffResult:
    """
    Find the largest changed region between two frames of the same size.

    Raises:
        InvalidFrameDimensions: frames are not RGBA or differ in size
    """
    config = config or FrameDiffConfig()
    current_frame = ensure_frame(current_frame)
    reference_frame = ensure_frame(reference_frame)
    check_same_shape(current_frame, reference_frame)

    mask = compute_diff_mask(
        to_grayscale(current_frame),
        to_grayscale(reference_frame),
        config.diff_threshold,
    )

    contours = find_contours(mask, config.min_contour_area, config.max_contour_area)
    if not contours:
        return FrameDiffResult(
            diff_mask=mask,
            largest_contour=None,
            center_of_mass=None,
            tip=None,
            change_area=0,
            largest_area=0,
        )

    largest = max(contours, key=len)
    center = contour_centroid(largest)

    return FrameDiffResult(
        diff_mask=mask,
        largest_contour=largest,
        center_of_mass=center,
        tip=farthest_point(largest, center),
        change_area=sum(len(c) for c in contours),
        largest_area=len(largest),
    )
