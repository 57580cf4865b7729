"""
Connected-component contour extraction.

A contour here is the full member set of a 4-connected component, as an
(N, 2) int array of (x, y) points, not just its outline.
"""
from typing import List, Optional, Tuple

import cv2
import numpy as np

from autoscore.core.geometry import Point


def find_contours(
    mask: np.ndarray,
    min_size: int,
    max_size: Optional[int] = None
) -> List[np.ndarray]:
    """
    Label 4-connected regions of a binary mask.

    Args:
        mask: 2D array, nonzero = set
        min_size: Components with fewer pixels are dropped
        max_size: Components with more pixels are dropped (None = no limit)

    Returns:
        List of (N, 2) point arrays, ordered by the raster position of each
        component's first pixel.
    """
    binary = (mask > 0).astype(np.uint8)
    n_labels, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=4)
    if n_labels <= 1:
        return []

    areas = stats[:, cv2.CC_STAT_AREA]
    keep = areas >= min_size
    if max_size is not None:
        keep &= areas <= max_size
    keep[0] = False  # background
    if not np.any(keep):
        return []

    ys, xs = np.nonzero(labels)
    lab = labels[ys, xs]
    selected = keep[lab]
    ys, xs, lab = ys[selected], xs[selected], lab[selected]

    # Stable sort keeps raster order inside each label
    order = np.argsort(lab, kind="stable")
    points = np.stack([xs[order], ys[order]], axis=1).astype(np.int32)
    sorted_labels = lab[order]

    boundaries = np.flatnonzero(np.diff(sorted_labels)) + 1
    groups = np.split(points, boundaries)

    # First pixel of each group is its raster-first pixel
    groups.sort(key=lambda g: (g[0, 1], g[0, 0]))
    return groups


def merge_points(contours: List[np.ndarray]) -> np.ndarray:
    """Concatenate contours into one (N, 2) point array."""
    if not contours:
        return np.empty((0, 2), dtype=np.int32)
    return np.concatenate(contours, axis=0)


def contour_centroid(contour: np.ndarray) -> Point:
    """Center of mass of a contour."""
    mean = contour.mean(axis=0)
    return Point(float(mean[0]), float(mean[1]))


def bounding_box(contour: np.ndarray) -> Tuple[int, int, int, int]:
    """(min_x, min_y, max_x, max_y) of a contour."""
    mins = contour.min(axis=0)
    maxs = contour.max(axis=0)
    return int(mins[0]), int(mins[1]), int(maxs[0]), int(maxs[1])


def aspect_ratio(contour: np.ndarray) -> float:
    """
    Longest over shortest bounding-box side.

    Returns 0 for contours under 4 points or with a zero-width side.
    """
    if len(contour) < 4:
        return 0.0

    min_x, min_y, max_x, max_y = bounding_box(contour)
    width = max_x - min_x
    height = max_y - min_y
    if width == 0 or height == 0:
        return 0.0

    return max(width / height, height / width)


def farthest_point(contour: np.ndarray, origin: Point) -> Point:
    d2 = (contour[:, 0] - origin.x) ** 2 + (contour[:, 1] - origin.y) ** 2
    x, y = contour[int(np.argmax(d2))]
    return Point(float(x), float(y))


def closest_point(contour: np.ndarray, origin: Point) -> Point:
    d2 = (contour[:, 0] - origin.x) ** 2 + (contour[:, 1] - origin.y) ** 2
    x, y = contour[int(np.argmin(d2))]
    return Point(float(x), float(y))
