"""
Board Geometry Estimation

Finds the dartboard in a single frame by color segmentation:

1. Segment blue + white wedges and red rings (HSV)
2. Extract connected contours per color
3. Fit a circle: centroid + mean radius of the wedge pixels
4. Correct the radius with red-ring pixels. The triple and double rings are
   thin and sit at known fractions of the radius, so they are better
   distance anchors than the wedge boundaries.
5. Iteratively pull the center toward the least-squares circle
6. Score confidence from segment count, fit residual, red rings and size

A smoother averages the last few accepted detections to damp
single-frame jitter from lighting and focus noise.
"""
import math
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Tuple

import numpy as np

from autoscore.core.color import BLUE_HSV, RED_HSV, WHITE_HSV, hsv_mask
from autoscore.core.config import BoardConfig
from autoscore.core.contours import find_contours, merge_points
from autoscore.core.geometry import (
    DOUBLE_INNER,
    DOUBLE_OUTER,
    DOUBLE_RING_MID,
    TRIPLE_INNER,
    TRIPLE_OUTER,
    TRIPLE_RING_MID,
    Point,
)
from autoscore.core.imaging import ensure_frame, to_hsv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoardGeometry:
    """Best estimate of where the board is in the frame."""
    center: Point
    radius: float
    confidence: float

    def normalize(self, point: Point) -> Point:
        """Board-relative coordinates where the double ring edge is 1.0."""
        return Point(
            (point.x - self.center.x) / self.radius,
            (point.y - self.center.y) / self.radius,
        )


@dataclass(frozen=True)
class BoardDetection(BoardGeometry):
    """Geometry plus the contours it was fitted from (for overlays)."""
    blue_contours: List[np.ndarray] = field(default_factory=list, compare=False)
    white_contours: List[np.ndarray] = field(default_factory=list, compare=False)
    red_contours: List[np.ndarray] = field(default_factory=list, compare=False)

    @property
    def geometry(self) -> BoardGeometry:
        return BoardGeometry(center=self.center, radius=self.radius, confidence=self.confidence)


@dataclass
class BoardSegments:
    blue: List[np.ndarray]
    white: List[np.ndarray]
    red: List[np.ndarray]

    @property
    def segment_count(self) -> int:
        return len(self.blue) + len(self.white)


class BoardDetector:
    """
    Color-based board detector.

    Each step is a separate method so it can be tested or swapped on its
    own: segment() -> initial_circle() -> fit_circle() -> score().
    """

    def __init__(self, config: Optional[BoardConfig] = None):
        self.config = config or BoardConfig()

    def segment(self, frame: np.ndarray) -> BoardSegments:
        """Segment the board colors and extract their contours."""
        hsv = to_hsv(frame)
        cfg = self.config
        return BoardSegments(
            blue=find_contours(hsv_mask(hsv, BLUE_HSV), cfg.segment_min_size),
            white=find_contours(hsv_mask(hsv, WHITE_HSV), cfg.segment_min_size),
            red=find_contours(hsv_mask(hsv, RED_HSV), cfg.red_min_size),
        )

    @staticmethod
    def initial_circle(points: np.ndarray) -> Tuple[Point, float]:
        """Centroid of the points and their mean distance from it."""
        pts = points.astype(np.float64)
        cx, cy = pts.mean(axis=0)
        radius = float(np.hypot(pts[:, 0] - cx, pts[:, 1] - cy).mean())
        return Point(float(cx), float(cy)), radius

    def fit_circle(
        self,
        points: np.ndarray,
        red_points: np.ndarray,
        center: Point,
        radius: float
    ) -> Optional[Tuple[Point, float]]:
        """
        Refine an initial circle.

        Red pixels inside the normalized triple band [0.582, 0.629] or double
        band [0.953, 1.0] are scaled by the ring's mid-fraction and averaged
        into a corrected radius. The center is then pushed along each point's
        direction by (distance - radius), averaged over all points.
        """
        if len(points) < 10:
            return None

        if len(red_points) > self.config.min_red_points and radius > 0:
            red = red_points.astype(np.float64)
            dist = np.hypot(red[:, 0] - center.x, red[:, 1] - center.y)
            norm = dist / radius

            in_triple = (norm >= TRIPLE_INNER) & (norm <= TRIPLE_OUTER)
            in_double = ~in_triple & (norm >= DOUBLE_INNER) & (norm <= DOUBLE_OUTER)

            estimates = np.concatenate([
                dist[in_triple] / TRIPLE_RING_MID,
                dist[in_double] / DOUBLE_RING_MID,
            ])
            if len(estimates) > 0:
                radius = float(estimates.mean())

        pts = points.astype(np.float64)
        cx, cy = center.x, center.y

        for _ in range(self.config.center_iterations):
            dx = pts[:, 0] - cx
            dy = pts[:, 1] - cy
            d = np.hypot(dx, dy)
            valid = d > 0
            if not np.any(valid):
                break

            error = d[valid] - radius
            cx += float(np.sum(dx[valid] / d[valid] * error) / np.count_nonzero(valid))
            cy += float(np.sum(dy[valid] / d[valid] * error) / np.count_nonzero(valid))

        return Point(cx, cy), radius

    def score(self, segments: BoardSegments, points: np.ndarray, center: Point, radius: float) -> float:
        """Weighted confidence in [0, 1]."""
        cfg = self.config
        confidence = 0.0

        # More segments = higher confidence
        segment_score = min(1.0, segments.segment_count / cfg.expected_segments)
        confidence += segment_score * cfg.segment_weight

        # Red rings found
        if segments.red:
            confidence += min(cfg.red_bonus_max, len(segments.red) / 10)

        # Circle fit residual
        if len(points) > 0 and radius > 0:
            pts = points.astype(np.float64)
            residual = np.abs(np.hypot(pts[:, 0] - center.x, pts[:, 1] - center.y) - radius)
            normalized_error = float(residual.mean()) / radius
            fit_score = max(0.0, 1.0 - normalized_error * 2)
            confidence += fit_score * cfg.fit_weight

        size_ok = cfg.min_board_radius <= radius <= cfg.max_board_radius
        confidence += (1.0 if size_ok else 0.5) * cfg.size_weight

        return min(1.0, max(0.0, confidence))

    def detect(self, frame: np.ndarray) -> Optional[BoardDetection]:
        """
        Detect the dartboard in a frame.

        Returns:
            BoardDetection, or None if no board is trustworthy in this frame
        """
        frame = ensure_frame(frame)
        cfg = self.config

        segments = self.segment(frame)
        if segments.segment_count < cfg.min_segments:
            logger.debug(f"[BOARD] Only {segments.segment_count} segments visible")
            return None

        points = merge_points(segments.blue + segments.white)
        red_points = merge_points(segments.red)

        center, radius = self.initial_circle(points)
        fitted = self.fit_circle(points, red_points, center, radius)
        if fitted is None:
            return None
        center, radius = fitted

        if not math.isfinite(radius) or radius < cfg.min_board_radius or radius > cfg.max_board_radius:
            logger.debug(f"[BOARD] Radius {radius:.1f}px out of range")
            return None

        confidence = self.score(segments, points, center, radius)
        if confidence < cfg.min_confidence:
            logger.debug(f"[BOARD] Confidence {confidence:.2f} below {cfg.min_confidence}")
            return None

        return BoardDetection(
            center=center,
            radius=radius,
            confidence=confidence,
            blue_contours=segments.blue,
            white_contours=segments.white,
            red_contours=segments.red,
        )


def detect_board(frame: np.ndarray, config: Optional[BoardConfig] = None) -> Optional[BoardDetection]:
    """Detect the board with a default-configured detector."""
    return BoardDetector(config).detect(frame)


class BoardDetectorSmoother:
    """Running average over the last N accepted detections."""

    def __init__(self, max_history: int = 5):
        self._detections: Deque[BoardDetection] = deque(maxlen=max_history)

    def add_detection(self, detection: Optional[BoardDetection]) -> None:
        if detection is not None:
            self._detections.append(detection)

    def get_smoothed(self) -> Optional[BoardDetection]:
        if not self._detections:
            return None

        n = len(self._detections)
        latest = self._detections[-1]

        return BoardDetection(
            center=Point(
                sum(d.center.x for d in self._detections) / n,
                sum(d.center.y for d in self._detections) / n,
            ),
            radius=sum(d.radius for d in self._detections) / n,
            confidence=sum(d.confidence for d in self._detections) / n,
            blue_contours=latest.blue_contours,
            white_contours=latest.white_contours,
            red_contours=latest.red_contours,
        )

    def reset(self) -> None:
        self._detections.clear()

    def __len__(self) -> int:
        return len(self._detections)
