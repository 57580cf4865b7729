"""
Dart Candidate Validation

Decides whether the region that changed against the reference frame is a
dart. Runs only once motion has settled.

Stages:
1. Frame diff vs. the accumulating reference (board + darts already thrown)
2. Shape gate: area, distance from board center, bounding-box aspect ratio
3. Optional features: contrast with the reference, straight shaft edge
4. Tip: the contour point closest to the board center, optionally
   restricted to the dark (barrel/tip colored) pixels of the contour
"""
import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from autoscore.core.board_detector import BoardGeometry
from autoscore.core.color import DART_BLACK_HSV, hsv_mask
from autoscore.core.config import DetectionConfig, FrameDiffConfig
from autoscore.core.contours import aspect_ratio, closest_point, contour_centroid
from autoscore.core.errors import NoBoardGeometry, NoReferenceFrame
from autoscore.core.frame_diff import detect_frame_difference
from autoscore.core.geometry import Point
from autoscore.core.imaging import to_grayscale, to_hsv

logger = logging.getLogger(__name__)


@dataclass
class DartCandidate:
    """A changed region accepted as a dart."""
    tip: Point
    contour: np.ndarray
    area: int
    aspect_ratio: float
    confidence: float


@dataclass
class ShapeValidation:
    is_valid: bool
    confidence: float
    aspect_ratio: float


def find_dart_tip(contour: np.ndarray, board: BoardGeometry) -> Point:
    """The scoring end is the end nearest the bullseye, not the flight."""
    return closest_point(contour, board.center)


def calculate_contrast(
    contour: np.ndarray,
    current_frame: np.ndarray,
    reference_frame: np.ndarray
) -> float:
    """Mean absolute grayscale difference over the contour's pixels."""
    h, w = current_frame.shape[:2]
    xs, ys = contour[:, 0], contour[:, 1]
    inside = (xs >= 0) & (xs < w) & (ys >= 0) & (ys < h)
    if not np.any(inside):
        return 0.0

    xs, ys = xs[inside], ys[inside]
    current = to_grayscale(current_frame)[ys, xs].astype(np.float32)
    reference = to_grayscale(reference_frame)[ys, xs].astype(np.float32)
    return float(np.abs(current - reference).mean())


def find_linear_edge(contour: np.ndarray, min_points: int = 10):
    """
    Longest straight chord across the contour's convex hull.

    Returns:
        (length_px, angle_degrees)
    """
    if len(contour) < min_points:
        return 0.0, 0.0

    hull = cv2.convexHull(contour.reshape(-1, 1, 2).astype(np.int32)).reshape(-1, 2)
    hull = hull.astype(np.float64)
    if len(hull) < 2:
        return 0.0, 0.0

    deltas = hull[:, None, :] - hull[None, :, :]
    lengths = np.hypot(deltas[..., 0], deltas[..., 1])
    i, j = np.unravel_index(int(np.argmax(lengths)), lengths.shape)

    dx, dy = hull[j] - hull[i]
    return float(lengths[i, j]), float(np.degrees(np.arctan2(dy, dx)))


def dark_points(contour: np.ndarray, frame: np.ndarray) -> np.ndarray:
    """Contour points whose color in the frame matches the dart-black range."""
    pixels = frame[contour[:, 1], contour[:, 0]].reshape(-1, 1, 4)
    mask = hsv_mask(to_hsv(pixels), DART_BLACK_HSV).reshape(-1)
    return contour[mask > 0]


class DartCandidateValidator:
    """
    Validates changed regions as darts.

    The contrast and edge features can be switched off in DetectionConfig
    to get the simpler shape-only detector.
    """

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        diff_config: Optional[FrameDiffConfig] = None
    ):
        self.config = config or DetectionConfig()
        self.diff_config = diff_config or FrameDiffConfig()

    def validate(self, contour: np.ndarray, board: BoardGeometry) -> ShapeValidation:
        """Shape gate plus base confidence."""
        cfg = self.config
        area = len(contour)

        if area < cfg.min_dart_area or area > cfg.max_dart_area:
            return ShapeValidation(False, 0.0, 0.0)

        center = contour_centroid(contour)
        distance = center.distance_to(board.center)
        if distance > board.radius * cfg.board_margin:
            return ShapeValidation(False, 0.0, 0.0)

        ratio = aspect_ratio(contour)
        if ratio < cfg.min_aspect_ratio or ratio > cfg.max_aspect_ratio:
            return ShapeValidation(False, 0.0, ratio)

        confidence = cfg.base_confidence
        if cfg.ideal_aspect_min <= ratio <= cfg.ideal_aspect_max:
            confidence += cfg.aspect_bonus
        if distance / board.radius < cfg.inner_position:
            confidence += cfg.position_bonus

        return ShapeValidation(True, min(1.0, confidence), ratio)

    def locate_tip(self, contour: np.ndarray, frame: np.ndarray, board: BoardGeometry) -> Point:
        cfg = self.config
        if cfg.refine_tip_with_dark_pixels:
            dark = dark_points(contour, frame)
            if len(dark) >= cfg.min_dark_points:
                return find_dart_tip(dark, board)
        return find_dart_tip(contour, board)

    def detect(
        self,
        current_frame: np.ndarray,
        reference_frame: Optional[np.ndarray],
        board: Optional[BoardGeometry]
    ) -> Optional[DartCandidate]:
        """
        Look for a newly landed dart.

        Returns:
            DartCandidate, or None when nothing dart-like changed

        Raises:
            NoReferenceFrame: no reference to compare against
            NoBoardGeometry: no board estimate to validate against
            InvalidFrameDimensions: frames do not match
        """
        if reference_frame is None:
            raise NoReferenceFrame("No reference frame captured")
        if board is None:
            raise NoBoardGeometry("No board geometry available")

        cfg = self.config
        diff = detect_frame_difference(current_frame, reference_frame, self.diff_config)
        if diff.largest_contour is None:
            return None

        contour = diff.largest_contour
        shape = self.validate(contour, board)
        if not shape.is_valid:
            logger.debug(
                f"[DART] Rejected region: area={len(contour)}, aspect={shape.aspect_ratio:.2f}"
            )
            return None

        confidence = shape.confidence

        if cfg.use_contrast:
            contrast = calculate_contrast(contour, current_frame, reference_frame)
            if contrast >= cfg.min_contrast:
                confidence += min(cfg.contrast_bonus_max, contrast / 100)

        if cfg.use_edge:
            edge_length, _ = find_linear_edge(contour)
            if edge_length > cfg.min_edge_length:
                confidence += cfg.edge_bonus

        confidence = min(1.0, max(0.0, confidence))
        if confidence < cfg.min_confidence:
            logger.debug(f"[DART] Low confidence candidate ({confidence:.2f})")
            return None

        return DartCandidate(
            tip=self.locate_tip(contour, current_frame, board),
            contour=contour,
            area=len(contour),
            aspect_ratio=shape.aspect_ratio,
            confidence=confidence,
        )


def detect_new_dart(
    current_frame: np.ndarray,
    reference_frame: Optional[np.ndarray],
    board: Optional[BoardGeometry],
    config: Optional[DetectionConfig] = None
) -> Optional[DartCandidate]:
    """Detect with a default-configured validator."""
    return DartCandidateValidator(config).detect(current_frame, reference_frame, board)
