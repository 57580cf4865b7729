"""
Scoring module for dart detection.

Maps a board-relative dart position to segment, multiplier and points.
Positions are normalized so the outer edge of the double ring is 1.0.
"""
from dataclasses import dataclass
from typing import Any, Dict

from autoscore.core.board_detector import BoardGeometry
from autoscore.core.geometry import (
    BULL_POINTS,
    BULLSEYE_POINTS,
    Point,
    get_segment_from_angle,
    get_zone_from_distance,
    to_polar,
)

VALID_SEGMENTS = set(range(0, 21)) | {BULL_POINTS, BULLSEYE_POINTS}


@dataclass(frozen=True)
class DetectionResult:
    segment: int                # 1-20, 25 (bull), 50 (bullseye), 0 (miss)
    multiplier: int             # 1, 2 or 3
    points: int
    confidence: float
    dart_position: Point        # Pixel coordinates in the frame
    normalized_position: Point  # Board-relative, radius = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segment": self.segment,
            "multiplier": self.multiplier,
            "points": self.points,
            "confidence": round(self.confidence, 3),
            "dart_position": {"x": self.dart_position.x, "y": self.dart_position.y},
            "normalized_position": {
                "x": self.normalized_position.x,
                "y": self.normalized_position.y,
            },
            "label": format_detection_result(self),
        }


def map_to_segment(
    normalized_point: Point,
    dart_position: Point,
    confidence: float
) -> DetectionResult:
    """
    Map a normalized point to a dartboard score.

    Args:
        normalized_point: Point relative to board center, radius = 1.0
        dart_position: Original dart position in frame coordinates
        confidence: Detection confidence (0-1)
    """
    angle, distance = to_polar(normalized_point)
    zone, multiplier = get_zone_from_distance(distance)
    confidence = min(1.0, max(0.0, confidence))

    if zone == "miss":
        segment, multiplier, points = 0, 1, 0
    elif zone == "bullseye":
        segment, multiplier, points = BULLSEYE_POINTS, 1, BULLSEYE_POINTS
    elif zone == "bull":
        segment, multiplier, points = BULL_POINTS, 1, BULL_POINTS
    else:
        segment = get_segment_from_angle(angle)
        points = segment * multiplier

    return DetectionResult(
        segment=segment,
        multiplier=multiplier,
        points=points,
        confidence=confidence,
        dart_position=dart_position,
        normalized_position=normalized_point,
    )


def score_from_pixel(
    point: Point,
    geometry: BoardGeometry,
    confidence: float = 1.0
) -> DetectionResult:
    """Score a frame pixel against a board geometry."""
    return map_to_segment(geometry.normalize(point), point, confidence)


def format_detection_result(result: DetectionResult) -> str:
    """Short label: "T20", "D16", "S5", "Bull", "Bullseye" or "Miss"."""
    if result.points == 0:
        return "Miss"
    if result.segment == BULLSEYE_POINTS:
        return "Bullseye"
    if result.segment == BULL_POINTS:
        return "Bull"

    prefix = {3: "T", 2: "D"}.get(result.multiplier, "S")
    return f"{prefix}{result.segment}"


def validate_detection(result: DetectionResult) -> bool:
    """
    Sanity check a result for internal consistency.

    Not a gate on detection; a False here means the mapper is broken.
    """
    if result.segment not in VALID_SEGMENTS:
        return False

    if result.multiplier not in (1, 2, 3):
        return False

    if 1 <= result.segment <= 20 and result.points != result.segment * result.multiplier:
        return False

    if result.segment in (BULL_POINTS, BULLSEYE_POINTS):
        if result.multiplier != 1 or result.points != result.segment:
            return False

    if result.segment == 0 and result.points != 0:
        return False

    return True
