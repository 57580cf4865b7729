"""
Dartboard Geometry Constants

Board layout normalized to the outer edge of the double ring (radius = 1.0).
All ring boundaries are radii from the center (bullseye).
"""
import math
from dataclasses import dataclass
from typing import List, Tuple

# Segment order clockwise from top (20 at 12 o'clock)
SEGMENT_ORDER: List[int] = [
    20, 1, 18, 4, 13, 6, 10, 15, 2, 17,
    3, 19, 7, 16, 8, 11, 14, 9, 12, 5
]

# Ring boundaries (normalized, outer edge of each ring)
BULLSEYE_OUTER = 0.037        # 50 points
BULL_OUTER = 0.093            # 25 points
TRIPLE_INNER = 0.582          # Inner edge of triple ring
TRIPLE_OUTER = 0.629          # Outer edge of triple ring
DOUBLE_INNER = 0.953          # Inner edge of double ring
DOUBLE_OUTER = 1.0            # Outer edge of double ring (board edge)

# Expected mid-fraction of the red rings, used as radius anchors
TRIPLE_RING_MID = 0.605
DOUBLE_RING_MID = 0.9765

BULLSEYE_POINTS = 50
BULL_POINTS = 25

# Degrees per segment
DEGREES_PER_SEGMENT = 18.0  # 360 / 20

# Segment 20 is centered on 0 degrees, so wedges start half a segment early
SEGMENT_ANGLE_OFFSET = DEGREES_PER_SEGMENT / 2


@dataclass(frozen=True)
class Point:
    """Pixel or board-relative coordinate."""
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


def to_polar(point: Point) -> Tuple[float, float]:
    """
    Convert a board-relative point to (angle_degrees, distance).

    Angle is 0 at 12 o'clock and increases clockwise, in [0, 360).
    Image y grows downward, hence atan2(x, -y).
    """
    distance = math.hypot(point.x, point.y)
    angle = math.degrees(math.atan2(point.x, -point.y))
    if angle < 0:
        angle += 360.0
    return angle, distance


def get_segment_from_angle(angle_degrees: float) -> int:
    """
    Get the segment number from a board angle.

    Args:
        angle_degrees: 0 = up (12 o'clock), clockwise

    Returns:
        Segment number (1-20)
    """
    adjusted = (angle_degrees + SEGMENT_ANGLE_OFFSET) % 360.0
    segment_index = int(math.floor(adjusted / DEGREES_PER_SEGMENT)) % 20
    return SEGMENT_ORDER[segment_index]


def get_zone_from_distance(distance: float) -> Tuple[str, int]:
    """
    Get the zone name and multiplier from normalized distance to center.

    Returns:
        Tuple of (zone_name, multiplier)
    """
    if distance <= BULLSEYE_OUTER:
        return ("bullseye", 1)
    elif distance <= BULL_OUTER:
        return ("bull", 1)
    elif distance <= TRIPLE_INNER:
        return ("single_inner", 1)
    elif distance <= TRIPLE_OUTER:
        return ("triple", 3)
    elif distance <= DOUBLE_INNER:
        return ("single_outer", 1)
    elif distance <= DOUBLE_OUTER:
        return ("double", 2)
    else:
        return ("miss", 1)


def segment_center_angle(segment: int) -> float:
    """Board angle (degrees) at the middle of a numbered wedge."""
    return SEGMENT_ORDER.index(segment) * DEGREES_PER_SEGMENT


def point_from_polar(angle_degrees: float, distance: float) -> Point:
    """Inverse of to_polar."""
    rad = math.radians(angle_degrees)
    return Point(distance * math.sin(rad), -distance * math.cos(rad))
