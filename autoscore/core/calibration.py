"""
Calibration data - board center/radius and the empty-board reference frame.

All update helpers return a new CalibrationData with a fresh timestamp;
the input is never modified.
"""
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from autoscore.core.geometry import Point

MIN_CALIBRATION_RADIUS = 50.0
DEFAULT_RADIUS_FRACTION = 0.4


@dataclass(frozen=True)
class CalibrationData:
    center: Point                           # Board center in frame coordinates
    radius: float                           # Board radius in pixels
    reference_frame: Optional[str] = None   # Empty-board snapshot as a data URL
    timestamp: float = 0.0                  # Unix seconds of the last change, 0 = never

    def to_dict(self) -> Dict[str, Any]:
        return {
            "center": {"x": self.center.x, "y": self.center.y},
            "radius": self.radius,
            "reference_frame": self.reference_frame,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationData":
        """
        Raises:
            ValueError: center or radius missing or malformed
        """
        center = data.get("center")
        radius = data.get("radius")
        if not isinstance(center, dict) or isinstance(radius, bool) or not isinstance(radius, (int, float)):
            raise ValueError("Calibration needs a center and a numeric radius")

        return cls(
            center=Point(float(center["x"]), float(center["y"])),
            radius=float(radius),
            reference_frame=data.get("reference_frame"),
            timestamp=float(data.get("timestamp") or 0.0),
        )


def get_default_calibration(frame_width: int, frame_height: int) -> CalibrationData:
    """Board assumed centered, filling 80% of the shorter frame side."""
    return CalibrationData(
        center=Point(frame_width / 2, frame_height / 2),
        radius=min(frame_width, frame_height) * DEFAULT_RADIUS_FRACTION,
        reference_frame=None,
        timestamp=0.0,
    )


def is_calibration_complete(data: Optional[CalibrationData]) -> bool:
    """Complete = a reference frame has been captured."""
    return data is not None and data.reference_frame is not None and data.timestamp > 0


def update_center(current: CalibrationData, center: Point) -> CalibrationData:
    return replace(current, center=center, timestamp=time.time())


def update_radius(current: CalibrationData, radius: float) -> CalibrationData:
    return replace(current, radius=max(MIN_CALIBRATION_RADIUS, radius), timestamp=time.time())


def set_reference_frame(current: CalibrationData, reference_frame: str) -> CalibrationData:
    return replace(current, reference_frame=reference_frame, timestamp=time.time())


def distance_from_center(point: Point, calibration: CalibrationData) -> float:
    return point.distance_to(calibration.center)


def normalize_point(point: Point, calibration: CalibrationData) -> Point:
    """Center = (0, 0), board edge = 1.0."""
    return Point(
        (point.x - calibration.center.x) / calibration.radius,
        (point.y - calibration.center.y) / calibration.radius,
    )
