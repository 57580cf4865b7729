"""
Pydantic schemas for API request/response models
"""
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any


class PointModel(BaseModel):
    x: float
    y: float


# === Health ===

class HealthResponse(BaseModel):
    """API health status"""
    status: str
    version: str
    tracker_running: bool = Field(..., description="Whether the detection loop is active")
    board_detected: bool


# === Tracker ===

class BoardResponse(BaseModel):
    """Smoothed board geometry"""
    center: PointModel = Field(..., description="Board center in frame pixels")
    radius: float = Field(..., description="Outer double ring radius in pixels")
    confidence: float = Field(..., description="Detection confidence 0-1")


class DartModel(BaseModel):
    """A scored dart"""
    segment: int = Field(..., description="1-20, 25 (bull), 50 (bullseye) or 0 (miss)")
    multiplier: int = Field(..., description="1=single, 2=double, 3=triple")
    points: int
    confidence: float
    dart_position: PointModel = Field(..., description="Tip position in frame pixels")


class MotionModel(BaseModel):
    is_stable: bool
    stability_frames: int
    last_motion_area: int
    has_motion: bool


class TrackerStatusResponse(BaseModel):
    """Snapshot of the turn tracker"""
    state: str
    running: bool
    board_detected: bool
    board: Optional[BoardResponse] = None
    darts: List[DartModel] = Field(default_factory=list)
    dart_count: int = 0
    motion_status: Optional[str] = None
    motion: MotionModel
    has_reference: bool = False
    turn_pending: bool = Field(False, description="A turn start is scheduled")


class ControlResponse(BaseModel):
    """Result of a tracker control call"""
    message: str
    state: str
    running: bool


# === Calibration ===

class CalibrationResponse(BaseModel):
    """Stored board calibration"""
    calibrated: bool
    complete: bool = Field(False, description="A reference frame has been captured")
    center: Optional[PointModel] = None
    radius: Optional[float] = None
    timestamp: Optional[float] = None
    reference_frame: Optional[str] = Field(None, description="JPEG data URL, only when requested")


# === Events ===

class EventModel(BaseModel):
    type: str
    timestamp: float
    data: Dict[str, Any] = Field(default_factory=dict)


class EventsResponse(BaseModel):
    events: List[EventModel]
