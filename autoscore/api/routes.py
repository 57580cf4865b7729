"""
Autoscore API Routes

Status and control for the single turn tracker owned by the service.
Scoring itself happens in the tracker loop; these routes only observe
and steer it.
"""
import logging
from fastapi import APIRouter, HTTPException, Depends, Query, Request

from autoscore.core.calibration import is_calibration_complete
from autoscore.core.service import AutoscoreService
from autoscore.models.schemas import (
    BoardResponse,
    CalibrationResponse,
    ControlResponse,
    EventsResponse,
    HealthResponse,
    PointModel,
    TrackerStatusResponse,
)

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

router = APIRouter()


def get_service(request: Request) -> AutoscoreService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


def _control_response(service: AutoscoreService, message: str) -> ControlResponse:
    return ControlResponse(
        message=message,
        state=service.tracker.state.value,
        running=service.tracker.is_running,
    )


@router.get("/health", response_model=HealthResponse)
async def health(service: AutoscoreService = Depends(get_service)):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        tracker_running=service.tracker.is_running,
        board_detected=service.tracker.board_detected,
    )


# === Tracker ===

@router.get("/v1/tracker", response_model=TrackerStatusResponse)
async def tracker_status(service: AutoscoreService = Depends(get_service)):
    """Current tracker state, board, darts and motion."""
    return TrackerStatusResponse(**service.tracker.get_status())


@router.post("/v1/tracker/start", response_model=ControlResponse)
async def start_tracker(
    start_turn: bool = Query(False, description="Also schedule a new turn"),
    service: AutoscoreService = Depends(get_service)
):
    """Start the detection loop."""
    service.start(start_turn=start_turn)
    logger.info(f"[API] Tracker started (start_turn={start_turn})")
    return _control_response(service, "Tracker started")


@router.post("/v1/tracker/stop", response_model=ControlResponse)
async def stop_tracker(service: AutoscoreService = Depends(get_service)):
    """Stop the detection loop. Turn state is kept."""
    service.stop()
    return _control_response(service, "Tracker stopped")


@router.post("/v1/tracker/reset", response_model=ControlResponse)
async def reset_tracker(service: AutoscoreService = Depends(get_service)):
    """Stop the loop and clear all turn state. Stored calibration is kept."""
    service.reset()
    logger.info("[API] Tracker reset")
    return _control_response(service, "Tracker reset")


@router.post("/v1/tracker/turn", response_model=ControlResponse)
async def start_turn(service: AutoscoreService = Depends(get_service)):
    """Schedule a new turn (captures a fresh empty-board reference)."""
    service.start_turn()
    return _control_response(service, "Turn scheduled")


@router.get("/v1/board", response_model=BoardResponse)
async def board(service: AutoscoreService = Depends(get_service)):
    """Smoothed board geometry."""
    geometry = service.tracker.board_geometry
    if geometry is None:
        raise HTTPException(status_code=404, detail="No board detected")

    return BoardResponse(
        center=PointModel(x=geometry.center.x, y=geometry.center.y),
        radius=geometry.radius,
        confidence=geometry.confidence,
    )


# === Calibration ===

@router.get("/v1/calibration", response_model=CalibrationResponse)
async def get_calibration(
    include_reference_frame: bool = Query(False, description="Include the reference JPEG data URL"),
    service: AutoscoreService = Depends(get_service)
):
    """Stored calibration (center, radius, reference frame)."""
    calibration = service.get_calibration()
    if calibration is None:
        return CalibrationResponse(calibrated=False)

    return CalibrationResponse(
        calibrated=True,
        complete=is_calibration_complete(calibration),
        center=PointModel(x=calibration.center.x, y=calibration.center.y),
        radius=calibration.radius,
        timestamp=calibration.timestamp,
        reference_frame=calibration.reference_frame if include_reference_frame else None,
    )


@router.delete("/v1/calibration")
async def clear_calibration(service: AutoscoreService = Depends(get_service)):
    """Delete the stored calibration."""
    service.clear_calibration()
    logger.info("[CALIBRATION] Cleared via API")
    return {"message": "Calibration cleared"}


# === Events ===

@router.get("/v1/events", response_model=EventsResponse)
async def events(
    limit: int = Query(50, ge=1, le=200),
    service: AutoscoreService = Depends(get_service)
):
    """Recent tracker events, oldest first."""
    return EventsResponse(events=service.get_events(limit))
