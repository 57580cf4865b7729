"""
Autoscore service - owns one tracker and its collaborators.

Built once at startup and shared by the HTTP routes. Tracker callbacks
are recorded into a bounded event log and, when a game API is
configured, forwarded to it.
"""
import os
import time
import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from autoscore.core.calibration import CalibrationData
from autoscore.core.camera import FrameSource, OpenCVFrameSource
from autoscore.core.config import AutoscoreConfig, load_config
from autoscore.core.dart_tracker import DartDetection, DartTurnTracker, TrackerCallbacks, TrackerState
from autoscore.core.notifier import GameApiNotifier
from autoscore.core.storage import CalibrationStore

logger = logging.getLogger(__name__)

MAX_EVENTS = 200


class AutoscoreService:
    """Wires frame source, calibration store, tracker and notifier together."""

    def __init__(
        self,
        frame_source: FrameSource,
        store: Optional[CalibrationStore] = None,
        config: Optional[AutoscoreConfig] = None,
        notifier: Optional[GameApiNotifier] = None,
        board_id: str = "default",
        **tracker_kwargs,
    ):
        self.config = config or AutoscoreConfig()
        self.frame_source = frame_source
        self.store = store or CalibrationStore()
        self.notifier = notifier
        self.board_id = board_id

        self._events: Deque[Dict[str, Any]] = deque(maxlen=MAX_EVENTS)
        self._events_lock = threading.Lock()

        callbacks = TrackerCallbacks(
            on_dart_detected=self._on_dart_detected,
            on_turn_complete=self._on_turn_complete,
            on_state_change=self._on_state_change,
            on_board_detected=self._on_board_detected,
            on_motion_status=self._on_motion_status,
        )
        self.tracker = DartTurnTracker(
            frame_source,
            storage=self.store,
            config=self.config,
            callbacks=callbacks,
            **tracker_kwargs,
        )
        self.tracker.initialize()

    @classmethod
    def from_env(cls) -> "AutoscoreService":
        """
        Build the service from environment variables:

        CAMERA_INDEX      OpenCV camera index (default 0)
        BOARD_ID          Board identifier used in game API URLs (default "default")
        GAME_API_URL      Game API base URL; empty disables forwarding
        CALIBRATION_PATH  JSON file for the stored calibration; empty = memory only
        AUTOSCORE_CONFIG  Optional TOML config file
        """
        config = load_config()
        camera_index = int(os.getenv("CAMERA_INDEX", "0"))
        board_id = os.getenv("BOARD_ID", "default")
        game_api_url = os.getenv("GAME_API_URL", "")
        calibration_path = os.getenv("CALIBRATION_PATH", "")

        notifier = GameApiNotifier(game_api_url, board_id) if game_api_url else None
        if notifier is None:
            logger.info("GAME_API_URL not set, events will not be forwarded")

        return cls(
            OpenCVFrameSource(camera_index),
            store=CalibrationStore(calibration_path or None),
            config=config,
            notifier=notifier,
            board_id=board_id,
        )

    # === Control ===

    def start(self, start_turn: bool = False) -> None:
        self.tracker.start()
        if start_turn:
            self.tracker.start_turn()

    def stop(self) -> None:
        self.tracker.stop()

    def reset(self) -> None:
        self.tracker.reset()

    def start_turn(self) -> None:
        self.tracker.start_turn()

    def clear_calibration(self) -> None:
        self.store.clear()
        self._record("calibration_cleared", {})

    def get_calibration(self) -> Optional[CalibrationData]:
        return self.store.load()

    def close(self) -> None:
        """Stop everything and release the camera."""
        self.tracker.stop()
        if self.notifier is not None:
            self.notifier.close()
        release = getattr(self.frame_source, "release", None)
        if callable(release):
            release()

    # === Events ===

    def get_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent events, oldest first."""
        with self._events_lock:
            events = list(self._events)
        return events[-limit:] if limit > 0 else []

    def _record(self, event_type: str, data: Dict[str, Any]) -> None:
        with self._events_lock:
            self._events.append({
                "type": event_type,
                "timestamp": time.time(),
                "data": data,
            })

    def _on_dart_detected(self, dart: DartDetection, dart_number: int) -> None:
        self._record("dart_detected", {"dart_number": dart_number, **dart.to_dict()})
        if self.notifier is not None:
            self.notifier.dart_detected(dart, dart_number)

    def _on_turn_complete(self, darts: List[DartDetection]) -> None:
        self._record("turn_complete", {
            "darts": [d.to_dict() for d in darts],
            "total": sum(d.points for d in darts),
        })
        if self.notifier is not None:
            self.notifier.turn_complete(darts)

    def _on_state_change(self, state: TrackerState) -> None:
        self._record("state_change", {"state": state.value})

    def _on_board_detected(self, detected: bool) -> None:
        self._record("board_detected", {"detected": detected})

    def _on_motion_status(self, status: str) -> None:
        self._record("motion_status", {"status": status})
