"""
Dart Tracker - turn state machine over a live camera feed.

Watches frames, keeps the board geometry current, waits for motion to
settle, scores each new dart against the accumulating reference frame and
detects when the darts have been pulled so the next turn can start.

    IDLE -> NO_BOARD -> WAITING_DART_1 -> WAITING_DART_2 -> WAITING_DART_3
         -> TURN_COMPLETE -> WAITING_REMOVAL -> IDLE -> (next turn)

tick() runs one iteration and is what tests drive. start() runs tick()
on a daemon thread at camera frame rate.
"""
import time
import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from autoscore.core.board_detector import BoardDetection, BoardDetector, BoardDetectorSmoother, BoardGeometry
from autoscore.core.calibration import CalibrationData, get_default_calibration, set_reference_frame
from autoscore.core.camera import FrameSource, load_image_from_data_url
from autoscore.core.config import AutoscoreConfig
from autoscore.core.detection import DartCandidateValidator
from autoscore.core.errors import AutoscoreError, InvalidFrameDimensions, NoBoardGeometry, NoReferenceFrame
from autoscore.core.frame_diff import detect_frame_difference
from autoscore.core.geometry import Point
from autoscore.core.imaging import ensure_frame
from autoscore.core.motion_detector import MotionStabilizer, MotionState
from autoscore.core.scoring import format_detection_result, score_from_pixel
from autoscore.core.storage import CalibrationStore

logger = logging.getLogger(__name__)

MOTION_DETECTED = "Motion detected…"
DART_LANDED = "Dart landed!"
WAITING_FOR_DART = "Waiting for dart…"

DARTS_PER_TURN = 3


class TrackerState(str, Enum):
    IDLE = "idle"
    NO_BOARD = "no-board"
    WAITING_DART_1 = "waiting-dart-1"
    WAITING_DART_2 = "waiting-dart-2"
    WAITING_DART_3 = "waiting-dart-3"
    TURN_COMPLETE = "turn-complete"
    WAITING_REMOVAL = "waiting-removal"


WAITING_STATES = (
    TrackerState.WAITING_DART_1,
    TrackerState.WAITING_DART_2,
    TrackerState.WAITING_DART_3,
)


@dataclass(frozen=True)
class DartDetection:
    """A scored dart, as emitted to callers."""
    segment: int
    multiplier: int      # 1=single, 2=double, 3=triple
    points: int
    confidence: float
    dart_position: Point

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segment": self.segment,
            "multiplier": self.multiplier,
            "points": self.points,
            "confidence": round(self.confidence, 3),
            "dart_position": {"x": self.dart_position.x, "y": self.dart_position.y},
        }


@dataclass
class TrackerCallbacks:
    """Hooks invoked synchronously by tick(), once its step has finished."""
    on_dart_detected: Optional[Callable[[DartDetection, int], None]] = None
    on_turn_complete: Optional[Callable[[List[DartDetection]], None]] = None
    on_state_change: Optional[Callable[[TrackerState], None]] = None
    on_board_detected: Optional[Callable[[bool], None]] = None
    on_motion_status: Optional[Callable[[str], None]] = None


class DartTurnTracker:
    """
    Stateful three-dart turn tracker for a single camera.

    All state is guarded by one RLock so getters (including ones called
    from inside callbacks) never see a half-swapped reference frame.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        storage: Optional[CalibrationStore] = None,
        config: Optional[AutoscoreConfig] = None,
        callbacks: Optional[TrackerCallbacks] = None,
        clock: Callable[[], float] = time.monotonic,
        board_detector: Optional[BoardDetector] = None,
        validator: Optional[DartCandidateValidator] = None,
    ):
        self.config = config or AutoscoreConfig()
        self.callbacks = callbacks or TrackerCallbacks()
        self._source = frame_source
        self._storage = storage
        self._clock = clock

        self._board_detector = board_detector or BoardDetector(self.config.board)
        self._smoother = BoardDetectorSmoother(self.config.board.smoothing_history)
        self._stabilizer = MotionStabilizer(self.config.motion, self.config.frame_diff)
        self._validator = validator or DartCandidateValidator(self.config.detection, self.config.frame_diff)

        self._lock = threading.RLock()
        self._state = TrackerState.IDLE
        self._darts: List[DartDetection] = []
        self._calibration: Optional[CalibrationData] = None

        # Board + landed darts; replaced after every confirmed dart
        self._reference: Optional[np.ndarray] = None
        # Empty board at turn start; used to detect removal
        self._original_reference: Optional[np.ndarray] = None

        self._board: Optional[BoardDetection] = None
        self._board_detected = False
        self._board_misses = 0
        self._motion_status: Optional[str] = None

        self._last_detection_at: Optional[float] = None
        self._turn_start_at: Optional[float] = None
        self._turn_complete_at: Optional[float] = None

        # Callbacks raised during tick(); fired once the step is complete
        self._pending: Optional[List[tuple]] = None
        # Bumped by reset() so queued callbacks from a discarded turn are dropped
        self._generation = 0

        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Setup and control
    # ------------------------------------------------------------------

    def initialize(self, calibration: Optional[CalibrationData] = None) -> None:
        """
        Adopt a calibration (or the stored one) and rehydrate its
        empty-board reference frame if it has one.

        The restored frame only warms the tracker: the next turn start
        always captures a fresh empty-board reference and replaces it.
        """
        if calibration is None and self._storage is not None:
            calibration = self._storage.load()

        with self._lock:
            self._calibration = calibration
            if calibration is None or not calibration.reference_frame:
                return

            try:
                self._original_reference = load_image_from_data_url(calibration.reference_frame)
                logger.info("[TRACKER] Restored empty-board reference from calibration")
            except ValueError as e:
                logger.warning(f"[TRACKER] Stored reference frame unusable: {e}")

    def start_turn(self) -> None:
        """Schedule a new turn once the settle delay has passed."""
        self._schedule_turn_start(0.0)

    def start(self) -> None:
        """Run the detection loop on a background thread."""
        with self._lock:
            if self._running:
                return
            self._running = True
            # Each loop thread gets its own event so a stale loop can never resume
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run_loop, args=(self._stop_event,), name="dart-tracker", daemon=True
            )
            self._thread.start()
        logger.info("[TRACKER] Detection loop started")

    def stop(self) -> None:
        """Stop the loop. An in-flight iteration is allowed to finish."""
        with self._lock:
            was_running = self._running
            self._running = False
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)

        if was_running:
            logger.info("[TRACKER] Detection loop stopped")

    def reset(self) -> None:
        """Stop and clear all per-turn state. Stored calibration is untouched."""
        self.stop()
        with self._lock:
            self._generation += 1
            self._darts = []
            self._reference = None
            self._original_reference = None
            self._stabilizer.reset()
            self._smoother.reset()
            self._board = None
            self._board_detected = False
            self._board_misses = 0
            self._motion_status = None
            self._last_detection_at = None
            self._turn_start_at = None
            self._turn_complete_at = None
            self._set_state(TrackerState.IDLE, force=True)
        logger.info("[TRACKER] Reset")

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrackerState:
        with self._lock:
            return self._state

    @property
    def detected_darts(self) -> List[DartDetection]:
        with self._lock:
            return list(self._darts)

    @property
    def board_geometry(self) -> Optional[BoardGeometry]:
        with self._lock:
            return self._board.geometry if self._board is not None else None

    @property
    def board_detection(self) -> Optional[BoardDetection]:
        with self._lock:
            return self._board

    @property
    def board_detected(self) -> bool:
        with self._lock:
            return self._board_detected

    @property
    def motion_state(self) -> MotionState:
        with self._lock:
            return self._stabilizer.state

    @property
    def motion_status(self) -> Optional[str]:
        with self._lock:
            return self._motion_status

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def calibration(self) -> Optional[CalibrationData]:
        with self._lock:
            return self._calibration

    def get_status(self) -> Dict[str, Any]:
        """Point-in-time snapshot of the tracker for status endpoints."""
        with self._lock:
            geometry = self._board.geometry if self._board is not None else None
            motion = self._stabilizer.state
            return {
                "state": self._state.value,
                "running": self._running,
                "board_detected": self._board_detected,
                "board": {
                    "center": {"x": geometry.center.x, "y": geometry.center.y},
                    "radius": geometry.radius,
                    "confidence": geometry.confidence,
                } if geometry else None,
                "darts": [d.to_dict() for d in self._darts],
                "dart_count": len(self._darts),
                "motion_status": self._motion_status,
                "motion": {
                    "is_stable": motion.is_stable,
                    "stability_frames": motion.stability_frames,
                    "last_motion_area": motion.last_motion_area,
                    "has_motion": motion.has_motion,
                },
                "has_reference": self._reference is not None,
                "turn_pending": self._turn_start_at is not None,
            }

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _run_loop(self, stop_event: threading.Event) -> None:
        interval = self.config.tracker.loop_interval_s
        while not stop_event.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except Exception as e:
                logger.error(f"[TRACKER] Loop iteration failed: {e}", exc_info=True)

            elapsed = time.monotonic() - started
            stop_event.wait(max(0.0, interval - elapsed))

    def tick(self) -> None:
        """Run a single iteration against the next available frame."""
        frame = self._capture()
        if frame is None:
            return

        with self._lock:
            now = self._clock()
            generation = self._generation
            outer, self._pending = self._pending, []
            try:
                self._step(frame, now)
            finally:
                pending, self._pending = self._pending, outer

            # Listeners run after the step so they see a consistent tracker,
            # and may call reset() without leaving it half-updated
            for callback, args in pending:
                if self._generation != generation:
                    logger.debug("[TRACKER] Tracker reset by a callback, dropping queued events")
                    break
                self._invoke(callback, args)

    def _step(self, frame: np.ndarray, now: float) -> None:
        try:
            if self._turn_start_at is not None and now >= self._turn_start_at:
                self._turn_start_at = None
                self._begin_turn(frame)

            self._update_board(frame)

            if self._state in WAITING_STATES:
                self._process_waiting(frame, now)
            elif self._state == TrackerState.TURN_COMPLETE:
                if self._turn_complete_at is None or now >= self._turn_complete_at:
                    self._turn_complete_at = None
                    self._set_state(TrackerState.WAITING_REMOVAL)
                    logger.info("[TRACKER] Waiting for darts to be removed")
            elif self._state == TrackerState.WAITING_REMOVAL:
                self._check_removal(frame, now)
        except (NoReferenceFrame, NoBoardGeometry) as e:
            logger.debug(f"[TRACKER] Skipping iteration: {e}")
        except AutoscoreError as e:
            logger.warning(f"[TRACKER] Skipping iteration: {e}")

    def _capture(self) -> Optional[np.ndarray]:
        try:
            frame = self._source.capture_frame()
        except Exception as e:
            logger.warning(f"[TRACKER] Frame capture failed: {e}")
            return None
        if frame is None:
            return None

        try:
            return ensure_frame(frame)
        except InvalidFrameDimensions as e:
            logger.warning(f"[TRACKER] Bad frame from source: {e}")
            return None

    # ------------------------------------------------------------------
    # Steps (called with the lock held)
    # ------------------------------------------------------------------

    def _schedule_turn_start(self, extra_delay: float) -> None:
        with self._lock:
            delay = extra_delay + self.config.tracker.settle_delay_s
            self._turn_start_at = self._clock() + delay
        logger.info(f"[TRACKER] Turn starts in {delay:.2f}s")

    def _begin_turn(self, frame: np.ndarray) -> None:
        """Capture the empty-board reference and arm dart detection."""
        self._reference = frame
        self._original_reference = frame
        self._save_reference_snapshot(frame)

        self._darts = []
        self._turn_complete_at = None
        self._stabilizer.reset()
        self._motion_status = None

        if self._board_detected:
            self._set_state(TrackerState.WAITING_DART_1)
        else:
            self._set_state(TrackerState.NO_BOARD)
        logger.info(f"[TRACKER] Turn started ({self._state.value})")

    def _save_reference_snapshot(self, frame: np.ndarray) -> None:
        if self._storage is None:
            return

        try:
            data_url = self._source.capture_frame_as_data_url(self.config.tracker.snapshot_quality)
        except Exception as e:
            logger.warning(f"[TRACKER] Snapshot capture failed: {e}")
            return
        if not data_url:
            return

        calibration = self._calibration or self._storage.load()
        if calibration is None:
            h, w = frame.shape[:2]
            calibration = get_default_calibration(w, h)
        if self._board is not None:
            calibration = replace(calibration, center=self._board.center, radius=self._board.radius)

        self._calibration = set_reference_frame(calibration, data_url)
        self._storage.save(self._calibration)

    def _update_board(self, frame: np.ndarray) -> None:
        detection = self._board_detector.detect(frame)
        tolerance = max(1, self.config.tracker.board_miss_tolerance)

        if detection is not None:
            self._board_misses = 0
            self._smoother.add_detection(detection)
            self._board = self._smoother.get_smoothed()
            detected = True
        else:
            self._board_misses += 1
            detected = self._board_detected and self._board_misses < tolerance
            if not detected:
                self._board = None
                self._smoother.reset()

        if detected != self._board_detected:
            self._board_detected = detected
            if detected:
                logger.info(
                    f"[BOARD] Board detected at ({self._board.center.x:.0f}, {self._board.center.y:.0f}) "
                    f"r={self._board.radius:.0f}px"
                )
            else:
                logger.info("[BOARD] Board lost")
            self._emit(self.callbacks.on_board_detected, detected)

        if detected and self._state == TrackerState.NO_BOARD:
            self._stabilizer.reset()
            self._set_state(WAITING_STATES[len(self._darts)])
        elif not detected and self._state in WAITING_STATES:
            self._set_state(TrackerState.NO_BOARD)

    def _process_waiting(self, frame: np.ndarray, now: float) -> None:
        if self._board is None:
            raise NoBoardGeometry("Board geometry lost")
        if self._reference is None:
            raise NoReferenceFrame("Turn has no reference frame")

        motion = self._stabilizer.update(frame)
        if motion.has_motion:
            status = MOTION_DETECTED
        elif motion.is_stable:
            status = DART_LANDED
        else:
            status = WAITING_FOR_DART

        if status != self._motion_status:
            self._motion_status = status
            self._emit(self.callbacks.on_motion_status, status)

        if not motion.is_stable:
            return

        debounce_s = self.config.tracker.detection_debounce_ms / 1000.0
        if self._last_detection_at is not None and now - self._last_detection_at < debounce_s:
            return

        candidate = self._validator.detect(frame, self._reference, self._board)
        if candidate is None:
            return

        result = score_from_pixel(candidate.tip, self._board, candidate.confidence)
        dart = DartDetection(
            segment=result.segment,
            multiplier=result.multiplier,
            points=result.points,
            confidence=result.confidence,
            dart_position=candidate.tip,
        )

        self._darts.append(dart)
        dart_number = len(self._darts)
        self._last_detection_at = now
        logger.info(
            f"[DART] Dart {dart_number} detected: {format_detection_result(result)} "
            f"({result.points} pts, confidence {result.confidence:.2f})"
        )
        self._emit(self.callbacks.on_dart_detected, dart, dart_number)

        # The next dart is diffed against a board that includes this one
        self._reference = frame
        self._stabilizer.reset()
        self._motion_status = None
        logger.info(f"[REBASE] Reference frame now includes {dart_number} dart(s)")

        if dart_number >= DARTS_PER_TURN:
            self._turn_complete_at = now + self.config.tracker.turn_complete_delay_s
            self._set_state(TrackerState.TURN_COMPLETE)
            self._emit(self.callbacks.on_turn_complete, list(self._darts))
        else:
            self._set_state(WAITING_STATES[dart_number])

    def _check_removal(self, frame: np.ndarray, now: float) -> None:
        if self._original_reference is None:
            raise NoReferenceFrame("No empty-board reference to compare against")

        diff = detect_frame_difference(frame, self._original_reference, self.config.frame_diff)
        if diff.change_area >= self.config.tracker.removal_threshold:
            return

        logger.info("[TRACKER] Darts removed, ready for next turn")
        self._set_state(TrackerState.IDLE)
        self._schedule_turn_start(self.config.tracker.rearm_delay_s)

    def _set_state(self, state: TrackerState, force: bool = False) -> None:
        if state == self._state and not force:
            return
        previous = self._state
        self._state = state
        logger.debug(f"[TRACKER] {previous.value} -> {state.value}")
        self._emit(self.callbacks.on_state_change, state)

    def _emit(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        if self._pending is not None:
            self._pending.append((callback, args))
            return
        self._invoke(callback, args)

    def _invoke(self, callback: Callable, args: tuple) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"[TRACKER] Callback {getattr(callback, '__name__', callback)} failed: {e}", exc_info=True)
