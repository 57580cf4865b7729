"""
Dart turn tracker tests.

Frames come from a FakeFrameSource and time from a FakeClock; each test
drives the tracker with tick() directly.
"""
import time
import threading

import numpy as np
import pytest

from autoscore.core.calibration import CalibrationData, is_calibration_complete
from autoscore.core.camera import encode_frame_as_data_url
from autoscore.core.config import AutoscoreConfig, MotionConfig, TrackerConfig
from autoscore.core.dart_tracker import (
    DART_LANDED,
    MOTION_DETECTED,
    WAITING_FOR_DART,
    DartTurnTracker,
    TrackerCallbacks,
    TrackerState,
)
from autoscore.core.geometry import Point
from autoscore.core.storage import CalibrationStore

from synthetic_board import DART_1, DART_2, DART_3, blank_frame, with_darts

# Yellow matches none of the board colors
HAND = (255, 255, 0)
# Off-board corners, so the board estimate is unaffected
HAND_SPOTS = ((10, 10), (440, 10))


def with_hand(frame, spot):
    x, y = spot
    out = frame.copy()
    out[y:y + 30, x:x + 30, :3] = HAND
    return out


def loop_threads():
    return sum(1 for t in threading.enumerate() if t.name == "dart-tracker" and t.is_alive())


class Recorder:
    """Collects every callback invocation."""

    def __init__(self):
        self.darts = []
        self.turns = []
        self.states = []
        self.boards = []
        self.motion = []

    def callbacks(self) -> TrackerCallbacks:
        return TrackerCallbacks(
            on_dart_detected=lambda dart, n: self.darts.append((dart, n)),
            on_turn_complete=lambda darts: self.turns.append(darts),
            on_state_change=self.states.append,
            on_board_detected=self.boards.append,
            on_motion_status=self.motion.append,
        )


def run(tracker, clock, ticks, step=0.1):
    for _ in range(ticks):
        clock.advance(step)
        tracker.tick()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def tracker(source, fast_config, clock, recorder):
    return DartTurnTracker(source, config=fast_config, callbacks=recorder.callbacks(), clock=clock)


def test_three_dart_turn(tracker, source, clock, recorder, empty_board):
    assert tracker.state == TrackerState.IDLE

    tracker.start_turn()
    run(tracker, clock, 1)
    assert recorder.states == [TrackerState.NO_BOARD, TrackerState.WAITING_DART_1]
    assert recorder.boards == [True]

    source.set_frame(with_darts(DART_1))
    run(tracker, clock, 20)
    assert tracker.state == TrackerState.WAITING_DART_2

    source.set_frame(with_darts(DART_1, DART_2))
    run(tracker, clock, 20)
    assert tracker.state == TrackerState.WAITING_DART_3

    source.set_frame(with_darts(DART_1, DART_2, DART_3))
    run(tracker, clock, 20)

    assert [n for _, n in recorder.darts] == [1, 2, 3]
    assert [(d.segment, d.multiplier, d.points) for d, _ in recorder.darts] == [(20, 1, 20), (6, 1, 6), (3, 1, 3)]
    assert [d.dart_position for d, _ in recorder.darts] == [Point(240, 180), Point(300, 240), Point(240, 300)]

    assert len(recorder.turns) == 1
    assert len(recorder.turns[0]) == 3
    assert recorder.states[-2:] == [TrackerState.TURN_COMPLETE, TrackerState.WAITING_REMOVAL]
    # Darts still in the board
    assert tracker.state == TrackerState.WAITING_REMOVAL

    source.set_frame(empty_board)
    run(tracker, clock, 1)
    assert tracker.state == TrackerState.IDLE

    run(tracker, clock, 1)
    assert tracker.state == TrackerState.WAITING_DART_1
    assert tracker.detected_darts == []
    assert len(recorder.darts) == 3


def test_motion_status_changes_are_reported(tracker, source, clock, recorder):
    tracker.start_turn()
    run(tracker, clock, 20)

    assert recorder.motion == [WAITING_FOR_DART, DART_LANDED]
    assert tracker.motion_status == DART_LANDED
    assert tracker.motion_state.is_stable


def test_stays_in_no_board_without_board(tracker, source, clock, recorder, no_board):
    source.set_frame(no_board)
    tracker.start_turn()
    run(tracker, clock, 10)

    assert tracker.state == TrackerState.NO_BOARD
    assert recorder.boards == []
    assert tracker.board_geometry is None
    assert tracker.get_status()["board"] is None


def test_board_loss_reverts_to_no_board(tracker, source, clock, recorder, empty_board, no_board):
    tracker.start_turn()
    run(tracker, clock, 1)
    assert tracker.state == TrackerState.WAITING_DART_1

    source.set_frame(no_board)
    run(tracker, clock, 2)
    # Tolerates a couple of missed frames
    assert tracker.state == TrackerState.WAITING_DART_1
    assert tracker.board_detected

    run(tracker, clock, 1)
    assert tracker.state == TrackerState.NO_BOARD
    assert recorder.boards == [True, False]

    source.set_frame(empty_board)
    run(tracker, clock, 1)
    assert tracker.state == TrackerState.WAITING_DART_1
    assert recorder.boards == [True, False, True]


def test_board_loss_resumes_at_next_dart(tracker, source, clock, no_board):
    tracker.start_turn()
    run(tracker, clock, 1)
    source.set_frame(with_darts(DART_1))
    run(tracker, clock, 20)
    assert tracker.state == TrackerState.WAITING_DART_2

    source.set_frame(no_board)
    run(tracker, clock, 3)
    assert tracker.state == TrackerState.NO_BOARD

    source.set_frame(with_darts(DART_1))
    run(tracker, clock, 1)
    assert tracker.state == TrackerState.WAITING_DART_2
    assert len(tracker.detected_darts) == 1


def test_debounce_blocks_rapid_second_detection(source, clock, recorder):
    config = AutoscoreConfig(
        motion=MotionConfig(stability_frames_required=3),
        tracker=TrackerConfig(settle_delay_s=0.0, detection_debounce_ms=1000),
    )
    tracker = DartTurnTracker(source, config=config, callbacks=recorder.callbacks(), clock=clock)

    tracker.start_turn()
    run(tracker, clock, 1, step=0.05)
    source.set_frame(with_darts(DART_1))
    run(tracker, clock, 2, step=0.05)
    assert len(recorder.darts) == 1

    source.set_frame(with_darts(DART_1, DART_2))
    run(tracker, clock, 10, step=0.05)
    # Stable again after 3 frames, but still inside the debounce window
    assert len(recorder.darts) == 1

    run(tracker, clock, 15, step=0.05)
    assert len(recorder.darts) == 2


def test_settle_delay_postpones_reference_capture(source, clock, recorder):
    config = AutoscoreConfig(tracker=TrackerConfig(settle_delay_s=0.5))
    tracker = DartTurnTracker(source, config=config, callbacks=recorder.callbacks(), clock=clock)

    tracker.start_turn()
    assert tracker.get_status()["turn_pending"]

    run(tracker, clock, 4)
    assert tracker.state == TrackerState.IDLE
    assert not tracker.get_status()["has_reference"]

    run(tracker, clock, 2)
    assert tracker.state == TrackerState.WAITING_DART_1
    assert tracker.get_status()["has_reference"]


def test_turn_start_persists_reference_snapshot(source, fast_config, clock, tmp_path):
    store = CalibrationStore(tmp_path / "calibration.json")
    tracker = DartTurnTracker(source, storage=store, config=fast_config, clock=clock)

    tracker.start_turn()
    run(tracker, clock, 1)

    saved = CalibrationStore(tmp_path / "calibration.json").load()
    assert is_calibration_complete(saved)
    assert saved.reference_frame.startswith("data:image/jpeg;base64,")

    # A fresh tracker restores the empty-board reference from storage
    restored = DartTurnTracker(source, storage=store, config=fast_config, clock=clock)
    restored.initialize()
    assert restored._original_reference is not None
    assert restored._original_reference.shape == (480, 480, 4)


def test_initialize_tolerates_bad_reference(source, fast_config):
    tracker = DartTurnTracker(source, config=fast_config)
    tracker.initialize(CalibrationData(center=Point(1, 1), radius=100, reference_frame="data:nonsense", timestamp=1.0))

    assert tracker._original_reference is None
    assert tracker.calibration.radius == 100


def test_capture_failures_are_skipped(clock):
    class BrokenSource:
        def capture_frame(self):
            raise RuntimeError("camera unplugged")

        def capture_frame_as_data_url(self, quality=0.9):
            return None

    broken = DartTurnTracker(BrokenSource(), clock=clock)
    broken.start_turn()
    broken.tick()
    assert broken.state == TrackerState.IDLE


def test_frame_size_change_does_not_stop_tracking(tracker, source, clock):
    tracker.start_turn()
    run(tracker, clock, 1)

    source.set_frame(blank_frame(400))
    run(tracker, clock, 5)
    # Board lost, nothing raised
    assert tracker.state == TrackerState.NO_BOARD


def test_failing_callback_does_not_break_tick(source, fast_config, clock):
    def explode(state):
        raise RuntimeError("listener bug")

    tracker = DartTurnTracker(
        source, config=fast_config, clock=clock, callbacks=TrackerCallbacks(on_state_change=explode)
    )
    tracker.start_turn()
    run(tracker, clock, 1)
    assert tracker.state == TrackerState.WAITING_DART_1


def test_reset_clears_turn_state(tracker, source, clock, recorder):
    tracker.start_turn()
    run(tracker, clock, 1)
    source.set_frame(with_darts(DART_1))
    run(tracker, clock, 20)
    assert len(tracker.detected_darts) == 1

    tracker.reset()

    status = tracker.get_status()
    assert tracker.state == TrackerState.IDLE
    assert recorder.states[-1] == TrackerState.IDLE
    assert tracker.detected_darts == []
    assert not status["has_reference"]
    assert not status["turn_pending"]
    assert not status["board_detected"]
    assert status["motion"]["stability_frames"] == 0


def test_status_snapshot(tracker, clock):
    tracker.start_turn()
    run(tracker, clock, 1)

    status = tracker.get_status()
    assert status["state"] == "waiting-dart-1"
    assert status["running"] is False
    assert status["board_detected"] is True
    assert status["board"]["radius"] > 100
    assert status["dart_count"] == 0


def test_background_loop_starts_and_stops(source, fast_config):
    tracker = DartTurnTracker(source, config=fast_config)
    tracker.start()
    try:
        assert tracker.is_running
        deadline = time.monotonic() + 5.0
        while source.captures == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert source.captures > 0
    finally:
        tracker.stop()

    assert not tracker.is_running
    captures = source.captures
    time.sleep(0.1)
    assert source.captures == captures


def test_darts_are_not_scored_while_motion_continues(tracker, source, clock, recorder):
    tracker.start_turn()
    run(tracker, clock, 1)

    dart = with_darts(DART_1)
    for i in range(10):
        source.set_frame(with_hand(dart, HAND_SPOTS[i % 2]))
        run(tracker, clock, 1)
        assert tracker.motion_status == MOTION_DETECTED
    assert recorder.darts == []

    source.set_frame(dart)
    # The hand leaving is the last motion, then 14 quiet frames
    run(tracker, clock, 15)
    assert recorder.darts == []
    assert tracker.state == TrackerState.WAITING_DART_1

    run(tracker, clock, 1)
    assert len(recorder.darts) == 1
    assert recorder.motion == [WAITING_FOR_DART, MOTION_DETECTED, WAITING_FOR_DART, DART_LANDED]
    assert tracker.state == TrackerState.WAITING_DART_2

    run(tracker, clock, 20)
    assert len(recorder.darts) == 1


def test_turn_complete_and_rearm_delays(source, clock, recorder, empty_board):
    config = AutoscoreConfig(
        tracker=TrackerConfig(settle_delay_s=0.0, turn_complete_delay_s=5.0, rearm_delay_s=3.0)
    )
    tracker = DartTurnTracker(source, config=config, callbacks=recorder.callbacks(), clock=clock)

    tracker.start_turn()
    run(tracker, clock, 1)
    for boxes in ((DART_1,), (DART_1, DART_2), (DART_1, DART_2, DART_3)):
        source.set_frame(with_darts(*boxes))
        run(tracker, clock, 20)

    assert len(recorder.turns) == 1
    assert tracker.state == TrackerState.TURN_COMPLETE

    run(tracker, clock, 60)
    assert tracker.state == TrackerState.WAITING_REMOVAL

    source.set_frame(empty_board)
    run(tracker, clock, 1)
    assert tracker.state == TrackerState.IDLE

    run(tracker, clock, 25)
    assert tracker.state == TrackerState.IDLE
    assert tracker.get_status()["turn_pending"]

    run(tracker, clock, 10)
    assert tracker.state == TrackerState.WAITING_DART_1


def test_reset_from_a_dart_callback_leaves_tracker_idle(source, fast_config, clock):
    states = []

    def on_dart(dart, number):
        tracker.reset()

    tracker = DartTurnTracker(
        source,
        config=fast_config,
        clock=clock,
        callbacks=TrackerCallbacks(on_dart_detected=on_dart, on_state_change=states.append),
    )
    tracker.start_turn()
    run(tracker, clock, 1)
    source.set_frame(with_darts(DART_1))
    run(tracker, clock, 20)

    status = tracker.get_status()
    assert tracker.state == TrackerState.IDLE
    assert tracker.detected_darts == []
    assert not status["has_reference"]
    assert not status["turn_pending"]
    assert states == [TrackerState.NO_BOARD, TrackerState.WAITING_DART_1, TrackerState.IDLE]


def test_callbacks_see_the_finished_step(source, fast_config, clock):
    seen = []

    def on_dart(dart, number):
        seen.append((number, tracker.state, len(tracker.detected_darts), tracker.motion_state.stability_frames))

    tracker = DartTurnTracker(
        source, config=fast_config, clock=clock, callbacks=TrackerCallbacks(on_dart_detected=on_dart)
    )
    tracker.start_turn()
    run(tracker, clock, 1)
    source.set_frame(with_darts(DART_1))
    run(tracker, clock, 20)

    assert seen == [(1, TrackerState.WAITING_DART_2, 1, 0)]


def test_restarting_the_loop_from_a_callback_keeps_one_loop(source, fast_config):
    restarted = threading.Event()

    def restart(detected):
        if not restarted.is_set():
            restarted.set()
            tracker.stop()
            tracker.start()

    tracker = DartTurnTracker(source, config=fast_config, callbacks=TrackerCallbacks(on_board_detected=restart))
    tracker.start()
    try:
        assert restarted.wait(5.0)
        deadline = time.monotonic() + 5.0
        while loop_threads() > 1 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert loop_threads() == 1
        assert tracker.is_running
    finally:
        tracker.stop()

    assert loop_threads() == 0


def test_turn_start_replaces_restored_reference(source, fast_config, clock, empty_board):
    stale = encode_frame_as_data_url(with_darts(DART_1))
    tracker = DartTurnTracker(source, config=fast_config, clock=clock)
    tracker.initialize(CalibrationData(center=Point(240, 240), radius=180, reference_frame=stale, timestamp=1.0))
    assert tracker._original_reference is not None

    tracker.start_turn()
    run(tracker, clock, 1)
    assert np.array_equal(tracker._original_reference, empty_board)
