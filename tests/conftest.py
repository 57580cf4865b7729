import pytest

from autoscore.core.config import AutoscoreConfig, TrackerConfig

from synthetic_board import FakeClock, FakeFrameSource, blank_frame, board_frame


@pytest.fixture(scope="session")
def empty_board():
    return board_frame()


@pytest.fixture
def no_board():
    return blank_frame()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source(empty_board):
    return FakeFrameSource(empty_board)


@pytest.fixture
def fast_config():
    """Default pipeline with the UI pacing delays removed."""
    return AutoscoreConfig(
        tracker=TrackerConfig(settle_delay_s=0.0, turn_complete_delay_s=0.0, rearm_delay_s=0.0)
    )
