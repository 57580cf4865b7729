"""
Motion stabilization.

Tracks frame-to-frame change to decide when things have stopped moving.
A thrown dart (and the hand that threw it) produces motion; once the
changed area stays under the threshold for enough consecutive frames the
dart has landed and it is safe to diff against the long-lived reference.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from autoscore.core.config import FrameDiffConfig, MotionConfig
from autoscore.core.frame_diff import detect_frame_difference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MotionState:
    is_stable: bool = False
    stability_frames: int = 0
    last_motion_area: int = 0
    has_motion: bool = False


def detect_motion(
    current_frame: np.ndarray,
    previous_frame: Optional[np.ndarray],
    motion_threshold: int = 500,
    diff_config: Optional[FrameDiffConfig] = None
):
    """
    Returns:
        (has_motion, motion_area)
    """
    if previous_frame is None:
        return False, 0

    diff = detect_frame_difference(current_frame, previous_frame, diff_config)
    return diff.change_area > motion_threshold, diff.change_area


def update_motion_state(
    state: MotionState,
    has_motion: bool,
    motion_area: int,
    stability_frames_required: int = 15
) -> MotionState:
    """Advance the stability counter by one frame."""
    if has_motion:
        return MotionState(
            is_stable=False,
            stability_frames=0,
            last_motion_area=motion_area,
            has_motion=True,
        )

    frames = state.stability_frames + 1
    return MotionState(
        is_stable=frames >= stability_frames_required,
        stability_frames=frames,
        last_motion_area=motion_area,
        has_motion=False,
    )


class MotionStabilizer:
    """Keeps the previous frame and the running MotionState."""

    def __init__(
        self,
        config: Optional[MotionConfig] = None,
        diff_config: Optional[FrameDiffConfig] = None
    ):
        self.config = config or MotionConfig()
        self.diff_config = diff_config or FrameDiffConfig()
        self._state = MotionState()
        self._previous: Optional[np.ndarray] = None

    @property
    def state(self) -> MotionState:
        return self._state

    def update(self, frame: np.ndarray) -> MotionState:
        """Feed the next frame and return the new state."""
        if self._previous is not None and self._previous.shape != frame.shape:
            logger.debug("[MOTION] Frame size changed, restarting comparison")
            self._previous = None

        has_motion, area = detect_motion(
            frame,
            self._previous,
            self.config.motion_threshold,
            self.diff_config,
        )
        self._previous = frame
        self._state = update_motion_state(
            self._state,
            has_motion,
            area,
            self.config.stability_frames_required,
        )
        return self._state

    def reset(self) -> None:
        self._state = MotionState()
        self._previous = None
