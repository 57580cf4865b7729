"""
Pipeline configuration.

Every stage takes its own dataclass of tunables. Defaults are the
empirically tuned values; a TOML file can override any of them:

    [frame_diff]
    diff_threshold = 25

    [tracker]
    detection_debounce_ms = 1500
"""
import os
import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional

import toml

from autoscore.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AUTOSCORE_CONFIG"


@dataclass
class FrameDiffConfig:
    diff_threshold: int = 30        # Minimum gray-level difference to count as changed
    min_contour_area: int = 50      # Smallest changed region worth reporting
    max_contour_area: int = 10000   # Larger regions are lighting shifts, not darts


@dataclass
class MotionConfig:
    motion_threshold: int = 500          # Changed pixels that count as motion
    stability_frames_required: int = 15  # ~0.5s at 30fps


@dataclass
class BoardConfig:
    segment_min_size: int = 30
    red_min_size: int = 20
    min_segments: int = 5
    min_red_points: int = 20
    min_board_radius: float = 100.0
    max_board_radius: float = 2000.0
    min_confidence: float = 0.5
    expected_segments: int = 20
    center_iterations: int = 5
    # Confidence weights
    segment_weight: float = 0.3
    fit_weight: float = 0.3
    red_bonus_max: float = 0.3
    size_weight: float = 0.1
    smoothing_history: int = 5


@dataclass
class DetectionConfig:
    min_dart_area: int = 100
    max_dart_area: int = 5000
    board_margin: float = 1.2            # Centroid may sit this far out, in radii
    min_aspect_ratio: float = 2.0
    max_aspect_ratio: float = 15.0
    ideal_aspect_min: float = 3.0
    ideal_aspect_max: float = 10.0
    inner_position: float = 0.8
    min_contrast: float = 30.0
    min_edge_length: float = 20.0
    min_confidence: float = 0.5
    # Confidence weights
    base_confidence: float = 0.3
    aspect_bonus: float = 0.2
    position_bonus: float = 0.15
    contrast_bonus_max: float = 0.2
    edge_bonus: float = 0.15
    # Optional feature stages
    use_contrast: bool = True
    use_edge: bool = True
    refine_tip_with_dark_pixels: bool = True
    min_dark_points: int = 5


@dataclass
class TrackerConfig:
    detection_debounce_ms: int = 1000
    removal_threshold: int = 100
    settle_delay_s: float = 0.5        # Board clearing time before capturing a reference
    turn_complete_delay_s: float = 0.5
    rearm_delay_s: float = 1.0
    board_miss_tolerance: int = 3
    loop_interval_s: float = 1.0 / 30
    snapshot_quality: float = 0.9


@dataclass
class AutoscoreConfig:
    frame_diff: FrameDiffConfig = field(default_factory=FrameDiffConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    board: BoardConfig = field(default_factory=BoardConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)


def _apply_section(section_cls, current, values: Dict[str, Any], section: str):
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown keys in [{section}]: {', '.join(sorted(unknown))}")
    return replace(current, **values)


def config_from_dict(data: Dict[str, Any]) -> AutoscoreConfig:
    """Build a config from a parsed mapping of section -> values."""
    config = AutoscoreConfig()
    sections = {f.name: f for f in fields(AutoscoreConfig)}

    for section, values in data.items():
        if section not in sections:
            raise ConfigError(f"Unknown config section [{section}]")
        if not isinstance(values, dict):
            raise ConfigError(f"Config section [{section}] must be a table")
        current = getattr(config, section)
        updated = _apply_section(type(current), current, values, section)
        config = replace(config, **{section: updated})

    return config


def load_config(path: Optional[str] = None) -> AutoscoreConfig:
    """
    Load configuration from a TOML file.

    Args:
        path: TOML file path; defaults to $AUTOSCORE_CONFIG. With neither,
            the built-in defaults are returned.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return AutoscoreConfig()

    try:
        data = toml.load(path)
    except (OSError, toml.TomlDecodeError) as e:
        raise ConfigError(f"Failed to read config {path}: {e}") from e

    logger.info(f"Loaded config from {path}")
    return config_from_dict(data)
