"""
HSV color segmentation for the printed board colors and the dart barrel.
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np

from autoscore.core.imaging import to_hsv


@dataclass(frozen=True)
class HsvRange:
    """
    Inclusive HSV bounds. H in degrees, S/V in [0, 255].

    wrap_min: hues at or above this value also match. Red sits on both
    ends of the hue circle, so its window is [h_min, h_max] OR [wrap_min, 360].
    """
    h_min: float
    h_max: float
    s_min: float
    s_max: float
    v_min: float
    v_max: float
    wrap_min: Optional[float] = None


BLUE_HSV = HsvRange(h_min=200, h_max=240, s_min=50, s_max=255, v_min=50, v_max=255)
RED_HSV = HsvRange(h_min=0, h_max=15, s_min=100, s_max=255, v_min=100, v_max=255, wrap_min=345)
WHITE_HSV = HsvRange(h_min=0, h_max=360, s_min=0, s_max=30, v_min=200, v_max=255)
# Any saturation, at most 80% value
DART_BLACK_HSV = HsvRange(h_min=0, h_max=360, s_min=0, s_max=255, v_min=0, v_max=204)


def hsv_mask(hsv: np.ndarray, color: HsvRange) -> np.ndarray:
    """Binary mask (0/255) of HSV pixels inside the range."""
    h = hsv[..., 0]
    s = hsv[..., 1]
    v = hsv[..., 2]

    hue_ok = (h >= color.h_min) & (h <= color.h_max)
    if color.wrap_min is not None:
        hue_ok |= h >= color.wrap_min

    inside = (
        hue_ok
        & (s >= color.s_min) & (s <= color.s_max)
        & (v >= color.v_min) & (v <= color.v_max)
    )
    return inside.astype(np.uint8) * 255


def segment_color(frame: np.ndarray, color: HsvRange) -> np.ndarray:
    """Classify every pixel of an RGBA frame against one color range."""
    return hsv_mask(to_hsv(frame), color)


def matches(r: int, g: int, b: int, color: HsvRange) -> bool:
    """Single-pixel convenience check."""
    pixel = np.array([[[r, g, b, 255]]], dtype=np.uint8)
    return bool(segment_color(pixel, color)[0, 0])
