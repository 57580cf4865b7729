"""
Color segmentation and contour extraction tests.
"""
import numpy as np
import pytest

from autoscore.core.color import BLUE_HSV, DART_BLACK_HSV, RED_HSV, WHITE_HSV, matches, segment_color
from autoscore.core.contours import (
    aspect_ratio,
    bounding_box,
    closest_point,
    contour_centroid,
    farthest_point,
    find_contours,
    merge_points,
)
from autoscore.core.errors import InvalidFrameDimensions
from autoscore.core.geometry import Point
from autoscore.core.imaging import ensure_frame, to_hsv


def test_red_hue_wraps_around():
    # RGB (255, 0, 9) has a hue of about 358 degrees
    pixel = np.array([[[255, 0, 9, 255]]], dtype=np.uint8)
    assert to_hsv(pixel)[0, 0, 0] == pytest.approx(357.9, abs=0.2)
    assert matches(255, 0, 9, RED_HSV)


def test_board_colors():
    assert matches(220, 30, 30, RED_HSV)
    assert matches(0, 80, 255, BLUE_HSV)
    assert matches(235, 235, 235, WHITE_HSV)
    assert matches(20, 20, 20, DART_BLACK_HSV)

    assert not matches(0, 150, 0, RED_HSV)
    assert not matches(0, 150, 0, BLUE_HSV)
    assert not matches(235, 235, 235, BLUE_HSV)
    assert not matches(235, 235, 235, DART_BLACK_HSV)
    # Dim reds fail the value floor
    assert not matches(60, 0, 0, RED_HSV)


def test_segment_color_mask_values():
    frame = np.zeros((2, 2, 4), dtype=np.uint8)
    frame[..., 3] = 255
    frame[0, 0, :3] = (0, 80, 255)

    mask = segment_color(frame, BLUE_HSV)
    assert mask.dtype == np.uint8
    assert mask.tolist() == [[255, 0], [0, 0]]


def test_ensure_frame_rejects_bad_shapes():
    with pytest.raises(InvalidFrameDimensions):
        ensure_frame(np.zeros((10, 10, 3), dtype=np.uint8))
    with pytest.raises(InvalidFrameDimensions):
        ensure_frame(np.zeros((0, 10, 4), dtype=np.uint8))
    with pytest.raises(InvalidFrameDimensions):
        ensure_frame([[1, 2, 3, 4]])

    frame = ensure_frame(np.zeros((4, 4, 4), dtype=np.uint8))
    assert not frame.flags.writeable


def test_find_contours_uses_four_connectivity():
    mask = np.zeros((5, 5), dtype=np.uint8)
    mask[0, 0] = 255
    mask[1, 1] = 255  # Diagonal neighbor only

    contours = find_contours(mask, min_size=1)
    assert len(contours) == 2
    assert contours[0].tolist() == [[0, 0]]
    assert contours[1].tolist() == [[1, 1]]


def test_find_contours_size_filters_and_order():
    mask = np.zeros((40, 40), dtype=np.uint8)
    mask[30:35, 2:7] = 1     # 25 px, lower left
    mask[2:4, 20:30] = 1     # 20 px, top
    mask[10, 10] = 1         # 1 px noise

    contours = find_contours(mask, min_size=10)
    assert [len(c) for c in contours] == [20, 25]

    assert [len(c) for c in find_contours(mask, min_size=10, max_size=22)] == [20]
    assert find_contours(np.zeros((5, 5), np.uint8), min_size=1) == []


def test_contour_helpers():
    contour = np.array([[x, y] for y in range(10, 13) for x in range(20, 30)], dtype=np.int32)

    assert bounding_box(contour) == (20, 10, 29, 12)
    assert aspect_ratio(contour) == pytest.approx(9 / 2)
    assert contour_centroid(contour) == Point(24.5, 11.0)
    assert closest_point(contour, Point(0, 11)) == Point(20.0, 11.0)
    assert farthest_point(contour, Point(0, 11)).x == 29.0
    assert len(merge_points([contour, contour])) == 60
    assert merge_points([]).shape == (0, 2)


def test_aspect_ratio_degenerate_contours():
    assert aspect_ratio(np.array([[0, 0], [1, 1], [2, 2]])) == 0.0
    line = np.array([[x, 5] for x in range(10)])
    assert aspect_ratio(line) == 0.0
