# tests/test_integral.py
from __future__ import annotations

import numpy as np
import pytest

from colorizer.colour_convert import rgb_to_lab
from colorizer.cpu.integral import (
    build_table,
    build_table_from_rgb,
    rect_sum,
    windowed_average,
    windowed_average_image,
)


@pytest.fixture
def lab_image(rng):
    return rgb_to_lab(rng.integers(0, 256, size=(13, 17, 3), dtype=np.uint8))


def test_table_layout(lab_image):
    table = build_table(lab_image)
    assert table.shape == (14, 18, 3)
    assert table.dtype == np.float64
    assert np.all(table[0] == 0.0) and np.all(table[:, 0] == 0.0)
    assert np.allclose(table[-1, -1], lab_image.reshape(-1, 3).sum(axis=0))


def test_rectangles_match_brute_force(lab_image, rng):
    table = build_table(lab_image)
    h, w = lab_image.shape[:2]
    for _ in range(100):
        y1, y2 = sorted(rng.integers(0, h, size=2).tolist())
        x1, x2 = sorted(rng.integers(0, w, size=2).tolist())
        expected = lab_image[y1 : y2 + 1, x1 : x2 + 1].reshape(-1, 3).sum(axis=0)
        assert np.allclose(rect_sum(table, x1, y1, x2, y2), expected)


def test_table_from_rgb(rng):
    rgb = rng.integers(0, 256, size=(5, 6, 3), dtype=np.uint8)
    assert np.allclose(build_table_from_rgb(rgb), build_table(rgb_to_lab(rgb)))


def test_zero_radius_from_table_alone_is_within_rounding(lab_image):
    table = build_table(lab_image)
    h, w = lab_image.shape[:2]
    for y in range(h):
        for x in range(w):
            got = windowed_average(x, y, 0, table, w, h)
            assert np.allclose(got, lab_image[y, x], rtol=0, atol=1e-9)


def test_zero_radius_with_source_lab_is_bit_exact(lab_image):
    table = build_table(lab_image)
    h, w = lab_image.shape[:2]
    for y in range(h):
        for x in range(w):
            got = windowed_average(x, y, 0, table, w, h, lab=lab_image)
            assert np.array_equal(got, lab_image[y, x])
    assert np.array_equal(
        windowed_average_image(table, 0, (2, 7), lab=lab_image), lab_image[2:7]
    )


def test_source_lab_is_ignored_for_positive_radius(lab_image):
    table = build_table(lab_image)
    assert np.array_equal(
        windowed_average_image(table, 2, lab=lab_image),
        windowed_average_image(table, 2),
    )


def test_corner_window_divides_by_clamped_area():
    lab = np.arange(4 * 4 * 3, dtype=np.float64).reshape(4, 4, 3)
    table = build_table(lab)
    got = windowed_average(0, 0, 5, table, 4, 4)
    assert np.allclose(got, lab.reshape(-1, 3).sum(axis=0) / 16.0)


def test_edge_window_is_clamped():
    lab = np.zeros((4, 4, 3))
    lab[:, 0] = 8.0
    table = build_table(lab)
    # x in [0,1], y in [0,2]: 6 pixels, 3 of them 8.0
    assert np.allclose(windowed_average(0, 1, 1, table, 4, 4)[0], 8.0 * 3 / 6)
    assert np.allclose(windowed_average(3, 3, 1, table, 4, 4), 0.0)


def test_single_pixel_large_radius():
    lab = np.array([[[42.0, -3.0, 7.0]]])
    table = build_table(lab)
    assert np.allclose(windowed_average(0, 0, 5, table, 1, 1), lab[0, 0])
    assert np.allclose(windowed_average_image(table, 5), lab)


@pytest.mark.parametrize("radius", [0, 1, 3, 40])
def test_image_form_matches_pointwise(lab_image, radius):
    table = build_table(lab_image)
    h, w = lab_image.shape[:2]
    full = windowed_average_image(table, radius)
    assert full.shape == lab_image.shape
    for y in (0, 4, h - 1):
        for x in (0, 7, w - 1):
            assert np.allclose(full[y, x], windowed_average(x, y, radius, table, w, h))
    part = windowed_average_image(table, radius, (3, 9))
    assert np.array_equal(part, full[3:9])
