# colorizer/cpu/integral.py
from __future__ import annotations

"""
Summed-area table (integral image) over Lab and O(1) windowed means.

Layout: table[y, x] holds the per-channel sum of pixels in rows 0..y-1 and
columns 0..x-1, so row 0 and column 0 are zero and the table is [H+1, W+1, 3].

Window queries clamp to the image; the divisor is the clamped pixel count.
"""

from typing import Optional, Tuple

import numpy as np

from ..colour_convert import rgb_to_lab_threaded
from ..core_types import Lab, SummedAreaTable, U8Image


def build_table(lab_image: Lab) -> SummedAreaTable:
    """
    Integral image of a Lab image [H,W,3] -> float64 [H+1,W+1,3].

    Running the row-wise cumulative sum and then the column-wise one evaluates
    t[y,x] = t[y-1,x] + t[y,x-1] - t[y-1,x-1] + img[y-1,x-1] for every cell.
    """
    src = np.asarray(lab_image, dtype=np.float64)
    height, width = src.shape[0], src.shape[1]
    table = np.zeros((height + 1, width + 1, src.shape[2]), dtype=np.float64)
    table[1:, 1:] = np.cumsum(np.cumsum(src, axis=0), axis=1)
    return table


def build_table_from_rgb(rgb: U8Image, workers: int = 1) -> SummedAreaTable:
    """Integral image of an 8-bit image after converting it to Lab."""
    return build_table(rgb_to_lab_threaded(rgb, workers))


def _clamped_bounds(
    centre: np.ndarray | int, radius: int, size: int
) -> Tuple[np.ndarray, np.ndarray]:
    lo = np.clip(np.asarray(centre) - radius, 0, size - 1)
    hi = np.clip(np.asarray(centre) + radius, 0, size - 1)
    return lo, hi


def rect_sum(table: SummedAreaTable, x1: int, y1: int, x2: int, y2: int) -> np.ndarray:
    """Per-channel sum over the inclusive rectangle [x1,x2] x [y1,y2]."""
    return (
        table[y2 + 1, x2 + 1]
        - table[y1, x2 + 1]
        - table[y2 + 1, x1]
        + table[y1, x1]
    )


def windowed_average(
    x: int,
    y: int,
    radius: int,
    table: SummedAreaTable,
    width: int,
    height: int,
    lab: Optional[Lab] = None,
) -> Lab:
    """
    Mean Lab over [x-r, x+r] x [y-r, y+r] clamped to the image.

    lab is the image the table was built from; with radius 0 its pixel is
    returned unchanged.
    """
    if radius == 0 and lab is not None:
        return np.array(lab[y, x], dtype=np.float64)
    x1, x2 = (int(v) for v in _clamped_bounds(x, radius, width))
    y1, y2 = (int(v) for v in _clamped_bounds(y, radius, height))
    count = (x2 - x1 + 1) * (y2 - y1 + 1)
    return rect_sum(table, x1, y1, x2, y2) / float(count)


def windowed_average_image(
    table: SummedAreaTable,
    radius: int,
    rows: Optional[Tuple[int, int]] = None,
    lab: Optional[Lab] = None,
) -> Lab:
    """
    windowed_average() for every pixel of a row span.

    Args:
      table: float64 [H+1,W+1,3]
      radius: window half-width, >= 0
      rows: [start, end) rows to evaluate; all rows when None
      lab: Lab image the table was built from; returned directly for radius 0
    Returns:
      float64 [end-start, W, 3]
    """
    height, width = table.shape[0] - 1, table.shape[1] - 1
    start, end = rows if rows is not None else (0, height)
    if radius == 0 and lab is not None:
        return np.array(lab[start:end], dtype=np.float64)
    y1, y2 = _clamped_bounds(np.arange(start, end), radius, height)
    x1, x2 = _clamped_bounds(np.arange(width), radius, width)

    region_sum = (
        table[np.ix_(y2 + 1, x2 + 1)]
        - table[np.ix_(y1, x2 + 1)]
        - table[np.ix_(y2 + 1, x1)]
        + table[np.ix_(y1, x1)]
    )
    area = ((y2 - y1 + 1)[:, None] * (x2 - x1 + 1)[None, :]).astype(np.float64)
    return region_sum / area[..., None]


__all__ = [
    "build_table",
    "build_table_from_rgb",
    "rect_sum",
    "windowed_average",
    "windowed_average_image",
]
