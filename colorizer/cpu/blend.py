# colorizer/cpu/blend.py
from __future__ import annotations

"""
Luminance transfer and blending with the source.

The stylized pixel keeps the source pixel's own L and takes a and b from the
spatially averaged colour. The result is mixed with the source in RGB:
factor 1 returns the stylized pixel, factor 0 the source pixel.
"""

from typing import Sequence

import numpy as np

from ..colour_convert import lab_to_rgb
from ..core_types import Lab, RGBTuple, U8Image


def stylize(averaged: Lab, original_lab: Lab) -> U8Image:
    """(L of original_lab, a and b of averaged) -> uint8 RGB, any leading shape."""
    avg = np.asarray(averaged, dtype=np.float64)
    final = np.empty(np.broadcast_shapes(avg.shape, np.shape(original_lab)))
    final[...] = avg
    final[..., 0] = np.asarray(original_lab, dtype=np.float64)[..., 0]
    return lab_to_rgb(final)


def _mix(stylized: np.ndarray, original: np.ndarray, factor: float) -> U8Image:
    s = stylized.astype(np.float64)
    o = original.astype(np.float64)
    return np.clip(np.rint(s * factor + o * (1.0 - factor)), 0, 255).astype(np.uint8)


def blend(
    averaged: Lab,
    original_lab: Lab,
    original_rgb: Sequence[int] | np.ndarray,
    factor: float,
) -> RGBTuple:
    """Blend one pixel; see module docstring."""
    px = _mix(
        stylize(averaged, original_lab),
        np.asarray(original_rgb, dtype=np.uint8).reshape(3),
        float(factor),
    )
    return (int(px[0]), int(px[1]), int(px[2]))


def blend_image(
    averaged: Lab, original_lab: Lab, original_rgb: U8Image, factor: float
) -> U8Image:
    """
    Array form of blend().

    Args:
      averaged: Lab [...,3] windowed means
      original_lab: Lab [...,3] of the source pixels
      original_rgb: uint8 [...,3] source pixels
      factor: 0..1
    Returns:
      uint8 [...,3]
    """
    return _mix(stylize(averaged, original_lab), np.asarray(original_rgb), float(factor))


__all__ = ["stylize", "blend", "blend_image"]
