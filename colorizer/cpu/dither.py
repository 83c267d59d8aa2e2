# colorizer/cpu/dither.py
from __future__ import annotations

"""
Random step dithering in Lab.

Each channel moves toward the reference by amount * U, with U drawn
uniformly from [0,1) per channel per pixel. With the matched colour as its
own reference (the default) the step is zero.
"""

from typing import Optional

import numpy as np

from ..core_types import Lab


def dither(
    colour: Lab,
    target: Lab,
    amount: float,
    rng: Optional[np.random.Generator] = None,
) -> Lab:
    """Move one Lab colour toward target by a random fraction of amount per channel."""
    c = np.asarray(colour, dtype=np.float64)
    if amount <= 0.0:
        return c.copy()
    rng = rng if rng is not None else np.random.default_rng()
    return c + (np.asarray(target, dtype=np.float64) - c) * amount * rng.random(3)


def dither_image(
    colours: Lab,
    targets: Lab,
    amount: float,
    rng: Optional[np.random.Generator] = None,
) -> Lab:
    """
    Array form of dither().

    Args:
      colours: Lab [...,3]
      targets: Lab broadcastable to colours
      amount: 0..1
      rng: generator owned by the calling thread
    Returns:
      float64 Lab with the shape of colours
    """
    c = np.asarray(colours, dtype=np.float64)
    if amount <= 0.0:
        return c.copy()
    rng = rng if rng is not None else np.random.default_rng()
    step = (np.asarray(targets, dtype=np.float64) - c) * amount
    return c + step * rng.random(c.shape)


__all__ = ["dither", "dither_image"]
