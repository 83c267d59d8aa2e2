# colorizer/cpu/__init__.py
"""
CPU backend.

Provides:
  colorize_cpu(image, config, cache=None, debug=False) -> U8Image
    Recolour an RGB image toward config.palette.

    Args:
      image  : uint8 [H,W,3]
      config : ColorizeConfig
      cache  : ColourCache shared across calls (e.g. a batch), optional
      debug  : bool, log per-stage timings and cache stats

    Returns:
      uint8 [H,W,3] new image.

    Notes:
      - Stage 1 palette match + dither and Stage 3 blend run on a thread pool
        over disjoint row spans.
      - Stage 2 builds a float64 summed-area table of the Stage-1 image.
"""

from .match import ColourCache, match_colour, match_colours
from .run import colorize_cpu

__all__ = ["ColourCache", "match_colour", "match_colours", "colorize_cpu"]
