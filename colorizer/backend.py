# colorizer/backend.py
from __future__ import annotations

"""
Backend selection. CPU and GPU are interchangeable behind colorize().
"""

from typing import Literal, Optional

import numpy as np

from .core_types import ColorizeConfig, U8Image, assert_u8_image_rgb
from .cpu.match import ColourCache, checked_palette
from .cpu.run import colorize_cpu
from .gpu.compute import ComputeContext
from .gpu.run import colorize_gpu

Backend = Literal["cpu", "gpu"]
BACKENDS = ("cpu", "gpu")


def colorize(
    image: U8Image,
    config: ColorizeConfig,
    backend: Backend = "cpu",
    cache: Optional[ColourCache] = None,
    debug: bool = False,
    gpu_context: Optional[ComputeContext] = None,
    progress: bool = False,
) -> U8Image:
    """
    Recolour image toward config.palette with the chosen backend.

    Args:
      image: uint8 [H,W,3], non-empty
      config: resolved settings
      backend: "cpu" or "gpu"; there is no automatic fallback
      cache: CPU colour memo to share across calls (ignored on the GPU)
      debug: log stage timings
      gpu_context: device to reuse across calls (GPU only)
      progress: single-line stage progress on stdout
    Returns:
      new uint8 [H,W,3] image
    """
    img = assert_u8_image_rgb(np.asarray(image))
    checked_palette(config.palette)
    if backend == "cpu":
        return colorize_cpu(img, config, cache=cache, debug=debug, progress=progress)
    if backend == "gpu":
        return colorize_gpu(
            img, config, context=gpu_context, debug=debug, progress=progress
        )
    raise ValueError(f"unknown backend {backend!r}; expected one of {BACKENDS}")


__all__ = ["Backend", "BACKENDS", "colorize"]
