# colorizer/gpu/__init__.py
"""
GPU backend (wgpu compute shaders).

Provides:
  colorize_gpu(image, config, context=None, debug=False) -> U8Image
    Same contract as colorize_cpu; results agree with it within rounding.

  ComputeContext
    Adapter/device/queue wrapper. ComputeContext.acquire() raises
    DeviceUnavailable when wgpu is missing or no adapter can be used.

Notes:
  - wgpu is an optional dependency (the 'gpu' extra) and is imported lazily.
  - Shaders ship as package data under shaders/.
"""

from .compute import ComputeContext
from .run import GpuColorizer, GpuStage, colorize_gpu

__all__ = ["ComputeContext", "GpuColorizer", "GpuStage", "colorize_gpu"]
