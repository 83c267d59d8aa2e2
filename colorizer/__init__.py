# colorizer/__init__.py
"""
colorizer package.

Purpose:
  Recolour images toward a colour scheme while keeping their luminance.
  See colorize.py for the CLI.

Public API:
  colorize        : backend-agnostic entry point (cpu | gpu).
  ColorizeConfig  : immutable run settings (palette, blend, dither, radius).
  ColourCache     : RGB8 -> matched Lab memo, shareable across images.
  resolve_config  : defaults + TOML files + overrides -> ColorizeConfig.
  colour_convert  : sRGB/Lab transforms and (improved) CIEDE2000.
  palette_data    : built-in schemes, palette build and interpolation.
  utils           : image I/O, row splitting, logging.

Quick start:
  from colorizer import ColorizeConfig, colorize
  from colorizer.palette_data import KANAGAWA, build_palette
  out = colorize(rgb, ColorizeConfig(palette=build_palette(KANAGAWA)))
"""

__version__ = "0.4.0"

from . import colour_convert
from . import core_types
from . import palette_data
from . import utils
from . import cpu
from . import gpu

from .backend import BACKENDS, colorize  # noqa: E402,F401
from .config import resolve_config  # noqa: E402,F401
from .core_types import ColorizeConfig  # noqa: E402,F401
from .cpu.match import ColourCache  # noqa: E402,F401
from .errors import (  # noqa: E402,F401
    BufferMapFailed,
    ColorizerError,
    ConfigError,
    DeviceUnavailable,
    PaletteEmpty,
)

__all__ = [
    "__version__",
    "colour_convert",
    "core_types",
    "palette_data",
    "utils",
    "cpu",
    "gpu",
    "BACKENDS",
    "colorize",
    "resolve_config",
    "ColorizeConfig",
    "ColourCache",
    "ColorizerError",
    "PaletteEmpty",
    "ConfigError",
    "DeviceUnavailable",
    "BufferMapFailed",
]
