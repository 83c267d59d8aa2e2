# colorizer/errors.py
"""
Typed failures raised by the colorizer core and its config layer.

Nothing here retries. Callers decide what a failure means for the rest of a
batch.
"""


class ColorizerError(Exception):
    """Base class for all colorizer failures."""


class PaletteEmpty(ColorizerError, ValueError):
    """The palette has no entries. Raised before any pixel work."""


class ConfigError(ColorizerError, ValueError):
    """A config file, value or colorscheme could not be resolved."""


class DeviceUnavailable(ColorizerError, RuntimeError):
    """No usable GPU adapter or device (or wgpu itself is missing)."""


class BufferMapFailed(ColorizerError, RuntimeError):
    """A GPU result buffer could not be mapped for reading."""


__all__ = [
    "ColorizerError",
    "PaletteEmpty",
    "ConfigError",
    "DeviceUnavailable",
    "BufferMapFailed",
]
