# colorizer/core_types.py
from __future__ import annotations

"""
Core type aliases, the run configuration value object, and lightweight helpers.
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from .errors import PaletteEmpty

# Basic aliases

RGBTuple = Tuple[int, int, int]
HexStr = str

U8Image = NDArray[np.uint8]  # (H, W, 3)
Lab = NDArray[np.floating]  # (..., 3) CIE Lab
SummedAreaTable = NDArray[np.float64]  # (H+1, W+1, 3)

DitherReference = Literal["palette", "source"]

# Value objects


@dataclass(frozen=True)
class ColorizeConfig:
    """
    Resolved, immutable settings for one colorize run.

    palette          : float64 [P,3] Lab rows, order is the tie-break order
    blend_factor     : 0 keeps the original, 1 is fully stylized
    dither_amount    : fraction of the per-channel random step toward the reference
    spatial_radius   : half-width in pixels of the chroma averaging window
    workers          : threads for the CPU stages
    seed             : optional dither RNG seed (None draws fresh entropy)
    dither_reference : "palette" dithers the match toward itself,
                       "source" toward the source pixel's Lab
    """

    palette: Lab
    blend_factor: float = 0.9
    dither_amount: float = 0.1
    spatial_radius: int = 10
    workers: int = 1
    seed: Optional[int] = None
    dither_reference: DitherReference = "palette"
    colorscheme: str = field(default="custom", compare=False)

    def __post_init__(self) -> None:
        pal = np.asarray(self.palette, dtype=np.float64)
        if pal.size == 0:
            raise PaletteEmpty("palette has no entries")
        if pal.ndim != 2 or pal.shape[1] != 3:
            raise ValueError(f"palette must be [P,3] Lab rows, got {pal.shape}")
        object.__setattr__(self, "palette", pal)
        if not 0.0 <= float(self.blend_factor) <= 1.0:
            raise ValueError(f"blend_factor out of [0,1]: {self.blend_factor}")
        if not 0.0 <= float(self.dither_amount) <= 1.0:
            raise ValueError(f"dither_amount out of [0,1]: {self.dither_amount}")
        if int(self.spatial_radius) < 0:
            raise ValueError(f"spatial_radius must be >= 0: {self.spatial_radius}")
        if self.dither_reference not in ("palette", "source"):
            raise ValueError(f"unknown dither_reference {self.dither_reference!r}")
        object.__setattr__(self, "spatial_radius", int(self.spatial_radius))
        object.__setattr__(self, "workers", max(1, int(self.workers)))


# Small helpers


def hex_to_rgb(hex_str: HexStr) -> RGBTuple:
    """Parse '#rgb', '#rrggbb', 'rgb' or 'rrggbb' (case-insensitive) into an RGB tuple."""
    s = hex_str.strip().lower().lstrip("#")
    if len(s) == 3:
        s = "".join(ch * 2 for ch in s)
    if len(s) != 6:
        raise ValueError(
            f"invalid colour {hex_str!r}: expected a 3 or 6 digit hex code"
        )
    try:
        return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))
    except ValueError as exc:
        raise ValueError(f"invalid colour {hex_str!r}: {exc}") from exc


def hex_list_to_u8_rgb_array(hex_list: Sequence[str]) -> U8Image:
    """Convert a sequence of hex strings to a (N,3) uint8 array."""
    out = np.empty((len(hex_list), 3), dtype=np.uint8)
    for i, hx in enumerate(hex_list):
        out[i] = hex_to_rgb(hx)
    return out


def coerce_to_rgb_tuple(value: Union[Sequence[int], NDArray[np.generic]]) -> RGBTuple:
    """Coerce a 3-length sequence or array row to an (int, int, int) RGB tuple."""
    if len(value) < 3:  # type: ignore[arg-type]
        raise ValueError("sequence too small for RGB")
    return (int(value[0]), int(value[1]), int(value[2]))


def assert_u8_image_rgb(image: np.ndarray) -> U8Image:
    """Validate a non-empty uint8 (H,W,3) image and return it typed as U8Image."""
    if image.dtype != np.uint8 or image.ndim != 3 or image.shape[-1] != 3:
        raise TypeError("expected uint8 (H,W,3) image")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise ValueError("image has no pixels")
    return image  # type: ignore[return-value]


__all__ = [
    "RGBTuple",
    "HexStr",
    "U8Image",
    "Lab",
    "SummedAreaTable",
    "DitherReference",
    "ColorizeConfig",
    "hex_to_rgb",
    "hex_list_to_u8_rgb_array",
    "coerce_to_rgb_tuple",
    "assert_u8_image_rgb",
]
