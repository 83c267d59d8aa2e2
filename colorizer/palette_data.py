# colorizer/palette_data.py
from __future__ import annotations

"""
Colorscheme definitions and palette builders.

Exports:
  KANAGAWA: list[str]                    built-in default scheme (hex codes)
  BUILTIN_SCHEMES: dict[str, list[str]]  name -> hex codes
  build_palette(hex_codes) -> Lab [P,3]
  interpolate_palette(pal_lab, threshold) -> Lab [Q,3], Q >= P

The order of the interpolated palette decides ties during matching, so the
walk below is kept stable: sort by L (stable), then insert intermediates
between each neighbouring pair in order.
"""

import math
from typing import Dict, List, Sequence

import numpy as np

from .colour_convert import improved_delta_e, rgb_to_lab
from .core_types import Lab, hex_list_to_u8_rgb_array
from .errors import PaletteEmpty

KANAGAWA: List[str] = [
    "#16161D",  # sumiInk0
    "#1F1F28",  # sumiInk1
    "#2A2A37",  # sumiInk2
    "#363646",  # sumiInk3
    "#54546D",  # sumiInk4
    "#223249",  # waveBlue1
    "#2D4F67",  # waveBlue2
    "#2B3328",  # winterGreen
    "#49443C",  # winterYellow
    "#43242B",  # winterRed
    "#252535",  # winterBlue
    "#76946A",  # autumnGreen
    "#C34043",  # autumnRed
    "#DCA561",  # autumnYellow
    "#E82424",  # samuraiRed
    "#FF9E3B",  # roninYellow
    "#6A9589",  # waveAqua1
    "#658594",  # dragonBlue
    "#727169",  # fujiGray
    "#938AA9",  # springViolet1
    "#957FB8",  # oniViolet
    "#7E9CD8",  # crystalBlue
    "#9CABCA",  # springViolet2
    "#7FB4CA",  # springBlue
    "#A3D4D5",  # lightBlue
    "#7AA89F",  # waveAqua2
    "#98BB6C",  # springGreen
    "#938056",  # boatYellow1
    "#C0A36E",  # boatYellow2
    "#E6C384",  # carpYellow
    "#D27E99",  # sakuraPink
    "#E46876",  # waveRed
    "#FF5D62",  # peachRed
    "#FFA066",  # surimiOrange
    "#717C7C",  # katanaGray
    "#C8C093",  # oldWhite
    "#DCD7BA",  # fujiWhite
]

BUILTIN_SCHEMES: Dict[str, List[str]] = {"kanagawa": KANAGAWA}


def build_palette(hex_codes: Sequence[str]) -> Lab:
    """
    Convert hex codes into Lab rows (float64 [P,3]) in the given order.
    Raises PaletteEmpty for an empty list and ValueError for a bad code.
    """
    if len(hex_codes) == 0:
        raise PaletteEmpty("colorscheme has no colours")
    rgbs_u8 = hex_list_to_u8_rgb_array(list(hex_codes))
    return rgb_to_lab(rgbs_u8).reshape(-1, 3)


def lerp_lab(lab1: np.ndarray, lab2: np.ndarray, t: float) -> np.ndarray:
    """Straight-line interpolation between two Lab colours."""
    return lab1 + (lab2 - lab1) * t


def interpolate_palette(pal_lab: Lab, threshold: float) -> Lab:
    """
    Sort by lightness and fill gaps between neighbours.

    Between each neighbouring pair whose improved CIEDE2000 distance d exceeds
    threshold, ceil(d / threshold) - 1 evenly spaced Lab colours are inserted.

    Args:
      pal_lab: float [P,3], P >= 1
      threshold: positive distance
    Returns:
      float64 [Q,3]
    """
    pal = np.asarray(pal_lab, dtype=np.float64).reshape(-1, 3)
    if pal.shape[0] == 0:
        raise PaletteEmpty("cannot interpolate an empty palette")
    if threshold <= 0.0:
        raise ValueError(f"interpolation threshold must be > 0, got {threshold}")

    ordered = pal[np.argsort(pal[:, 0], kind="stable")]
    out: List[np.ndarray] = []
    for lab1, lab2 in zip(ordered[:-1], ordered[1:]):
        out.append(lab1)
        distance = improved_delta_e(lab1, lab2)
        if distance > threshold:
            steps = int(math.ceil(distance / threshold))
            for i in range(1, steps):
                out.append(lerp_lab(lab1, lab2, i / steps))
    out.append(ordered[-1])
    return np.stack(out).astype(np.float64, copy=False)


__all__ = [
    "KANAGAWA",
    "BUILTIN_SCHEMES",
    "build_palette",
    "lerp_lab",
    "interpolate_palette",
]
