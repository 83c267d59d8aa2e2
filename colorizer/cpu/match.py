# colorizer/cpu/match.py
from __future__ import annotations

"""
Nearest-palette matching with a shared per-colour memo.

A matched colour keeps the source pixel's L and takes a and b from the palette
entry with the smallest improved CIEDE2000 distance. Ties go to the earliest
palette entry.
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from ..colour_convert import (
    delta_e2000,
    improved_delta_e_from_de00,
    rgb_to_lab,
    rgb_to_lab_pixel,
)
from ..core_types import Lab, RGBTuple, U8Image, coerce_to_rgb_tuple
from ..errors import PaletteEmpty

# Rows of misses scored per broadcast block; bounds the [M,P] temporaries.
MATCH_BLOCK_ROWS = 4096


class ColourCache:
    """
    Memo of RGB8 -> matched Lab, shared by every worker of a run and
    optionally by all images of a batch.

    Backed by a plain dict: single get and set calls are atomic under the GIL,
    so workers read and insert without a lock. Two workers racing on the same
    miss both compute the same value and the second write is harmless.

    A cache is bound to the first palette it is used with; reusing it with a
    different palette raises ValueError.
    """

    def __init__(self) -> None:
        self._store: Dict[RGBTuple, Lab] = {}
        self._palette_key: Optional[bytes] = None

    def bind(self, palette: Lab) -> None:
        key = np.ascontiguousarray(palette, dtype=np.float64).tobytes()
        if self._palette_key is None:
            self._palette_key = key
        elif self._palette_key != key:
            raise ValueError("colour cache was filled for a different palette")

    def get(self, rgb: RGBTuple) -> Optional[Lab]:
        return self._store.get(rgb)

    def put(self, rgb: RGBTuple, lab: Lab) -> None:
        self._store[rgb] = lab

    def __contains__(self, rgb: object) -> bool:
        return rgb in self._store

    def __len__(self) -> int:
        return len(self._store)


def checked_palette(palette: Lab) -> Lab:
    """Return palette as float64 [P,3]; raise PaletteEmpty when P == 0."""
    pal = np.asarray(palette, dtype=np.float64)
    if pal.size == 0:
        raise PaletteEmpty("palette has no entries")
    return pal.reshape(-1, 3)


def palette_distances(src_lab: Lab, palette: Lab) -> np.ndarray:
    """Improved CIEDE2000 from each source row [M,3] to each palette row [P,3] -> [M,P]."""
    src = np.asarray(src_lab, dtype=np.float64).reshape(-1, 1, 3)
    return improved_delta_e_from_de00(delta_e2000(src, palette[None, :, :]))


def nearest_palette_index(src_lab: Sequence[float] | Lab, palette: Lab) -> int:
    """Index of the nearest palette entry; the first one wins on equal distance."""
    pal = checked_palette(palette)
    return int(np.argmin(palette_distances(np.asarray(src_lab), pal)[0]))


def _matched(src_lab: Lab, winner: Lab) -> Lab:
    out = np.array([src_lab[0], winner[1], winner[2]], dtype=np.float64)
    out.setflags(write=False)
    return out


def match_colour(
    rgb: Sequence[int] | np.ndarray, palette: Lab, cache: Optional[ColourCache] = None
) -> Lab:
    """
    Matched Lab for one 8-bit pixel.

    Args:
      rgb: (r, g, b) 0..255
      palette: Lab [P,3]
      cache: optional shared memo
    Returns:
      read-only float64 (3,) = (L of rgb, a of winner, b of winner)
    """
    pal = checked_palette(palette)
    key = coerce_to_rgb_tuple(rgb)
    if cache is not None:
        cache.bind(pal)
        hit = cache.get(key)
        if hit is not None:
            return hit

    src = rgb_to_lab_pixel(key)
    best = nearest_palette_index(src, pal)
    result = _matched(src, pal[best])
    if cache is not None:
        cache.put(key, result)
    return result


def match_colours(
    unique_rgb: U8Image, palette: Lab, cache: Optional[ColourCache] = None
) -> Tuple[Lab, int]:
    """
    Batch form of match_colour for distinct colours.

    Cached colours are looked up; the rest are scored against the palette in
    broadcast blocks and inserted.

    Args:
      unique_rgb: uint8 [U,3]
      palette: Lab [P,3]
      cache: optional shared memo
    Returns:
      (Lab float64 [U,3], number of cache misses)
    """
    pal = checked_palette(palette)
    rows = np.asarray(unique_rgb, dtype=np.uint8).reshape(-1, 3)
    out = np.empty(rows.shape, dtype=np.float64)
    if cache is not None:
        cache.bind(pal)

    keys = [(int(r), int(g), int(b)) for r, g, b in rows.tolist()]
    miss_idx = []
    for i, key in enumerate(keys):
        hit = cache.get(key) if cache is not None else None
        if hit is None:
            miss_idx.append(i)
        else:
            out[i] = hit

    for start in range(0, len(miss_idx), MATCH_BLOCK_ROWS):
        block = np.asarray(miss_idx[start : start + MATCH_BLOCK_ROWS], dtype=np.int64)
        src_lab = rgb_to_lab(rows[block])
        winners = np.argmin(palette_distances(src_lab, pal), axis=1)
        for k, i in enumerate(block.tolist()):
            result = _matched(src_lab[k], pal[winners[k]])
            out[i] = result
            if cache is not None:
                cache.put(keys[i], result)

    return out, len(miss_idx)


__all__ = [
    "MATCH_BLOCK_ROWS",
    "ColourCache",
    "checked_palette",
    "palette_distances",
    "nearest_palette_index",
    "match_colour",
    "match_colours",
]
