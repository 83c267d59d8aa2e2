# colorizer/colour_convert.py
from __future__ import annotations

"""
Colour conversions and metrics (sRGB, D65).

Exports:
  srgb_to_linear(srgb) / linear_to_srgb(linear)
  rgb_to_lab(rgb)            uint8 or float 0..1 [...,3] -> Lab float64
  lab_to_rgb(lab)            Lab [...,3] -> uint8, linear light clamped to [0,1]
  rgb_to_lab_pixel(rgb)      one pixel -> Lab (3,)
  lab_to_rgb_pixel(lab)      one Lab -> RGB tuple
  delta_e2000(lab1, lab2)     broadcasting [...,3] vs [...,3]
  delta_e2000_vec(src, cands)
  delta_e2000_pair(lab1, lab2)
  improved_delta_e_vec(src, cands)   1.43 * dE00 ** 0.7
  improved_delta_e(lab1, lab2)
  rgb_to_lab_threaded(rgb, workers)

Everything here is a pure function. Results are float64 so that cached and
uncached paths agree bit for bit.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from .core_types import Lab, RGBTuple, U8Image
from .utils import split_rows_into_parts

# Linear sRGB <-> XYZ (D65)
_RGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ],
    dtype=np.float64,
)
_XYZ_TO_RGB = np.array(
    [
        [3.2404542, -1.5371385, -0.4985314],
        [-0.9692660, 1.8760108, 0.0415560],
        [0.0556434, -0.2040259, 1.0572252],
    ],
    dtype=np.float64,
)

# Reference white (D65) and CIE constants
WHITE_D65 = np.array([0.95047, 1.00000, 1.08883], dtype=np.float64)
_EPSILON = 216.0 / 24389.0
_KAPPA = 24389.0 / 27.0

# Huang et al. (2015) power-law correction for CIEDE2000
IMPROVED_SCALE = 1.43
IMPROVED_EXPONENT = 0.7


# sRGB transfer curve


def srgb_to_linear(srgb: np.ndarray) -> np.ndarray:
    """sRGB (non-linear 0..1) to linear RGB (0..1). Vectorised, float64."""
    s = np.asarray(srgb, dtype=np.float64)
    return np.where(s <= 0.04045, s / 12.92, ((s + 0.055) / 1.055) ** 2.4)


def linear_to_srgb(linear: np.ndarray) -> np.ndarray:
    """Linear RGB (0..1) to sRGB (0..1). Input is clamped to [0,1] first."""
    lin = np.clip(np.asarray(linear, dtype=np.float64), 0.0, 1.0)
    return np.where(
        lin <= 0.0031308, lin * 12.92, 1.055 * np.power(lin, 1.0 / 2.4) - 0.055
    )


# sRGB <-> Lab


def _apply_matrix(m: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Row-vector transform over the last axis, written out per channel."""
    r, g, b = v[..., 0], v[..., 1], v[..., 2]
    return np.stack(
        [m[i, 0] * r + m[i, 1] * g + m[i, 2] * b for i in range(3)], axis=-1
    )


def rgb_to_lab(rgb: np.ndarray) -> Lab:
    """
    sRGB to CIE Lab (D65).
    Integer input is read as 0..255, float input as 0..1. Preserves shape (...,3).
    """
    arr = np.asarray(rgb)
    if np.issubdtype(arr.dtype, np.integer):
        rgb_f = arr.astype(np.float64) / 255.0
    else:
        rgb_f = arr.astype(np.float64, copy=False)

    t = _apply_matrix(_RGB_TO_XYZ, srgb_to_linear(rgb_f)) / WHITE_D65

    f = np.where(t > _EPSILON, np.cbrt(t), (_KAPPA * t + 16.0) / 116.0)

    out = np.empty(rgb_f.shape, dtype=np.float64)
    out[..., 0] = 116.0 * f[..., 1] - 16.0
    out[..., 1] = 500.0 * (f[..., 0] - f[..., 1])
    out[..., 2] = 200.0 * (f[..., 1] - f[..., 2])
    return out


def lab_to_rgb(lab: np.ndarray) -> U8Image:
    """
    CIE Lab (D65) to sRGB uint8.
    Out-of-gamut colours are clamped in linear light before encoding.
    """
    lab_f = np.asarray(lab, dtype=np.float64)
    L = lab_f[..., 0]
    fy = (L + 16.0) / 116.0
    fx = fy + lab_f[..., 1] / 500.0
    fz = fy - lab_f[..., 2] / 200.0

    fx3 = fx**3
    fz3 = fz**3
    xr = np.where(fx3 > _EPSILON, fx3, (116.0 * fx - 16.0) / _KAPPA)
    yr = np.where(L > _KAPPA * _EPSILON, fy**3, L / _KAPPA)
    zr = np.where(fz3 > _EPSILON, fz3, (116.0 * fz - 16.0) / _KAPPA)

    xyz = np.stack([xr, yr, zr], axis=-1) * WHITE_D65
    srgb = linear_to_srgb(_apply_matrix(_XYZ_TO_RGB, xyz))
    return np.clip(np.rint(srgb * 255.0), 0, 255).astype(np.uint8)


def rgb_to_lab_pixel(rgb: Sequence[int]) -> Lab:
    """One 8-bit pixel to a Lab (3,) row."""
    return rgb_to_lab(np.asarray(rgb, dtype=np.uint8).reshape(3))


def lab_to_rgb_pixel(lab: Sequence[float] | NDArray[np.floating]) -> RGBTuple:
    """One Lab triple to an 8-bit RGB tuple."""
    px = lab_to_rgb(np.asarray(lab, dtype=np.float64).reshape(3))
    return (int(px[0]), int(px[1]), int(px[2]))


# CIEDE2000


def _hue_degrees(b: np.ndarray, a_prime: np.ndarray) -> np.ndarray:
    """Hue angle in [0,360); 0 where both components vanish."""
    h = np.degrees(np.arctan2(b, a_prime)) % 360.0
    return np.where((a_prime == 0.0) & (b == 0.0), 0.0, h)


def delta_e2000(lab1: np.ndarray, lab2: np.ndarray) -> NDArray[np.float64]:
    """
    CIEDE2000 (kL = kC = kH = 1) between Lab arrays that broadcast against
    each other over their leading axes, e.g. [M,1,3] vs [1,P,3] -> [M,P].
    """
    c1 = np.asarray(lab1, dtype=np.float64)
    c2 = np.asarray(lab2, dtype=np.float64)
    L1, a1, b1 = c1[..., 0], c1[..., 1], c1[..., 2]
    L2, a2, b2 = c2[..., 0], c2[..., 1], c2[..., 2]

    C1 = np.hypot(a1, b1)
    C2 = np.hypot(a2, b2)
    C_bar7 = (0.5 * (C1 + C2)) ** 7
    G = 0.5 * (1.0 - np.sqrt(C_bar7 / (C_bar7 + 25.0**7)))

    a1p = (1.0 + G) * a1
    a2p = (1.0 + G) * a2
    C1p = np.hypot(a1p, b1)
    C2p = np.hypot(a2p, b2)
    h1p = _hue_degrees(b1, a1p)
    h2p = _hue_degrees(b2, a2p)

    chroma_zero = (C1p * C2p) == 0.0

    dLp = L2 - L1
    dCp = C2p - C1p
    dhp = h2p - h1p
    dhp = np.where(dhp > 180.0, dhp - 360.0, dhp)
    dhp = np.where(dhp < -180.0, dhp + 360.0, dhp)
    dhp = np.where(chroma_zero, 0.0, dhp)
    dHp = 2.0 * np.sqrt(C1p * C2p) * np.sin(np.radians(dhp / 2.0))

    L_bar = 0.5 * (L1 + L2)
    C_barp = 0.5 * (C1p + C2p)

    h_sum = h1p + h2p
    h_bar = np.where(
        np.abs(h1p - h2p) <= 180.0,
        0.5 * h_sum,
        np.where(h_sum < 360.0, 0.5 * (h_sum + 360.0), 0.5 * (h_sum - 360.0)),
    )
    h_bar = np.where(chroma_zero, h_sum, h_bar)

    T = (
        1.0
        - 0.17 * np.cos(np.radians(h_bar - 30.0))
        + 0.24 * np.cos(np.radians(2.0 * h_bar))
        + 0.32 * np.cos(np.radians(3.0 * h_bar + 6.0))
        - 0.20 * np.cos(np.radians(4.0 * h_bar - 63.0))
    )
    d_theta = 30.0 * np.exp(-(((h_bar - 275.0) / 25.0) ** 2))
    C_barp7 = C_barp**7
    R_c = 2.0 * np.sqrt(C_barp7 / (C_barp7 + 25.0**7))
    L50 = (L_bar - 50.0) ** 2
    S_l = 1.0 + 0.015 * L50 / np.sqrt(20.0 + L50)
    S_c = 1.0 + 0.045 * C_barp
    S_h = 1.0 + 0.015 * C_barp * T
    R_t = -np.sin(np.radians(2.0 * d_theta)) * R_c

    tL = dLp / S_l
    tC = dCp / S_c
    tH = dHp / S_h
    return np.sqrt(np.maximum(tL * tL + tC * tC + tH * tH + R_t * tC * tH, 0.0))


def delta_e2000_vec(
    src_lab: Sequence[float] | NDArray[np.floating], cand_lab: Lab
) -> NDArray[np.float64]:
    """
    CIEDE2000 between one source Lab and each row of cand_lab.

    Args:
      src_lab: Lab [3]
      cand_lab: Lab [N,3]
    Returns:
      float64 [N]
    """
    s = np.asarray(src_lab, dtype=np.float64).reshape(1, 3)
    return delta_e2000(s, np.asarray(cand_lab, dtype=np.float64).reshape(-1, 3))


def delta_e2000_pair(
    lab1: Sequence[float] | NDArray[np.floating],
    lab2: Sequence[float] | NDArray[np.floating],
) -> float:
    """CIEDE2000 distance between two Lab colours."""
    return float(delta_e2000(np.asarray(lab1), np.asarray(lab2)))


def improved_delta_e_from_de00(de00: np.ndarray) -> NDArray[np.float64]:
    """Apply the power-law correction 1.43 * dE00^0.7."""
    return IMPROVED_SCALE * np.power(de00, IMPROVED_EXPONENT)


def improved_delta_e_vec(
    src_lab: Sequence[float] | NDArray[np.floating], cand_lab: Lab
) -> NDArray[np.float64]:
    """Improved CIEDE2000 from one source to each candidate row."""
    return improved_delta_e_from_de00(delta_e2000_vec(src_lab, cand_lab))


def improved_delta_e(
    lab1: Sequence[float] | NDArray[np.floating],
    lab2: Sequence[float] | NDArray[np.floating],
) -> float:
    """Improved CIEDE2000 between two Lab colours."""
    return IMPROVED_SCALE * delta_e2000_pair(lab1, lab2) ** IMPROVED_EXPONENT


# Threaded helpers


def rgb_to_lab_threaded(rgb: np.ndarray, workers: int) -> Lab:
    """
    Threaded RGB->Lab conversion by splitting rows.

    Args:
      rgb: uint8 or float array [H,W,3]
      workers: number of threads; if <=1 or H<256, runs single-threaded
    Returns:
      Lab float64 array [H,W,3]
    """
    height = int(rgb.shape[0])
    if workers <= 1 or height < 256:
        return rgb_to_lab(rgb)

    out = np.empty(rgb.shape, dtype=np.float64)

    def run_span(span: tuple[int, int]) -> None:
        start, end = span
        out[start:end] = rgb_to_lab(rgb[start:end])

    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(run_span, split_rows_into_parts(height, workers)))
    return out


__all__ = [
    "WHITE_D65",
    "srgb_to_linear",
    "linear_to_srgb",
    "rgb_to_lab",
    "lab_to_rgb",
    "rgb_to_lab_pixel",
    "lab_to_rgb_pixel",
    "delta_e2000",
    "delta_e2000_vec",
    "delta_e2000_pair",
    "improved_delta_e_from_de00",
    "improved_delta_e_vec",
    "improved_delta_e",
    "rgb_to_lab_threaded",
]
