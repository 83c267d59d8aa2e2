# tests/conftest.py
from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from colorizer.colour_convert import rgb_to_lab
from colorizer.core_types import ColorizeConfig


def lab_of(*rgbs):
    """Lab rows for 8-bit RGB tuples."""
    return rgb_to_lab(np.array(rgbs, dtype=np.uint8).reshape(-1, 3))


@pytest.fixture
def bw_palette() -> np.ndarray:
    return lab_of((0, 0, 0), (255, 255, 255))


@pytest.fixture
def rgb_palette() -> np.ndarray:
    return lab_of((0, 0, 0), (255, 255, 255), (200, 30, 40), (40, 160, 60), (30, 60, 200))


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def photo(rng) -> np.ndarray:
    """Smooth gradient with a little noise, uint8 [24,32,3]."""
    yy, xx = np.mgrid[0:24, 0:32]
    base = np.stack([xx * 8, yy * 10, (xx + yy) * 4], axis=-1).astype(np.float64)
    noisy = base + rng.normal(0.0, 6.0, base.shape)
    return np.clip(noisy, 0, 255).astype(np.uint8)


@pytest.fixture
def make_config(rgb_palette):
    def _make(**kwargs) -> ColorizeConfig:
        kwargs.setdefault("palette", rgb_palette)
        kwargs.setdefault("dither_amount", 0.0)
        kwargs.setdefault("spatial_radius", 2)
        return ColorizeConfig(**kwargs)

    return _make


@pytest.fixture
def isolated_home(tmp_path, monkeypatch) -> Path:
    """HOME without a user config so runs only see explicit settings."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


def write_png(path: Path, rgb: np.ndarray) -> Path:
    Image.fromarray(rgb).save(path)
    return path
