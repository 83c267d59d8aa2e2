# tests/test_config.py
from __future__ import annotations

import numpy as np
import pytest

from colorizer.config import DEFAULTS, load_colorscheme, load_settings, resolve_config
from colorizer.errors import ConfigError, PaletteEmpty
from colorizer.palette_data import KANAGAWA


@pytest.fixture
def config_dir(tmp_path):
    d = tmp_path / "cfg"
    d.mkdir()
    return d


def test_defaults(config_dir):
    config = resolve_config(config_dir=config_dir)
    assert config.blend_factor == 0.9
    assert config.dither_amount == 0.1
    assert config.spatial_radius == 10
    assert config.colorscheme == "kanagawa"
    assert config.dither_reference == "palette"
    assert config.palette.shape[0] >= len(KANAGAWA)
    assert np.all(np.diff(config.palette[:, 0]) >= 0)


def test_merge_order(config_dir, tmp_path):
    (config_dir / "config.toml").write_text('blend_factor = 0.5\ndither_amount = "0.2"\n')
    explicit = tmp_path / "run.toml"
    explicit.write_text("dither_amount = 0.3\nspatial_averaging_radius = 4\n")

    settings = load_settings(explicit, {"spatial_averaging_radius": 7}, config_dir)
    assert settings["blend_factor"] == 0.5
    assert settings["dither_amount"] == 0.3
    assert settings["spatial_averaging_radius"] == 7
    assert settings["colorscheme"] == DEFAULTS["colorscheme"]


def test_none_overrides_are_ignored(config_dir):
    settings = load_settings(None, {"blend_factor": None}, config_dir)
    assert settings["blend_factor"] == DEFAULTS["blend_factor"]


def test_string_values_are_parsed(config_dir, tmp_path):
    path = tmp_path / "run.toml"
    path.write_text('blend_factor = "0.25"\nspatial_averaging_radius = "3"\n')
    config = resolve_config(path, config_dir=config_dir)
    assert config.blend_factor == 0.25
    assert config.spatial_radius == 3


@pytest.mark.parametrize(
    "overrides,needle",
    [
        ({"blend_factor": "lots"}, "blend_factor"),
        ({"blend_factor": 1.5}, "blend_factor"),
        ({"dither_amount": -0.1}, "dither_amount"),
        ({"spatial_averaging_radius": -1}, "spatial_averaging_radius"),
        ({"spatial_averaging_radius": "2.5"}, "spatial_averaging_radius"),
        ({"interpolation_threshold": 0}, "interpolation_threshold"),
        ({"dither_reference": "elsewhere"}, "dither_reference"),
        ({"blend_factor": True}, "blend_factor"),
    ],
)
def test_bad_values(config_dir, overrides, needle):
    with pytest.raises(ConfigError, match=needle):
        resolve_config(overrides=overrides, config_dir=config_dir)


def test_unknown_keys(config_dir, tmp_path):
    path = tmp_path / "run.toml"
    path.write_text("blend = 0.5\n")
    with pytest.raises(ConfigError, match="blend"):
        resolve_config(path, config_dir=config_dir)
    with pytest.raises(ConfigError):
        load_settings(None, {"radius": 3}, config_dir)


def test_missing_and_invalid_files(config_dir, tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        resolve_config(tmp_path / "nope.toml", config_dir=config_dir)
    bad = tmp_path / "bad.toml"
    bad.write_text("blend_factor = = 1\n")
    with pytest.raises(ConfigError, match="invalid TOML"):
        resolve_config(bad, config_dir=config_dir)


def test_colorscheme_file_wins_over_builtin(config_dir):
    (config_dir / "kanagawa.toml").write_text('colors = ["#000000", "#ffffff"]\n')
    assert load_colorscheme("kanagawa", config_dir) == ["#000000", "#ffffff"]


def test_custom_colorscheme(config_dir):
    (config_dir / "mono.toml").write_text('colors = ["#000000", "#ffffff"]\n')
    config = resolve_config(
        overrides={"colorscheme": "mono", "interpolation_threshold": 1000},
        config_dir=config_dir,
    )
    assert config.colorscheme == "mono"
    assert config.palette.shape == (2, 3)


def test_colorscheme_errors(config_dir):
    with pytest.raises(ConfigError, match="not found"):
        load_colorscheme("missing", config_dir)

    (config_dir / "broken.toml").write_text('colours = ["#000000"]\n')
    with pytest.raises(ConfigError):
        load_colorscheme("broken", config_dir)

    (config_dir / "badhex.toml").write_text('colors = ["#00000g"]\n')
    with pytest.raises(ConfigError, match="badhex"):
        resolve_config(overrides={"colorscheme": "badhex"}, config_dir=config_dir)

    (config_dir / "empty.toml").write_text("colors = []\n")
    with pytest.raises(PaletteEmpty):
        resolve_config(overrides={"colorscheme": "empty"}, config_dir=config_dir)


def test_workers_and_seed_pass_through(config_dir):
    config = resolve_config(config_dir=config_dir, workers=0, seed=5)
    assert config.workers == 1
    assert config.seed == 5
