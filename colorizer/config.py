# colorizer/config.py
from __future__ import annotations

"""
Run configuration: defaults, TOML files, CLI overrides, colorschemes.

Merge order (later wins):
  1. DEFAULTS below
  2. ~/.config/colorizer/config.toml, if it exists
  3. an explicit --config file (must exist)
  4. CLI overrides (None means "not given")

Config keys:
  blend_factor             float in [0,1]
  colorscheme              name of <config_dir>/<name>.toml or a built-in scheme
  interpolation_threshold  float > 0, improved CIEDE2000 gap that triggers fill-in
  dither_amount            float in [0,1]
  spatial_averaging_radius int >= 0
  dither_reference         "palette" | "source"

Colorscheme files hold a single key:
  colors = ["#1f1f28", "#dcd7ba", ...]

Values may be written as TOML numbers or as strings; both are parsed here.
"""

import tomllib
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .core_types import ColorizeConfig
from .errors import ConfigError, PaletteEmpty
from .palette_data import BUILTIN_SCHEMES, build_palette, interpolate_palette

DEFAULTS: Dict[str, Any] = {
    "blend_factor": "0.9",
    "colorscheme": "kanagawa",
    "interpolation_threshold": "2.5",
    "dither_amount": "0.1",
    "spatial_averaging_radius": "10",
    "dither_reference": "palette",
}

CONFIG_FILENAME = "config.toml"


def default_config_dir() -> Path:
    """Directory holding config.toml and colorscheme files."""
    return Path.home() / ".config" / "colorizer"


def load_toml_file(path: Path) -> Dict[str, Any]:
    """Read a TOML file into a dict. Missing or malformed files raise ConfigError."""
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {path}: {exc}") from exc


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    config_dir: Optional[Path] = None,
) -> Dict[str, Any]:
    """Merge defaults, the user config, an explicit config and overrides."""
    merged: Dict[str, Any] = dict(DEFAULTS)

    user_file = (config_dir or default_config_dir()) / CONFIG_FILENAME
    if user_file.is_file():
        merged.update(_known_keys(load_toml_file(user_file), user_file))

    if config_path is not None:
        merged.update(_known_keys(load_toml_file(Path(config_path)), config_path))

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key not in DEFAULTS:
            raise ConfigError(f"unknown setting {key!r}")
        merged[key] = value
    return merged


def _known_keys(data: Mapping[str, Any], source: Path) -> Dict[str, Any]:
    unknown = sorted(set(data) - set(DEFAULTS))
    if unknown:
        raise ConfigError(f"unknown setting(s) in {source}: {', '.join(unknown)}")
    return dict(data)


def _parse_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"failed to parse {key}: expected a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"failed to parse {key}: {value!r}") from exc


def _parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"failed to parse {key}: expected an integer, got {value!r}")
    try:
        return int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"failed to parse {key}: {value!r}") from exc


def load_colorscheme(name: str, config_dir: Optional[Path] = None) -> List[str]:
    """
    Look up a colorscheme by name.

    <config_dir>/<name>.toml wins over a built-in scheme of the same name.
    """
    path = (config_dir or default_config_dir()) / f"{name}.toml"
    if path.is_file():
        data = load_toml_file(path)
        colors = data.get("colors")
        if not isinstance(colors, list) or not all(isinstance(c, str) for c in colors):
            raise ConfigError(f"{path} must define colors = [\"#rrggbb\", ...]")
        return colors
    if name in BUILTIN_SCHEMES:
        return list(BUILTIN_SCHEMES[name])
    raise ConfigError(f"colorscheme {name!r} not found")


def resolve_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    config_dir: Optional[Path] = None,
    workers: int = 1,
    seed: Optional[int] = None,
) -> ColorizeConfig:
    """
    Produce the immutable run config: merged settings, parsed and range checked,
    with the colorscheme turned into an interpolated Lab palette.
    """
    settings = load_settings(config_path, overrides, config_dir)

    blend_factor = _parse_float("blend_factor", settings["blend_factor"])
    dither_amount = _parse_float("dither_amount", settings["dither_amount"])
    threshold = _parse_float(
        "interpolation_threshold", settings["interpolation_threshold"]
    )
    radius = _parse_int("spatial_averaging_radius", settings["spatial_averaging_radius"])
    reference = str(settings["dither_reference"])
    scheme = str(settings["colorscheme"])

    if not 0.0 <= blend_factor <= 1.0:
        raise ConfigError(f"blend_factor must be in [0,1], got {blend_factor}")
    if not 0.0 <= dither_amount <= 1.0:
        raise ConfigError(f"dither_amount must be in [0,1], got {dither_amount}")
    if threshold <= 0.0:
        raise ConfigError(f"interpolation_threshold must be > 0, got {threshold}")
    if radius < 0:
        raise ConfigError(f"spatial_averaging_radius must be >= 0, got {radius}")
    if reference not in ("palette", "source"):
        raise ConfigError(f"dither_reference must be 'palette' or 'source', got {reference!r}")

    hexes = load_colorscheme(scheme, config_dir)
    try:
        palette = interpolate_palette(build_palette(hexes), threshold)
    except PaletteEmpty:
        raise
    except ValueError as exc:
        raise ConfigError(f"colorscheme {scheme!r}: {exc}") from exc

    return ColorizeConfig(
        palette=palette,
        blend_factor=blend_factor,
        dither_amount=dither_amount,
        spatial_radius=radius,
        workers=workers,
        seed=seed,
        dither_reference=reference,  # type: ignore[arg-type]
        colorscheme=scheme,
    )


__all__ = [
    "DEFAULTS",
    "CONFIG_FILENAME",
    "default_config_dir",
    "load_toml_file",
    "load_settings",
    "load_colorscheme",
    "resolve_config",
]
