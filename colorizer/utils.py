# colorizer/utils.py
from __future__ import annotations

"""
Shared utilities for colorizer.

Includes time formatting, row partitioning for the threaded stages, image I/O,
single-line progress output, and tidy print-based logging. Log lines can be
captured per thread so that batch runs print each file's block in one piece.
"""

import io
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import numpy as np
from PIL import Image, ImageOps

from .core_types import U8Image

#  Time / size formatting


def format_seconds_compact(seconds: float) -> str:
    """Human-friendly seconds: '<ms>ms', '<s>s', or 'Mm Ss'."""
    if seconds < 1.0:
        return f"{seconds * 1000.0:.1f}ms"
    if seconds < 60.0:
        return f"{seconds:.3f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds - 60 * minutes:.1f}s"


def format_total_duration_compact(seconds: float) -> str:
    """Compact total duration: 'Mm Ss', 'Ss.s', or 'ms'."""
    if seconds >= 60.0:
        minutes = int(seconds // 60)
        rem = int(round(seconds - 60 * minutes))
        return f"{minutes}m {rem}s"
    if seconds >= 1.0:
        return f"{seconds:.1f}s"
    return f"{seconds * 1000.0:.1f}ms"


def split_rows_into_parts(height: int, parts: int) -> List[Tuple[int, int]]:
    """Partition range [0, height) into ~parts contiguous [start, end) row spans."""
    parts = max(1, int(parts))
    step = max(1, (height + parts - 1) // parts)
    return [(start, min(start + step, height)) for start in range(0, height, step)]


# I/O helpers


def load_image_rgb(path: Path) -> U8Image:
    """
    Load the first frame of an image with Pillow as uint8 [H,W,3] sRGB.
    EXIF orientation is applied; alpha is dropped.
    """
    with Image.open(path) as im0:
        im = ImageOps.exif_transpose(im0)
        rgb = im.convert("RGB")
    return np.array(rgb, dtype=np.uint8)


def save_image_rgb(path: Path, rgb: U8Image) -> Path:
    """
    Save a uint8 [H,W,3] array. The format follows the suffix when Pillow can
    write it; unknown, read-only or missing suffixes are written as PNG.
    Returns the path actually written.
    """
    fmt = Image.registered_extensions().get(path.suffix.lower())
    if fmt is None or fmt not in Image.SAVE:
        path = path.with_suffix(".png")
    Image.fromarray(np.ascontiguousarray(rgb, dtype=np.uint8)).save(path)
    return path


#  CLI / progress logging

_capture = threading.local()


@contextmanager
def capture_logs() -> Iterator[io.StringIO]:
    """
    Route log/debug_log/warn lines from the current thread into a buffer.
    Used by batch mode so each file's output is printed as one block.
    """
    buf = io.StringIO()
    prev: Optional[io.StringIO] = getattr(_capture, "sink", None)
    _capture.sink = buf
    try:
        yield buf
    finally:
        _capture.sink = prev


def _emit(line: str) -> None:
    sink: Optional[io.StringIO] = getattr(_capture, "sink", None)
    if sink is not None:
        sink.write(line + "\n")
    else:
        print(line, flush=True)


def print_progress_line(message: str, final: bool = False) -> None:
    """
    Print a single-line progress message that overwrites previous output.
    Silent while the current thread's logs are captured.
    """
    if getattr(_capture, "sink", None) is not None:
        return
    sys.stdout.write("\r\033[K" + message)
    sys.stdout.flush()
    if final:
        sys.stdout.write("\n")
        sys.stdout.flush()


def enable_line_buffered_stdout() -> None:
    """
    Enable line-buffered stdout when supported.
    Helps live progress printing in terminals that expose .reconfigure().
    """
    reconfig = getattr(sys.stdout, "reconfigure", None)
    if callable(reconfig):
        reconfig(line_buffering=True, write_through=True)


# Pretty logging


def format_bool_on_off(value: Any) -> str:
    """Pretty boolean: 'on'/'off' for bools; str(value) otherwise."""
    if isinstance(value, bool):
        return "on" if value else "off"
    return str(value)


def format_number_compact(value: Any) -> str:
    """Pretty number: 1,234 style for ints; compact for floats; passthrough otherwise."""
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        return f"{value:.3f}".rstrip("0").rstrip(".")
    return str(value)


def key_value_pairs_to_string(
    pairs: Iterable[Tuple[str, Any]], sep: str = "  ", eq: str = ": "
) -> str:
    """Format (name, value) pairs as 'Name: value' blocks separated by sep."""
    out: List[str] = []
    for name, value in pairs:
        display = (
            format_bool_on_off(value)
            if isinstance(value, bool)
            else format_number_compact(value)
        )
        out.append(f"{name}{eq}{display}")
    return sep.join(out)


def print_config_line(
    section: str, pairs: Iterable[Tuple[str, Any]], debug: bool
) -> None:
    """
    Emit a single human-readable config line, e.g.:
      [cpu] Workers: 8  Radius: 10  Blend: 0.9
    Routes to debug_log() when debug=True, else to log().
    """
    line = f"[{section}] {key_value_pairs_to_string(pairs)}"
    (debug_log if debug else log)(line)


def print_banner(title: str) -> None:
    """Section banner."""
    _emit(f"\n=== {title} ===")


def log(message: str) -> None:
    """Plain log line."""
    _emit(message)


def debug_log(message: str) -> None:
    """Debug log line."""
    _emit(f"[debug] {message}")


def warn(message: str) -> None:
    """Warning log line."""
    _emit(f"[warn] {message}")


def error(message: str) -> None:
    """Error log line to stderr. Never captured."""
    print(f"[error] {message}", file=sys.stderr, flush=True)


__all__ = [
    "format_seconds_compact",
    "format_total_duration_compact",
    "split_rows_into_parts",
    "load_image_rgb",
    "save_image_rgb",
    "capture_logs",
    "print_progress_line",
    "enable_line_buffered_stdout",
    "format_bool_on_off",
    "format_number_compact",
    "key_value_pairs_to_string",
    "print_config_line",
    "print_banner",
    "log",
    "debug_log",
    "warn",
    "error",
]
