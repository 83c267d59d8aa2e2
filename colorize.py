#!/usr/bin/env python3
"""
colorize.py
Recolour images toward a colour scheme while keeping their luminance.

Usage:
  python colorize.py SRC [--output PATH] [--outdir DIR] [-c CONFIG] [-b BLEND] [-d DITHER]
                     [--spatial-averaging-radius R] [--interpolation-threshold T]
                     [--colorscheme NAME] [--backend cpu|gpu] [--fallback-cpu]
                     [--workers N] [--jobs N] [--seed S] [--debug]

Input:
  An image file or a folder. Any Pillow-readable image; alpha is dropped.

Output:
  <stem>_<colorscheme><ext> next to the input (or in --outdir) unless --output is given.
  Folder mode skips files that already carry the _<colorscheme> suffix.

Settings:
  Defaults, then ~/.config/colorizer/config.toml, then --config, then flags.
  Colorschemes are <name>.toml files in ~/.config/colorizer or built in (kanagawa).

Exit status:
  0 success, 1 if any image failed, 2 for a config error or missing input.
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from colorizer.backend import BACKENDS, colorize
from colorizer.config import resolve_config
from colorizer.core_types import ColorizeConfig
from colorizer.cpu.match import ColourCache
from colorizer.errors import ColorizerError, ConfigError, DeviceUnavailable, PaletteEmpty
from colorizer.gpu.compute import ComputeContext
from colorizer.utils import (
    # formatting
    format_seconds_compact,
    format_total_duration_compact,
    # IO
    load_image_rgb,
    save_image_rgb,
    # pretty logging
    capture_logs,
    debug_log,
    enable_line_buffered_stdout,
    error,
    key_value_pairs_to_string,
    log,
    print_banner,
    print_config_line,
    print_progress_line,
    warn,
)

IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".webp", ".bmp"}

# CLI args & small helpers


def _default_workers() -> int:
    """Leave a few cores free for the system; returns a sensible worker count."""
    n = os.cpu_count() or 4
    reserve = 1 if n <= 6 else 2 if n <= 12 else 3 if n <= 18 else 4
    return max(1, n - reserve)


def parse_cli_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse CLI arguments.

    Returns:
      argparse.Namespace with:
        src: Path to image or folder
        output: optional explicit output path (single file only)
        outdir: optional Path for outputs
        config: optional TOML config file
        blend_factor, dither_amount, spatial_averaging_radius,
        interpolation_threshold, colorscheme, dither_reference: overrides or None
        backend: "cpu" | "gpu"
        fallback_cpu: retry on the CPU when the GPU is unavailable
        jobs: parallel file workers
        workers: threads per image for the CPU stages
        seed: optional dither seed
        debug: bool for stage timings and cache stats
    """
    parser = argparse.ArgumentParser(
        prog="colorize",
        description="Recolour image(s) toward a colour scheme, keeping luminance.",
    )
    parser.add_argument("src", type=Path, help="Input image or folder")
    parser.add_argument(
        "--output", "-o", type=Path, default=None, help="Output file (single image)"
    )
    parser.add_argument(
        "--outdir", type=Path, default=None, help="Output directory (optional)"
    )
    parser.add_argument(
        "--config", "-c", type=Path, default=None, help="Extra TOML config file"
    )
    parser.add_argument(
        "--blend-factor",
        "-b",
        dest="blend_factor",
        type=float,
        default=None,
        help="0 keeps the original, 1 is fully recoloured (default 0.9)",
    )
    parser.add_argument(
        "--dither-amount",
        "-d",
        dest="dither_amount",
        type=float,
        default=None,
        help="Random dither strength in [0,1] (default 0.1)",
    )
    parser.add_argument(
        "--spatial-averaging-radius",
        dest="spatial_averaging_radius",
        type=int,
        default=None,
        help="Half-width of the chroma averaging window in pixels (default 10)",
    )
    parser.add_argument(
        "--interpolation-threshold",
        dest="interpolation_threshold",
        type=float,
        default=None,
        help="Palette gap (improved CIEDE2000) that triggers fill-in colours (default 2.5)",
    )
    parser.add_argument(
        "--colorscheme", default=None, help="Colorscheme name (default kanagawa)"
    )
    parser.add_argument(
        "--dither-reference",
        dest="dither_reference",
        choices=["palette", "source"],
        default=None,
        help="Dither toward the matched colour (default) or the source pixel",
    )
    parser.add_argument(
        "--backend", choices=list(BACKENDS), default="cpu", help="Compute backend"
    )
    parser.add_argument(
        "--fallback-cpu",
        action="store_true",
        help="Use the CPU backend when no GPU is available",
    )
    parser.add_argument(
        "--jobs", type=int, default=1, help="Files processed in parallel"
    )
    parser.add_argument(
        "--workers", type=int, default=_default_workers(), help="Internal workers"
    )
    parser.add_argument("--seed", type=int, default=None, help="Dither RNG seed")
    parser.add_argument(
        "--debug", action="store_true", help="Stage timings and cache statistics"
    )
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict:
    keys = (
        "blend_factor",
        "dither_amount",
        "spatial_averaging_radius",
        "interpolation_threshold",
        "colorscheme",
        "dither_reference",
    )
    return {k: getattr(args, k) for k in keys}


def output_path_for(src: Path, colorscheme: str, outdir: Optional[Path]) -> Path:
    """<stem>_<colorscheme><ext> next to src, or inside outdir."""
    name = f"{src.stem}_{colorscheme}{src.suffix}"
    return (outdir / name) if outdir else src.with_name(name)


def is_previous_output(path: Path, colorscheme: str) -> bool:
    return path.stem.endswith(f"_{colorscheme}")


def list_images(folder: Path, colorscheme: str) -> List[Path]:
    """Images directly inside folder, sorted by name, previous outputs skipped."""
    files = [
        p
        for p in folder.iterdir()
        if p.is_file()
        and p.suffix.lower() in IMAGE_EXTS
        and not is_previous_output(p, colorscheme)
    ]
    files.sort(key=lambda p: p.name.lower())
    return files


# Per-image processing


def _process_single_image(
    src: Path,
    dst: Path,
    config: ColorizeConfig,
    backend: str,
    cache: ColourCache,
    gpu_context: Optional[ComputeContext],
    debug: bool,
) -> bool:
    """Load, colorize and save one image. Returns False after reporting a failure."""
    print_banner(src.name)
    t_start = time.perf_counter()
    try:
        rgb = load_image_rgb(src)
        t_loaded = time.perf_counter()
        h, w = rgb.shape[:2]
        if debug:
            debug_log(key_value_pairs_to_string([("Size", f"{w}x{h}"), ("Backend", backend)]))

        out = colorize(
            rgb,
            config,
            backend=backend,  # type: ignore[arg-type]
            cache=cache,
            debug=debug,
            gpu_context=gpu_context,
            progress=True,
        )
        t_mapped = time.perf_counter()

        written = save_image_rgb(dst, out)
        t_saved = time.perf_counter()
    except (ColorizerError, OSError, ValueError) as exc:
        error(f"{src.name}: {exc}")
        return False
    except Exception as exc:
        error(f"{src.name}: {type(exc).__name__}: {exc}")
        return False

    log(f"Wrote {written}")
    if debug:
        mpx = (w * h) / 1e6
        map_secs = t_mapped - t_loaded
        if map_secs > 0:
            debug_log(
                f"throughput {mpx / map_secs:.2f} MPx/s  ({mpx:.2f} MPx in {format_seconds_compact(map_secs)})"
            )
        debug_log(
            f"Total {format_total_duration_compact(t_saved - t_start)}  "
            f"(load={format_seconds_compact(t_loaded - t_start)}, "
            f"colorize={format_seconds_compact(map_secs)}, "
            f"save={format_seconds_compact(t_saved - t_mapped)})"
        )
    else:
        log(f"Total time {format_total_duration_compact(t_saved - t_start)}")
    return True


def _process_one_captured(
    src: Path,
    dst: Path,
    config: ColorizeConfig,
    backend: str,
    cache: ColourCache,
    gpu_context: Optional[ComputeContext],
    debug: bool,
) -> Tuple[str, bool]:
    """
    Process a single file with its log lines captured.

    Useful for concurrent execution where output should be printed in order.
    """
    with capture_logs() as buf:
        ok = _process_single_image(src, dst, config, backend, cache, gpu_context, debug)
    return buf.getvalue(), ok


def _acquire_backend(
    backend: str, fallback_cpu: bool
) -> Tuple[str, Optional[ComputeContext]]:
    """Resolve the backend once per run; the GPU device is shared by every image."""
    if backend != "gpu":
        return backend, None
    try:
        return backend, ComputeContext.acquire()
    except DeviceUnavailable as exc:
        if not fallback_cpu:
            raise
        warn(f"{exc}; falling back to the CPU backend")
        return "cpu", None


# Entry point


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI entry point.

    Handles single file or folder. In folder mode supports --jobs parallelism
    while preserving readable output ordering. Returns the exit status.
    """
    enable_line_buffered_stdout()
    args = parse_cli_args(argv)
    workers = max(1, args.workers)
    jobs = max(1, args.jobs)

    src: Path = args.src
    if not src.exists():
        error(f"not found: {src}")
        return 2

    try:
        config = resolve_config(
            config_path=args.config,
            overrides=_overrides(args),
            workers=workers,
            seed=args.seed,
        )
    except (ConfigError, PaletteEmpty) as exc:
        error(str(exc))
        return 2

    print_config_line(
        "run",
        [
            ("CPU cores", os.cpu_count() or 1),
            ("Workers", workers),
            ("Jobs", jobs),
            ("Backend", args.backend),
        ],
        debug=False,
    )
    if args.debug:
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Colorscheme", config.colorscheme),
                    ("Palette", int(config.palette.shape[0])),
                    ("Blend", config.blend_factor),
                    ("Dither", config.dither_amount),
                    ("Radius", config.spatial_radius),
                ]
            )
        )

    try:
        backend, gpu_context = _acquire_backend(args.backend, args.fallback_cpu)
    except DeviceUnavailable as exc:
        error(str(exc))
        return 1

    if args.outdir is not None:
        args.outdir.mkdir(parents=True, exist_ok=True)

    cache = ColourCache()
    if not src.is_dir():
        dst = args.output or output_path_for(src, config.colorscheme, args.outdir)
        ok = _process_single_image(src, dst, config, backend, cache, gpu_context, args.debug)
        return 0 if ok else 1

    files = list_images(src, config.colorscheme)
    if args.debug:
        debug_log(
            key_value_pairs_to_string(
                [("Images", len(files)), ("Jobs", jobs), ("Workers", workers)]
            )
        )
    if args.output is not None:
        warn("--output is ignored in folder mode; use --outdir")

    results: List[bool] = []

    def _files_done() -> None:
        print_progress_line(
            f"[batch] {len(results)}/{len(files)} files",
            final=len(results) == len(files),
        )

    if jobs == 1:
        for p in files:
            dst = output_path_for(p, config.colorscheme, args.outdir)
            results.append(
                _process_single_image(p, dst, config, backend, cache, gpu_context, args.debug)
            )
            _files_done()
    else:
        with ThreadPoolExecutor(max_workers=jobs) as ex:
            futures = [
                ex.submit(
                    _process_one_captured,
                    p,
                    output_path_for(p, config.colorscheme, args.outdir),
                    config,
                    backend,
                    cache,
                    gpu_context,
                    args.debug,
                )
                for p in files
            ]
            for fu in futures:
                text, ok = fu.result()
                print(text, end="", flush=True)
                results.append(ok)
                _files_done()

    failed = results.count(False)
    if failed:
        error(f"{failed} of {len(results)} image(s) failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
