# colorizer/cpu/run.py
from __future__ import annotations

"""
Three-stage CPU pipeline.

Stage 1  match every pixel to the palette (memoised), dither, quantise to RGB8
Stage 2  Lab summed-area table of the Stage-1 image (the only barrier)
Stage 3  windowed mean, luminance transfer from the source, blend

Stages 1 and 3 fan out over disjoint row spans on a thread pool. Each task
writes only its own rows of a preallocated output array.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple, TypeVar

import numpy as np

from ..colour_convert import lab_to_rgb, rgb_to_lab, rgb_to_lab_threaded
from ..core_types import (
    ColorizeConfig,
    Lab,
    SummedAreaTable,
    U8Image,
    assert_u8_image_rgb,
)
from ..utils import (
    debug_log,
    format_seconds_compact,
    print_progress_line,
    split_rows_into_parts,
)
from .blend import blend_image
from .dither import dither_image
from .integral import build_table, windowed_average_image
from .match import ColourCache, checked_palette, match_colours

T = TypeVar("T")
Span = Tuple[int, int]
CPU_STAGES = 3


# Small helpers


def _run_spans(
    workers: int, spans: List[Span], fn: Callable[[int, Span], T]
) -> List[T]:
    """Call fn(index, span) for every span, on a pool when workers > 1. Errors propagate."""
    if workers <= 1 or len(spans) <= 1:
        return [fn(i, span) for i, span in enumerate(spans)]
    with ThreadPoolExecutor(max_workers=workers) as ex:
        futs = [ex.submit(fn, i, span) for i, span in enumerate(spans)]
        return [fu.result() for fu in futs]


def _span_generators(seed: Optional[int], count: int) -> List[np.random.Generator]:
    return [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(count)]


# Stages


def palette_match_stage(
    img: U8Image,
    config: ColorizeConfig,
    cache: ColourCache,
    spans: List[Span],
) -> Tuple[U8Image, int]:
    """
    Stage 1. Returns (intermediate uint8 image, cache misses).

    Distinct colours of each span are matched once; the rest is a gather.
    """
    pal = checked_palette(config.palette)
    out = np.empty_like(img)
    rngs = _span_generators(config.seed, len(spans))

    def run_one(i: int, span: Span) -> int:
        start, end = span
        block = img[start:end].reshape(-1, 3)
        uniques, inverse = np.unique(block, axis=0, return_inverse=True)
        matched, misses = match_colours(uniques, pal, cache)
        lab = matched[inverse.reshape(-1)]
        if config.dither_amount > 0.0:
            toward = lab if config.dither_reference == "palette" else rgb_to_lab(block)
            lab = dither_image(lab, toward, config.dither_amount, rngs[i])
        out[start:end] = lab_to_rgb(lab).reshape(end - start, img.shape[1], 3)
        return misses

    misses = _run_spans(config.workers, spans, run_one)
    return out, int(sum(misses))


def integral_stage(
    intermediate: U8Image, workers: int
) -> Tuple[Lab, SummedAreaTable]:
    """Stage 2. Returns (Stage-1 image as Lab, its summed-area table)."""
    lab = rgb_to_lab_threaded(intermediate, workers)
    return lab, build_table(lab)


def blend_stage(
    img: U8Image,
    table: SummedAreaTable,
    config: ColorizeConfig,
    spans: List[Span],
    stage1_lab: Optional[Lab] = None,
) -> U8Image:
    """Stage 3. Reads the source and the table, writes the final image."""
    out = np.empty_like(img)

    def run_one(_i: int, span: Span) -> None:
        start, end = span
        src = img[start:end]
        averaged = windowed_average_image(
            table, config.spatial_radius, span, lab=stage1_lab
        )
        out[start:end] = blend_image(averaged, rgb_to_lab(src), src, config.blend_factor)

    _run_spans(config.workers, spans, run_one)
    return out


def colorize_cpu(
    image: U8Image,
    config: ColorizeConfig,
    cache: Optional[ColourCache] = None,
    debug: bool = False,
    progress: bool = False,
) -> U8Image:
    """
    Recolour an 8-bit RGB image toward config.palette.

    Args:
      image: uint8 [H,W,3]
      config: validated run settings
      cache: memo to share across calls; a private one is used when None
      debug: log per-stage timings and cache statistics
      progress: rewrite a single status line as each stage finishes
    Returns:
      uint8 [H,W,3]
    """
    img = assert_u8_image_rgb(np.asarray(image))
    checked_palette(config.palette)
    cache = cache if cache is not None else ColourCache()
    height = img.shape[0]
    spans = split_rows_into_parts(height, config.workers)

    def _progress(done: int, name: str) -> None:
        if progress:
            print_progress_line(
                f"[cpu] stage {done}/{CPU_STAGES} {name}", final=done == CPU_STAGES
            )

    t0 = time.perf_counter()
    intermediate, misses = palette_match_stage(img, config, cache, spans)
    _progress(1, "match")
    t1 = time.perf_counter()
    stage1_lab, table = integral_stage(intermediate, config.workers)
    _progress(2, "table")
    t2 = time.perf_counter()
    out = blend_stage(img, table, config, spans, stage1_lab)
    _progress(3, "blend")
    t3 = time.perf_counter()

    if debug:
        debug_log(f"stage 1 match    {format_seconds_compact(t1 - t0)}")
        debug_log(f"stage 2 table    {format_seconds_compact(t2 - t1)}")
        debug_log(f"stage 3 blend    {format_seconds_compact(t3 - t2)}")
        debug_log(f"cache entries={len(cache)} misses={misses} spans={len(spans)}")
    return out


__all__ = [
    "palette_match_stage",
    "integral_stage",
    "blend_stage",
    "colorize_cpu",
]
