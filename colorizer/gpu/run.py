# colorizer/gpu/run.py
from __future__ import annotations

"""
GPU backend: the three colorize stages as wgpu compute passes.

Pass 1      match.wgsl      palette match + dither, quantised, as Lab
Stage 2     scan.wgsl       row prefix sums
            transpose.wgsl  clamped row windows, transposed
            (scan + transpose again for the other axis -> clamped box sums)
Pass 3      blend.wgsl      windowed mean, luminance transfer, blend

Every pass is submitted on its own and the host blocks on the queue before
the next one. Pixels travel as vec4<f32> (rgb or Lab plus one padding lane).
"""

import enum
import time
from typing import List, Optional

import numpy as np

from ..core_types import ColorizeConfig, U8Image, assert_u8_image_rgb
from ..cpu.match import checked_palette
from ..utils import debug_log, format_seconds_compact, print_progress_line
from .compute import COMMON_SHADER, ComputeContext, workgroups_2d, workgroups_rows

PARAMS_DTYPE = np.dtype(
    [
        ("width", "<u4"),
        ("height", "<u4"),
        ("blend_factor", "<f4"),
        ("dither_amount", "<f4"),
        ("spatial_radius", "<u4"),
        ("seed", "<u4"),
        ("dither_source", "<u4"),
        ("pad0", "<u4"),
    ]
)

GRID_DTYPE = np.dtype(
    [("width", "<u4"), ("height", "<u4"), ("radius", "<u4"), ("pad0", "<u4")]
)


class GpuStage(enum.Enum):
    IDLE = "idle"
    DEVICE_ACQUIRED = "device acquired"
    BUFFERS_ALLOCATED = "buffers allocated"
    PASS1_DISPATCHED = "pass 1 dispatched"
    PASS1_READ_BACK = "pass 1 read back"
    SCAN_H = "scan rows"
    TRANSPOSE_H = "transpose rows"
    SCAN_V = "scan columns"
    TRANSPOSE_V = "transpose columns"
    PASS3_DISPATCHED = "pass 3 dispatched"
    FINAL_READ_BACK = "final read back"
    DONE = "done"
    ERROR = "error"


# Stages a successful run passes through after IDLE, in order.
RUN_STAGES = [s for s in GpuStage if s not in (GpuStage.IDLE, GpuStage.ERROR)]


# Small helpers


def pack_pixels(rgb: U8Image) -> np.ndarray:
    """uint8 [H,W,3] -> float32 [H*W,4] rgb in 0..1, padding lane 1."""
    h, w = rgb.shape[:2]
    out = np.ones((h * w, 4), dtype=np.float32)
    out[:, :3] = rgb.reshape(-1, 3).astype(np.float32) / np.float32(255.0)
    return out


def pack_palette(palette: np.ndarray) -> np.ndarray:
    pal = checked_palette(palette)
    out = np.zeros((pal.shape[0], 4), dtype=np.float32)
    out[:, :3] = pal
    return out


def _seed_u32(seed: Optional[int]) -> int:
    if seed is None:
        return int(np.random.SeedSequence().generate_state(1)[0])
    return int(seed) & 0xFFFFFFFF


def make_params(config: ColorizeConfig, width: int, height: int, radius: int) -> np.ndarray:
    params = np.zeros(1, dtype=PARAMS_DTYPE)
    params["width"] = width
    params["height"] = height
    params["blend_factor"] = config.blend_factor
    params["dither_amount"] = config.dither_amount
    params["spatial_radius"] = radius
    params["seed"] = _seed_u32(config.seed)
    params["dither_source"] = 1 if config.dither_reference == "source" else 0
    return params


def make_grid(width: int, height: int, radius: int) -> np.ndarray:
    grid = np.zeros(1, dtype=GRID_DTYPE)
    grid["width"] = width
    grid["height"] = height
    grid["radius"] = radius
    return grid


class GpuColorizer:
    """
    One GPU colorize run with an observable stage history.

    Every transition is recorded in history; on failure the stage becomes
    ERROR and the exception propagates.
    """

    def __init__(
        self,
        config: ColorizeConfig,
        context: Optional[ComputeContext] = None,
        debug: bool = False,
        progress: bool = False,
    ) -> None:
        self.config = config
        self.context = context
        self.debug = debug
        self.progress = progress
        self.stage = GpuStage.IDLE
        self.history: List[GpuStage] = [GpuStage.IDLE]
        self.matched_lab: Optional[np.ndarray] = None
        self._t_last = time.perf_counter()

    def _advance(self, stage: GpuStage) -> None:
        now = time.perf_counter()
        if self.debug:
            debug_log(
                f"gpu {self.stage.value} -> {stage.value} "
                f"({format_seconds_compact(now - self._t_last)})"
            )
        self._t_last = now
        self.stage = stage
        self.history.append(stage)
        if self.progress and stage in RUN_STAGES:
            done = RUN_STAGES.index(stage) + 1
            print_progress_line(
                f"[gpu] {done}/{len(RUN_STAGES)} {stage.value}",
                final=stage is GpuStage.DONE,
            )

    def run(self, image: U8Image) -> U8Image:
        img = assert_u8_image_rgb(np.asarray(image))
        pal = pack_palette(self.config.palette)
        try:
            return self._run(img, pal)
        except BaseException:
            self.stage = GpuStage.ERROR
            self.history.append(GpuStage.ERROR)
            if self.progress:
                print_progress_line("[gpu] failed", final=True)
            raise

    def _run(self, img: U8Image, pal: np.ndarray) -> U8Image:
        height, width = img.shape[:2]
        radius = min(self.config.spatial_radius, max(width, height))
        n_bytes = height * width * 16

        ctx = self.context if self.context is not None else ComputeContext.acquire()
        self.context = ctx
        self._advance(GpuStage.DEVICE_ACQUIRED)
        if self.debug:
            debug_log(f"gpu adapter: {ctx.adapter_name}")

        src_buf = ctx.storage_buffer(pack_pixels(img), label="source")
        matched_buf = ctx.empty_storage_buffer(n_bytes, label="matched")
        scratch_a = ctx.empty_storage_buffer(n_bytes, label="scratch a")
        scratch_b = ctx.empty_storage_buffer(n_bytes, label="scratch b")
        out_buf = ctx.empty_storage_buffer(n_bytes, label="output")
        pal_buf = ctx.storage_buffer(pal, label="palette")
        params_buf = ctx.uniform_buffer(
            make_params(self.config, width, height, radius), label="params"
        )
        rows_grid = ctx.uniform_buffer(make_grid(width, height, radius), label="rows")
        cols_grid = ctx.uniform_buffer(make_grid(height, width, radius), label="cols")

        match_pipe = ctx.pipeline(COMMON_SHADER, "match.wgsl")
        scan_pipe = ctx.pipeline("scan.wgsl")
        transpose_pipe = ctx.pipeline("transpose.wgsl")
        blend_pipe = ctx.pipeline(COMMON_SHADER, "blend.wgsl")
        self._advance(GpuStage.BUFFERS_ALLOCATED)

        ctx.dispatch(
            match_pipe,
            ctx.bind_group(match_pipe, [src_buf, matched_buf, pal_buf, params_buf]),
            workgroups_2d(width, height),
        )
        self._advance(GpuStage.PASS1_DISPATCHED)

        self.matched_lab = ctx.read_buffer(matched_buf).reshape(height, width, 4)[..., :3]
        self._advance(GpuStage.PASS1_READ_BACK)

        ctx.dispatch(
            scan_pipe,
            ctx.bind_group(scan_pipe, [matched_buf, scratch_a, rows_grid]),
            workgroups_rows(height),
        )
        self._advance(GpuStage.SCAN_H)

        ctx.dispatch(
            transpose_pipe,
            ctx.bind_group(transpose_pipe, [scratch_a, scratch_b, rows_grid]),
            workgroups_2d(width, height),
        )
        self._advance(GpuStage.TRANSPOSE_H)

        ctx.dispatch(
            scan_pipe,
            ctx.bind_group(scan_pipe, [scratch_b, scratch_a, cols_grid]),
            workgroups_rows(width),
        )
        self._advance(GpuStage.SCAN_V)

        ctx.dispatch(
            transpose_pipe,
            ctx.bind_group(transpose_pipe, [scratch_a, scratch_b, cols_grid]),
            workgroups_2d(height, width),
        )
        self._advance(GpuStage.TRANSPOSE_V)

        ctx.dispatch(
            blend_pipe,
            ctx.bind_group(blend_pipe, [src_buf, scratch_b, out_buf, params_buf]),
            workgroups_2d(width, height),
        )
        self._advance(GpuStage.PASS3_DISPATCHED)

        raw = ctx.read_buffer(out_buf).reshape(height, width, 4)[..., :3]
        out = np.clip(np.rint(raw), 0, 255).astype(np.uint8)
        self._advance(GpuStage.FINAL_READ_BACK)
        self._advance(GpuStage.DONE)
        return out


def colorize_gpu(
    image: U8Image,
    config: ColorizeConfig,
    context: Optional[ComputeContext] = None,
    debug: bool = False,
    progress: bool = False,
) -> U8Image:
    """
    Recolour an 8-bit RGB image on the GPU.

    Raises DeviceUnavailable when no device can be used and BufferMapFailed
    when a readback cannot be mapped.
    """
    return GpuColorizer(
        config, context=context, debug=debug, progress=progress
    ).run(image)


__all__ = [
    "GpuStage",
    "RUN_STAGES",
    "GpuColorizer",
    "PARAMS_DTYPE",
    "GRID_DTYPE",
    "pack_pixels",
    "pack_palette",
    "make_params",
    "make_grid",
    "colorize_gpu",
]
