# tests/test_gpu.py
from __future__ import annotations

import sys
from types import SimpleNamespace

import numpy as np
import pytest

from colorizer import colorize
from colorizer.errors import BufferMapFailed, DeviceUnavailable
from colorizer.gpu.compute import (
    ComputeContext,
    load_shader_source,
    workgroups_2d,
    workgroups_rows,
)
from colorizer.gpu.run import (
    GRID_DTYPE,
    PARAMS_DTYPE,
    RUN_STAGES,
    GpuColorizer,
    GpuStage,
    make_params,
    pack_palette,
    pack_pixels,
)

FULL_HISTORY = [
    GpuStage.IDLE,
    GpuStage.DEVICE_ACQUIRED,
    GpuStage.BUFFERS_ALLOCATED,
    GpuStage.PASS1_DISPATCHED,
    GpuStage.PASS1_READ_BACK,
    GpuStage.SCAN_H,
    GpuStage.TRANSPOSE_H,
    GpuStage.SCAN_V,
    GpuStage.TRANSPOSE_V,
    GpuStage.PASS3_DISPATCHED,
    GpuStage.FINAL_READ_BACK,
    GpuStage.DONE,
]


# Host-side pieces (no device needed)


def test_missing_wgpu_is_device_unavailable(monkeypatch):
    monkeypatch.setitem(sys.modules, "wgpu", None)
    with pytest.raises(DeviceUnavailable):
        ComputeContext.acquire()


def test_colorize_gpu_without_device(monkeypatch, photo, make_config):
    monkeypatch.setitem(sys.modules, "wgpu", None)
    with pytest.raises(DeviceUnavailable):
        colorize(photo, make_config(), backend="gpu")


def test_uniform_layouts():
    assert PARAMS_DTYPE.itemsize == 32
    assert GRID_DTYPE.itemsize == 16


def test_params_packing(make_config):
    config = make_config(blend_factor=0.5, dither_amount=0.25, seed=2**33 + 7,
                         dither_reference="source")
    params = make_params(config, 640, 480, 12)
    assert params["width"][0] == 640 and params["height"][0] == 480
    assert params["spatial_radius"][0] == 12
    assert params["seed"][0] == 7
    assert params["dither_source"][0] == 1
    assert params["blend_factor"][0] == pytest.approx(0.5)


def test_pixel_and_palette_packing(rgb_palette):
    rgb = np.array([[[0, 128, 255]]], dtype=np.uint8)
    px = pack_pixels(rgb)
    assert px.shape == (1, 4) and px.dtype == np.float32
    assert np.allclose(px[0], [0.0, 128 / 255, 1.0, 1.0])
    pal = pack_palette(rgb_palette)
    assert pal.shape == (len(rgb_palette), 4)
    assert np.all(pal[:, 3] == 0.0)


def test_dispatch_sizes():
    assert workgroups_2d(17, 16) == (2, 1, 1)
    assert workgroups_rows(10) == (10, 1, 1)
    assert workgroups_rows(70000) == (65535, 2, 1)


def test_shaders_ship_with_the_package():
    src = load_shader_source("colour.wgsl", "match.wgsl")
    assert "struct Params" in src and "fn main" in src
    for name in ("scan.wgsl", "transpose.wgsl", "blend.wgsl"):
        assert "@compute" in load_shader_source(name)


class _FakeStaging:
    size = 64

    def map_sync(self, mode):
        raise RuntimeError("device lost")

    def read_mapped(self, copy=True):
        raise AssertionError("not mapped")

    def unmap(self):
        pass


class _FakeEncoder:
    def copy_buffer_to_buffer(self, *args):
        pass

    def finish(self):
        return "commands"


def _fake_context() -> ComputeContext:
    fake_wgpu = SimpleNamespace(
        BufferUsage=SimpleNamespace(
            MAP_READ=1, COPY_DST=2, COPY_SRC=4, STORAGE=8, UNIFORM=16
        ),
        MapMode=SimpleNamespace(READ=1),
    )
    device = SimpleNamespace(
        queue=SimpleNamespace(submit=lambda cmds: None),
        create_buffer=lambda **kw: _FakeStaging(),
        create_command_encoder=lambda: _FakeEncoder(),
    )
    return ComputeContext(fake_wgpu, SimpleNamespace(), device)


def test_map_failure_is_buffer_map_failed():
    ctx = _fake_context()
    with pytest.raises(BufferMapFailed):
        ctx.read_buffer(SimpleNamespace(size=64))


def test_failed_run_ends_in_error_stage(photo, make_config):
    ctx = _fake_context()

    def broken(*args, **kwargs):
        raise RuntimeError("out of memory")

    ctx.storage_buffer = broken  # type: ignore[method-assign]
    run = GpuColorizer(make_config(), context=ctx)
    with pytest.raises(RuntimeError):
        run.run(photo)
    assert run.stage is GpuStage.ERROR
    assert run.history == [GpuStage.IDLE, GpuStage.DEVICE_ACQUIRED, GpuStage.ERROR]


def test_progress_reports_stages_and_failure(photo, make_config, capsys):
    ctx = _fake_context()

    def broken(*args, **kwargs):
        raise RuntimeError("out of memory")

    ctx.storage_buffer = broken  # type: ignore[method-assign]
    run = GpuColorizer(make_config(), context=ctx, progress=True)
    with pytest.raises(RuntimeError):
        run.run(photo)
    out = capsys.readouterr().out
    assert f"[gpu] 1/{len(RUN_STAGES)} device acquired" in out
    assert out.endswith("[gpu] failed\n")


def test_run_stages_cover_the_successful_path():
    assert RUN_STAGES[0] is GpuStage.DEVICE_ACQUIRED
    assert RUN_STAGES[-1] is GpuStage.DONE
    assert GpuStage.ERROR not in RUN_STAGES


# Real device


@pytest.fixture(scope="module")
def gpu_context():
    pytest.importorskip("wgpu")
    try:
        return ComputeContext.acquire()
    except DeviceUnavailable as exc:
        pytest.skip(f"no GPU adapter: {exc}")


def test_gpu_matches_cpu(gpu_context, photo, make_config):
    config = make_config(dither_amount=0.0, spatial_radius=3, blend_factor=1.0)
    run = GpuColorizer(config, context=gpu_context)
    gpu_out = run.run(photo)
    cpu_out = colorize(photo, config)

    assert run.history == FULL_HISTORY
    assert gpu_out.shape == cpu_out.shape and gpu_out.dtype == np.uint8
    diff = np.abs(gpu_out.astype(int) - cpu_out.astype(int)).max(axis=-1)
    assert np.mean(diff > 3) < 0.02


def test_gpu_blend_zero_is_identity(gpu_context, photo, make_config):
    config = make_config(blend_factor=0.0)
    out = GpuColorizer(config, context=gpu_context).run(photo)
    assert np.array_equal(out, photo)


def test_gpu_tall_image(gpu_context, make_config, rng):
    img = rng.integers(0, 256, size=(600, 3, 3), dtype=np.uint8)
    out = GpuColorizer(make_config(spatial_radius=20), context=gpu_context).run(img)
    assert out.shape == img.shape
