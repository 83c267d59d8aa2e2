# colorizer/gpu/compute.py
from __future__ import annotations

"""
Thin wgpu-py wrapper: one adapter/device/queue plus the handful of calls the
GPU backend needs (storage/uniform buffers, WGSL pipelines, dispatch, blocking
readback).

wgpu is imported lazily so the CPU path never needs it installed.
"""

from importlib import resources
from typing import Any, Sequence, Tuple

import numpy as np

from ..errors import BufferMapFailed, DeviceUnavailable

SHADER_PACKAGE = "colorizer.gpu"
# Shared colour functions and the Params struct.
COMMON_SHADER = "colour.wgsl"
# Max workgroups per dispatch dimension.
MAX_DISPATCH = 65535


def load_shader_source(*names: str) -> str:
    """Concatenated text of shaders/<name> for each name."""
    root = resources.files(SHADER_PACKAGE) / "shaders"
    return "\n".join((root / name).read_text(encoding="utf-8") for name in names)


def _import_wgpu() -> Any:
    try:
        import wgpu
    except (ImportError, OSError) as exc:
        raise DeviceUnavailable(
            f"wgpu is not available ({exc}); install the 'gpu' extra"
        ) from exc
    return wgpu


class ComputeContext:
    """
    A device and its queue.

    Build with ComputeContext.acquire(). The constructor takes the wgpu module
    and already-created handles so fakes can be injected.
    """

    def __init__(self, wgpu_module: Any, adapter: Any, device: Any) -> None:
        self.wgpu = wgpu_module
        self.adapter = adapter
        self.device = device
        self.queue = device.queue

    @classmethod
    def acquire(cls, power_preference: str = "high-performance") -> "ComputeContext":
        """Request an adapter and device. Raise DeviceUnavailable on any failure."""
        wgpu = _import_wgpu()
        try:
            adapter = wgpu.gpu.request_adapter_sync(power_preference=power_preference)
        except Exception as exc:
            raise DeviceUnavailable(f"no compatible GPU adapter: {exc}") from exc
        if adapter is None:
            raise DeviceUnavailable("no compatible GPU adapter")
        try:
            device = adapter.request_device_sync(required_limits=dict(adapter.limits))
        except Exception as exc:
            raise DeviceUnavailable(f"failed to create GPU device: {exc}") from exc
        return cls(wgpu, adapter, device)

    @property
    def adapter_name(self) -> str:
        info = getattr(self.adapter, "info", None) or {}
        return str(info.get("device") or info.get("description") or "unknown")

    # Buffers

    def storage_buffer(self, data: np.ndarray, label: str = "") -> Any:
        """Storage buffer initialised from data, usable as copy source."""
        usage = self.wgpu.BufferUsage
        return self.device.create_buffer_with_data(
            label=label,
            data=np.ascontiguousarray(data),
            usage=usage.STORAGE | usage.COPY_SRC | usage.COPY_DST,
        )

    def empty_storage_buffer(self, size: int, label: str = "") -> Any:
        usage = self.wgpu.BufferUsage
        return self.device.create_buffer(
            label=label,
            size=int(size),
            usage=usage.STORAGE | usage.COPY_SRC | usage.COPY_DST,
        )

    def uniform_buffer(self, data: np.ndarray, label: str = "") -> Any:
        usage = self.wgpu.BufferUsage
        return self.device.create_buffer_with_data(
            label=label,
            data=np.ascontiguousarray(data).tobytes(),
            usage=usage.UNIFORM | usage.COPY_DST,
        )

    # Pipelines

    def pipeline(self, *shader_names: str, entry_point: str = "main") -> Any:
        """Compute pipeline from the concatenation of the named shader files."""
        module = self.device.create_shader_module(
            label=shader_names[-1], code=load_shader_source(*shader_names)
        )
        return self.device.create_compute_pipeline(
            label=shader_names[-1],
            layout="auto",
            compute={"module": module, "entry_point": entry_point},
        )

    def bind_group(self, pipeline: Any, buffers: Sequence[Any]) -> Any:
        """Bind buffers to @group(0) @binding(i) in order."""
        entries = [
            {"binding": i, "resource": {"buffer": buf, "offset": 0, "size": buf.size}}
            for i, buf in enumerate(buffers)
        ]
        return self.device.create_bind_group(
            layout=pipeline.get_bind_group_layout(0), entries=entries
        )

    # Execution

    def dispatch(
        self, pipeline: Any, bind_group: Any, workgroups: Tuple[int, int, int]
    ) -> None:
        """Record one compute pass, submit it and block until the queue drains."""
        encoder = self.device.create_command_encoder()
        compute_pass = encoder.begin_compute_pass()
        compute_pass.set_pipeline(pipeline)
        compute_pass.set_bind_group(0, bind_group)
        compute_pass.dispatch_workgroups(*workgroups)
        compute_pass.end()
        self.queue.submit([encoder.finish()])
        self.wait()

    def wait(self) -> None:
        self.queue.on_submitted_work_done_sync()

    def read_buffer(self, buffer: Any, dtype: Any = np.float32) -> np.ndarray:
        """
        Copy buffer into a MAP_READ staging buffer, map it and return a host
        copy. Mapping failures raise BufferMapFailed.
        """
        usage = self.wgpu.BufferUsage
        staging = self.device.create_buffer(
            label="staging", size=buffer.size, usage=usage.MAP_READ | usage.COPY_DST
        )
        encoder = self.device.create_command_encoder()
        encoder.copy_buffer_to_buffer(buffer, 0, staging, 0, buffer.size)
        self.queue.submit([encoder.finish()])

        try:
            staging.map_sync(self.wgpu.MapMode.READ)
        except Exception as exc:
            raise BufferMapFailed(f"failed to map staging buffer: {exc}") from exc
        try:
            raw = staging.read_mapped(copy=True)
        finally:
            staging.unmap()
        return np.frombuffer(raw, dtype=dtype).copy()


def workgroups_2d(width: int, height: int, size: int = 16) -> Tuple[int, int, int]:
    """Workgroup counts covering a width x height grid with size x size groups."""
    return ((width + size - 1) // size, (height + size - 1) // size, 1)


def workgroups_rows(rows: int) -> Tuple[int, int, int]:
    """One workgroup per row, folded into y once x reaches MAX_DISPATCH."""
    x = min(rows, MAX_DISPATCH)
    return (x, (rows + x - 1) // x, 1)


__all__ = [
    "COMMON_SHADER",
    "MAX_DISPATCH",
    "load_shader_source",
    "ComputeContext",
    "workgroups_2d",
    "workgroups_rows",
]
