"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from typing import Any, Generator

import numpy as np
import pytest

from pydotcl.backends.host import HostDriver, WorkRange
from pydotcl.compilation.program import ComputeProgram
from pydotcl.config import CoreConfig
from pydotcl.core.context import DeviceContext

KERNEL_SOURCE = """
// Doubles every element below n
__kernel void double_it(__global int* data, const uint n) {
    size_t gid = get_global_id(0);
    if (gid < n) {
        data[gid] = data[gid] * 2;
    }
}

__kernel void scale(__global float* data, const float factor) {
    data[get_global_id(0)] *= factor;
}

__kernel void reduce_sum(__global const int* input, __local int* scratch, __global long* out) {
    scratch[get_local_id(0)] = input[get_global_id(0)];
    barrier(CLK_LOCAL_MEM_FENCE);
    if (get_global_id(0) == 0) {
        long total = 0;
        for (size_t i = 0; i < get_global_size(0); i++) total += input[i];
        out[0] = total;
    }
}

__kernel void fill_half(__global half* data) {
    data[get_global_id(0)] = 0;
}
"""


def _double_it(work: WorkRange, data: np.ndarray, n: np.uint32) -> None:
    gid = work.global_ids(0)
    gid = gid[gid < n]
    data[gid] = data[gid] * 2


def _scale(work: WorkRange, data: np.ndarray, factor: np.float32) -> None:
    gid = work.global_ids(0)
    data[gid] = data[gid] * factor


def _reduce_sum(work: WorkRange, data: np.ndarray, scratch: np.ndarray, out: np.ndarray) -> None:
    assert scratch.size >= work.local_size[0]
    out[0] = data[: work.global_size[0]].astype(np.int64).sum()


def _fill_half(work: WorkRange, data: np.ndarray) -> None:
    data[work.global_ids(0)] = 0


def register_test_kernels(driver: HostDriver) -> HostDriver:
    """Register host bodies for every kernel in KERNEL_SOURCE."""
    driver.register_kernel("double_it", _double_it)
    driver.register_kernel("scale", _scale)
    driver.register_kernel("reduce_sum", _reduce_sum)
    driver.register_kernel("fill_half", _fill_half)
    return driver


def _make_context(driver: HostDriver, **config: Any) -> DeviceContext:
    return DeviceContext(CoreConfig(driver="host", **config), driver=driver).init()


@pytest.fixture
def host_driver() -> HostDriver:
    """Provide a host driver with a discrete (non-unified) device."""
    return register_test_kernels(HostDriver())


@pytest.fixture
def unified_driver() -> HostDriver:
    """Provide a host driver whose device shares host memory."""
    return register_test_kernels(HostDriver(unified_memory=True))


@pytest.fixture
def context(host_driver: HostDriver) -> Generator[DeviceContext, None, None]:
    """Provide an initialized context on a discrete device."""
    ctx = _make_context(host_driver)
    yield ctx
    ctx.deinit()


@pytest.fixture
def unified_context(unified_driver: HostDriver) -> Generator[DeviceContext, None, None]:
    """Provide an initialized context on a unified-memory device."""
    ctx = _make_context(unified_driver)
    yield ctx
    ctx.deinit()


@pytest.fixture
def timed_context(host_driver: HostDriver) -> Generator[DeviceContext, None, None]:
    """Provide an initialized context collecting timing data."""
    ctx = _make_context(host_driver, collect_time=True)
    yield ctx
    ctx.deinit()


@pytest.fixture
def kernel_source() -> str:
    """Provide OpenCL C source declaring every registered test kernel."""
    return KERNEL_SOURCE


@pytest.fixture
def program(context: DeviceContext) -> Generator[ComputeProgram, None, None]:
    """Provide the test program built on the discrete context."""
    prog = ComputeProgram.from_source(context, KERNEL_SOURCE)
    yield prog
    prog.release()


def _opencl_available() -> bool:
    try:
        import pyopencl as cl

        return any(p.get_devices() for p in cl.get_platforms())
    except Exception:
        return False


# Markers for OpenCL tests
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "opencl: mark test as requiring an OpenCL device"
    )


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    """Skip OpenCL tests if no OpenCL device is available."""
    if not any("opencl" in item.keywords for item in items):
        return

    if not _opencl_available():
        skip_opencl = pytest.mark.skip(reason="OpenCL device not available")
        for item in items:
            if "opencl" in item.keywords:
                item.add_marker(skip_opencl)
