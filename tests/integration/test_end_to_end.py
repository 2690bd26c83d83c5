"""
End-to-end integration tests.
"""

from __future__ import annotations

import numpy as np
import pytest

from pydotcl import (
    BufferPlacement,
    ComputeBuffer,
    ComputeProgram,
    CoreConfig,
    DeviceContext,
    MapFlags,
)
from pydotcl.backends.host import HostDriver
from pydotcl.compilation.kernel import PREFERRED_1D
from pydotcl.exceptions import (
    ArgumentTypeMismatchError,
    BufferLengthMismatchError,
    ConfigurationError,
)

DOUBLE_SOURCE = """
__kernel void double_it(__global int* data, const uint n) {
    size_t gid = get_global_id(0);
    if (gid < n) {
        data[gid] = data[gid] * 2;
    }
}
"""

DOUBLE_ALL_SOURCE = """
__kernel void double_all(__global int* data) {
    size_t gid = get_global_id(0);
    data[gid] = data[gid] * 2;
}
"""


def _run_double_all(ctx: DeviceContext) -> list[int]:
    data = ComputeBuffer(ctx, np.arange(1024, dtype=np.int32), BufferPlacement.ON_DEVICE)
    program = ComputeProgram.from_source(ctx, DOUBLE_ALL_SOURCE)
    kernel = program.get_kernel("double_all", 1024, 32)

    kernel.push_arg(data)
    kernel.execute()

    out = np.empty(1024, dtype=np.int32)
    data.device_read_to(out)

    kernel.release()
    program.release()
    data.release()
    return out.tolist()


class TestDoublingPipeline:
    """Tests for the full create, transfer, dispatch, read-back flow."""

    def test_double_1024(self, context: DeviceContext, kernel_source: str) -> None:
        """Test doubling 1024 int32 values with 32-wide work groups."""
        data = ComputeBuffer(
            context, np.arange(1024, dtype=np.int32), BufferPlacement.ON_HOST_AND_DEVICE
        )
        program = ComputeProgram.from_source(context, kernel_source)
        kernel = program.get_kernel("double_it", 1024, PREFERRED_1D)

        data.to_device()
        kernel.push_arg(data)
        kernel.push_arg(np.uint32(1024))
        kernel.execute()
        data.to_host()

        out = np.empty(1024, dtype=np.int32)
        data.host_read_to(out)
        assert out.tolist() == list(range(0, 2048, 2))

        kernel.release()
        program.release()
        data.release()

    def test_double_device_only(self) -> None:
        """Test doubling a device-only buffer bound as the sole argument."""
        driver = HostDriver()

        @driver.register_kernel("double_all")
        def double_all(work, data):
            data[work.global_ids(0)] *= 2

        with DeviceContext(CoreConfig(driver="host"), driver=driver) as ctx:
            assert _run_double_all(ctx) == list(range(0, 2048, 2))

        assert "clEnqueueWriteBuffer" not in driver.call_log
        assert driver.live_buffers == 0

    def test_double_unified(self, unified_context: DeviceContext, kernel_source: str) -> None:
        """Test the same flow on a unified device without any transfer."""
        data = ComputeBuffer(
            unified_context, np.arange(1024, dtype=np.int32), BufferPlacement.ON_HOST_AND_DEVICE
        )
        program = ComputeProgram.from_source(unified_context, kernel_source)
        kernel = program.get_kernel("double_it", 1024, 32)

        kernel.push_arg(data)
        kernel.push_arg(np.uint32(1024))
        kernel.execute()

        with data.map_host(MapFlags.READ) as view:
            assert view.as_array().tolist() == list(range(0, 2048, 2))

        kernel.release()
        program.release()
        data.release()

    def test_chained_non_blocking(self, context: DeviceContext, kernel_source: str) -> None:
        """Test chaining non-blocking commands through wait lists."""
        data = ComputeBuffer(
            context, np.arange(64, dtype=np.int32), BufferPlacement.ON_HOST_AND_DEVICE
        )
        program = ComputeProgram.from_source(context, kernel_source)
        kernel = program.get_kernel("double_it", 64, 32)
        kernel.push_arg(data)
        kernel.push_arg(np.uint32(64))

        upload = data.to_device(blocking=False)
        run = kernel.execute(blocking=False, wait_for=[upload])
        download = data.to_host(blocking=False, wait_for=[run])
        assert download is not None
        download.wait()
        context.wait_queue()

        assert data.tail(2) == {62: 124, 63: 126}
        kernel.release()
        program.release()
        data.release()


class TestPlacementScenarios:
    """Tests for placement rules across a session."""

    def test_host_and_device_round_trip(self, context: DeviceContext) -> None:
        """Test that to_device then device_read_to returns the host data."""
        values = np.linspace(0.0, 1.0, 32, dtype=np.float32)
        buffer = ComputeBuffer.empty(context, 32, np.float32, BufferPlacement.ON_HOST_AND_DEVICE)

        with buffer.map_host(MapFlags.WRITE) as view:
            view.as_array()[:] = values
        buffer.to_device()

        out = np.empty(32, dtype=np.float32)
        buffer.device_read_to(out)
        np.testing.assert_array_equal(out, values)
        buffer.release()

    def test_host_only_to_device_fails(self, context: DeviceContext) -> None:
        buffer = ComputeBuffer(context, np.zeros(8, dtype=np.int32), BufferPlacement.ON_HOST)

        with pytest.raises(ConfigurationError):
            buffer.to_device()
        buffer.release()

    def test_map_write_release_read(self, context: DeviceContext) -> None:
        """Test that values written through a mapping are read back."""
        buffer = ComputeBuffer(context, np.zeros(8, dtype=np.uint8), BufferPlacement.ON_HOST)

        accessor = buffer.map_host()
        for i in range(len(accessor)):
            accessor[i] = 10 * i
        accessor.release()

        out = np.empty(8, dtype=np.uint8)
        buffer.host_read_to(out)
        assert out.tolist() == [0, 10, 20, 30, 40, 50, 60, 70]
        buffer.release()

    def test_unified_host_writes_visible(self, unified_context: DeviceContext) -> None:
        """Test that host writes reach device reads without transfers."""
        driver = unified_context.driver
        buffer = ComputeBuffer(
            unified_context, np.zeros(4, dtype=np.float64), BufferPlacement.ON_HOST_AND_DEVICE
        )

        with buffer.map_host() as view:
            view[:] = [1.5, 2.5, 3.5, 4.5]
        assert buffer.to_device() is None

        out = np.empty(4, dtype=np.float64)
        buffer.device_read_to(out)
        assert out.tolist() == [1.5, 2.5, 3.5, 4.5]
        assert "clEnqueueCopyBuffer" not in driver.call_log
        buffer.release()

    def test_unequal_copy_fails_first(self, context: DeviceContext) -> None:
        """Test that unequal-length peer copies make no driver call."""
        a = ComputeBuffer(context, np.zeros(16, dtype=np.int32), BufferPlacement.ON_HOST_AND_DEVICE)
        b = ComputeBuffer(context, np.zeros(8, dtype=np.int32), BufferPlacement.ON_HOST_AND_DEVICE)
        calls = list(context.driver.call_log)

        with pytest.raises(BufferLengthMismatchError):
            a.copy_host_to(b)
        with pytest.raises(BufferLengthMismatchError):
            a.copy_device_to(b)

        assert context.driver.call_log == calls
        a.release()
        b.release()


class TestArgumentScenarios:
    """Tests for kernel argument validation in a session."""

    def test_scalar_mismatch(self, context: DeviceContext, kernel_source: str) -> None:
        program = ComputeProgram.from_source(context, kernel_source)
        kernel = program.get_kernel("double_it", 8)
        calls = len(context.driver.call_log)

        with pytest.raises(ArgumentTypeMismatchError, match=r'expected "uint", got "float32"'):
            kernel.set_arg(1, np.float32(8.0))

        assert "clSetKernelArg" not in context.driver.call_log[calls:]
        kernel.release()
        program.release()

    def test_pointer_mismatch(self, context: DeviceContext, kernel_source: str) -> None:
        program = ComputeProgram.from_source(context, kernel_source)
        kernel = program.get_kernel("double_it", 8)
        data = ComputeBuffer(context, np.zeros(8, dtype=np.int32), BufferPlacement.ON_DEVICE)

        with pytest.raises(ArgumentTypeMismatchError):
            kernel.set_arg(0, np.int32(0))
        with pytest.raises(ArgumentTypeMismatchError):
            kernel.set_arg(1, data)

        data.release()
        kernel.release()
        program.release()


class TestSessionLifecycle:
    """Tests for a whole session with deinit callbacks."""

    def test_deinit_releases_everything(self, kernel_source: str) -> None:
        driver = HostDriver()

        @driver.register_kernel("double_it")
        def double_it(work, data, n):
            data[work.global_ids(0)] *= 2

        for name in ("scale", "reduce_sum", "fill_half"):
            driver.register_kernel(name, lambda work, *args: None)

        with DeviceContext(CoreConfig(driver="host", collect_time=True), driver=driver) as ctx:
            data = ComputeBuffer(ctx, np.ones(32, dtype=np.int32), BufferPlacement.ON_HOST_AND_DEVICE)
            program = ComputeProgram.from_source(ctx, kernel_source)
            kernel = program.get_kernel("double_it", 32, 32)
            ctx.on_deinit(kernel.release)
            ctx.on_deinit(program.release)
            ctx.on_deinit(data.release)

            data.to_device()
            kernel.push_arg(data)
            kernel.push_arg(np.uint32(32))
            kernel.execute()
            io_ns, kernel_ns = ctx.measure_time()

            assert data.head(3) == {0: 2, 1: 2, 2: 2}
            assert io_ns >= 0 and kernel_ns >= 0

        assert driver.live_buffers == 0
        assert kernel.released and program.released and data.released
        assert driver.call_log[-3:] == ["clReleaseCommandQueue", "clReleaseContext", "clReleaseDevice"]


@pytest.mark.opencl
class TestOpenCLDevice:
    """Tests against a real OpenCL device."""

    def test_double_1024(self) -> None:
        with DeviceContext(CoreConfig(driver="opencl", device_type="all")) as ctx:
            data = ComputeBuffer(
                ctx, np.arange(1024, dtype=np.int32), BufferPlacement.ON_HOST_AND_DEVICE
            )
            program = ComputeProgram.from_source(ctx, DOUBLE_SOURCE)
            kernel = program.get_kernel("double_it", 1024, 32)

            data.to_device()
            kernel.push_arg(data)
            kernel.push_arg(np.uint32(1024))
            kernel.execute()
            data.to_host()

            out = np.empty(1024, dtype=np.int32)
            data.host_read_to(out)
            assert out.tolist() == list(range(0, 2048, 2))

            kernel.release()
            program.release()
            data.release()

    def test_double_device_only(self) -> None:
        with DeviceContext(CoreConfig(driver="opencl", device_type="all")) as ctx:
            assert _run_double_all(ctx) == list(range(0, 2048, 2))
