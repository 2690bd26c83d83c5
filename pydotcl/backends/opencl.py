"""
OpenCL driver for PyDotCL.

Provides the real driver binding on top of PyOpenCL. Every PyOpenCL
error is translated into a DriverError carrying the failing operation
and the raw OpenCL status code.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import numpy as np
import pyopencl as cl

from pydotcl.backends.base import AddressQualifier, Driver, MapFlags, MemFlags
from pydotcl.exceptions import DriverError, InvalidConfigurationError

if TYPE_CHECKING:
    from numpy.typing import NDArray


logger = logging.getLogger(__name__)

_DEVICE_TYPES = {
    "gpu": cl.device_type.GPU,
    "cpu": cl.device_type.CPU,
    "accelerator": cl.device_type.ACCELERATOR,
    "all": cl.device_type.ALL,
}


@contextmanager
def _driver_call(operation: str) -> Iterator[None]:
    """Translate PyOpenCL errors raised inside the block into DriverError."""
    try:
        yield
    except cl.Error as e:
        raise DriverError(operation, e.code, str(e)) from e


def _wait_list(wait_for: Sequence[Any] | None) -> list[Any] | None:
    if not wait_for:
        return None
    return list(wait_for)


class OpenCLDriver(Driver):
    """
    Driver implementation using PyOpenCL.

    Contexts, queues, devices, programs and kernels are reference counted
    by PyOpenCL itself; their release methods drop the driver's interest
    in them. Memory objects are released explicitly.

    Example:
        >>> driver = OpenCLDriver()
        >>> platform = driver.get_platforms()[0]
        >>> device = driver.get_devices(platform, "gpu")[0]
    """

    def __init__(self) -> None:
        # Build failure text per program; PyOpenCL folds the device logs into it
        self._failed_builds: dict[int, str] = {}

    @property
    def name(self) -> str:
        """Get the driver name."""
        return "opencl"

    # Discovery

    def get_platforms(self) -> list[Any]:
        """Enumerate OpenCL platforms."""
        with _driver_call("clGetPlatformIDs"):
            return list(cl.get_platforms())

    def platform_name(self, platform: Any) -> str:
        with _driver_call("clGetPlatformInfo"):
            return str(platform.name)

    def platform_version(self, platform: Any) -> str:
        with _driver_call("clGetPlatformInfo"):
            return str(platform.version)

    def get_devices(self, platform: Any, device_type: str) -> list[Any]:
        """Enumerate devices of the requested type on a platform."""
        if device_type not in _DEVICE_TYPES:
            raise InvalidConfigurationError(
                "device_type", device_type, f"must be one of {sorted(_DEVICE_TYPES)}"
            )
        with _driver_call("clGetDeviceIDs"):
            return list(platform.get_devices(device_type=_DEVICE_TYPES[device_type]))

    def device_name(self, device: Any) -> str:
        with _driver_call("clGetDeviceInfo"):
            return str(device.name).strip()

    def host_unified_memory(self, device: Any) -> bool:
        with _driver_call("clGetDeviceInfo"):
            return bool(device.host_unified_memory)

    # Lifecycle

    def create_context(self, device: Any) -> Any:
        with _driver_call("clCreateContext"):
            return cl.Context(devices=[device])

    def create_queue(self, context: Any, device: Any, *, profiling: bool = False) -> Any:
        properties = cl.command_queue_properties.PROFILING_ENABLE if profiling else 0
        with _driver_call("clCreateCommandQueueWithProperties"):
            return cl.CommandQueue(context, device, properties=properties)

    def release_queue(self, queue: Any) -> None:
        with _driver_call("clFinish"):
            queue.finish()

    def release_context(self, context: Any) -> None:
        # PyOpenCL releases the context once its last reference is dropped
        pass

    def release_device(self, device: Any) -> None:
        pass

    # Memory

    def create_buffer(
        self,
        context: Any,
        flags: MemFlags,
        nbytes: int,
        hostbuf: NDArray[Any] | None = None,
    ) -> Any:
        """Create an OpenCL buffer."""
        with _driver_call("clCreateBuffer"):
            return cl.Buffer(context, int(flags), size=nbytes, hostbuf=hostbuf)

    def release_buffer(self, buffer: Any) -> None:
        with _driver_call("clReleaseMemObject"):
            buffer.release()

    def enqueue_read_buffer(
        self,
        queue: Any,
        buffer: Any,
        destination: NDArray[Any],
        *,
        offset: int = 0,
        blocking: bool = True,
        wait_for: Sequence[Any] | None = None,
    ) -> Any:
        with _driver_call("clEnqueueReadBuffer"):
            return cl.enqueue_copy(
                queue,
                destination,
                buffer,
                src_offset=offset,
                is_blocking=blocking,
                wait_for=_wait_list(wait_for),
            )

    def enqueue_write_buffer(
        self,
        queue: Any,
        buffer: Any,
        source: NDArray[Any],
        *,
        offset: int = 0,
        blocking: bool = True,
        wait_for: Sequence[Any] | None = None,
    ) -> Any:
        with _driver_call("clEnqueueWriteBuffer"):
            return cl.enqueue_copy(
                queue,
                buffer,
                source,
                dst_offset=offset,
                is_blocking=blocking,
                wait_for=_wait_list(wait_for),
            )

    def enqueue_copy_buffer(
        self,
        queue: Any,
        source: Any,
        destination: Any,
        nbytes: int,
        *,
        wait_for: Sequence[Any] | None = None,
    ) -> Any:
        with _driver_call("clEnqueueCopyBuffer"):
            return cl.enqueue_copy(
                queue,
                destination,
                source,
                byte_count=nbytes,
                wait_for=_wait_list(wait_for),
            )

    def enqueue_map_buffer(
        self,
        queue: Any,
        buffer: Any,
        flags: MapFlags,
        count: int,
        dtype: np.dtype[Any],
        *,
        blocking: bool = True,
    ) -> tuple[NDArray[Any], Any]:
        with _driver_call("clEnqueueMapBuffer"):
            mapped, event = cl.enqueue_map_buffer(
                queue,
                buffer,
                int(flags),
                0,
                (count,),
                dtype,
                is_blocking=blocking,
            )
        return mapped, event

    def enqueue_unmap(self, queue: Any, buffer: Any, mapped: NDArray[Any]) -> Any:
        # The mapped array's base is the MemoryMap that owns the mapping
        with _driver_call("clEnqueueUnmapMemObject"):
            return mapped.base.release(queue)

    # Programs and kernels

    def create_program(self, context: Any, source: str) -> Any:
        with _driver_call("clCreateProgramWithSource"):
            return cl.Program(context, source)

    def build_program(self, program: Any, device: Any, options: Sequence[str]) -> None:
        try:
            program.build(options=list(options), devices=[device])
        except cl.Error as e:
            self._failed_builds[id(program)] = str(e)
            raise DriverError("clBuildProgram", e.code, str(e)) from e

    def get_build_log(self, program: Any, device: Any) -> str:
        """
        Get the build log of a program.

        A failed build leaves no built program to query, so the log is
        the text PyOpenCL reported for the failure.
        """
        if id(program) in self._failed_builds:
            return self._failed_builds[id(program)]
        with _driver_call("clGetProgramBuildInfo"):
            log = program.get_build_info(device, cl.program_build_info.LOG)
        return str(log).rstrip("\x00")

    def get_program_binaries(self, program: Any) -> list[bytes]:
        with _driver_call("clGetProgramInfo"):
            return [bytes(b) for b in program.get_info(cl.program_info.BINARIES)]

    def release_program(self, program: Any) -> None:
        self._failed_builds.pop(id(program), None)

    def create_kernel(self, program: Any, name: str) -> Any:
        with _driver_call("clCreateKernel"):
            return cl.Kernel(program, name)

    def get_kernel_arg_type_name(self, kernel: Any, index: int) -> str:
        with _driver_call("clGetKernelArgInfo"):
            name = kernel.get_arg_info(index, cl.kernel_arg_info.TYPE_NAME)
        return str(name).rstrip("\x00")

    def get_kernel_arg_address_qualifier(self, kernel: Any, index: int) -> AddressQualifier:
        with _driver_call("clGetKernelArgInfo"):
            qualifier = kernel.get_arg_info(index, cl.kernel_arg_info.ADDRESS_QUALIFIER)
        return AddressQualifier(int(qualifier))

    def set_kernel_arg(self, kernel: Any, index: int, value: np.generic) -> None:
        with _driver_call("clSetKernelArg"):
            kernel.set_arg(index, value)

    def set_kernel_arg_buffer(self, kernel: Any, index: int, buffer: Any) -> None:
        with _driver_call("clSetKernelArg"):
            kernel.set_arg(index, buffer)

    def set_kernel_arg_local(self, kernel: Any, index: int, nbytes: int) -> None:
        with _driver_call("clSetKernelArg"):
            kernel.set_arg(index, cl.LocalMemory(nbytes))

    def enqueue_nd_range_kernel(
        self,
        queue: Any,
        kernel: Any,
        global_size: tuple[int, ...],
        local_size: tuple[int, ...] | None,
        offset: tuple[int, ...] | None = None,
        *,
        wait_for: Sequence[Any] | None = None,
    ) -> Any:
        with _driver_call("clEnqueueNDRangeKernel"):
            return cl.enqueue_nd_range_kernel(
                queue,
                kernel,
                global_size,
                local_size,
                offset or None,
                wait_for=_wait_list(wait_for),
            )

    def release_kernel(self, kernel: Any) -> None:
        pass

    # Events

    def wait_for_events(self, events: Sequence[Any]) -> None:
        if not events:
            return
        with _driver_call("clWaitForEvents"):
            cl.wait_for_events(list(events))

    def get_event_elapsed(self, event: Any) -> int:
        with _driver_call("clGetEventProfilingInfo"):
            return int(event.profile.end) - int(event.profile.start)

    def release_event(self, event: Any) -> None:
        pass

    def finish(self, queue: Any) -> None:
        with _driver_call("clFinish"):
            queue.finish()
