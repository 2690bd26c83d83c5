"""
Host driver for PyDotCL.

Provides an in-process emulation of the driver interface on top of NumPy.
Useful for testing and development without an OpenCL runtime.

Kernel signatures are parsed from OpenCL C source, while kernel bodies are
Python callables registered on the driver by name. Commands execute
synchronously at enqueue time, so every returned event is already complete.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from pydotcl.backends.base import (
    DEVICE_TYPES,
    KERNEL_ARG_INFO_OPTION,
    AddressQualifier,
    Driver,
    MapFlags,
    MemFlags,
    StatusCode,
)
from pydotcl.exceptions import DriverError

if TYPE_CHECKING:
    from numpy.typing import NDArray


logger = logging.getLogger(__name__)

HostKernelFunc = Callable[..., None]

# OpenCL C scalar types and the element type of their vector forms
_C_TYPES: dict[str, np.dtype[Any]] = {
    "char": np.dtype(np.int8),
    "uchar": np.dtype(np.uint8),
    "short": np.dtype(np.int16),
    "ushort": np.dtype(np.uint16),
    "int": np.dtype(np.int32),
    "uint": np.dtype(np.uint32),
    "long": np.dtype(np.int64),
    "ulong": np.dtype(np.uint64),
    "half": np.dtype(np.float16),
    "float": np.dtype(np.float32),
    "double": np.dtype(np.float64),
}

_UNSIGNED_ALIASES = {
    "unsigned char": "uchar",
    "unsigned short": "ushort",
    "unsigned int": "uint",
    "unsigned long": "ulong",
    "unsigned": "uint",
}

_QUALIFIERS = {
    "__global": AddressQualifier.GLOBAL,
    "global": AddressQualifier.GLOBAL,
    "__local": AddressQualifier.LOCAL,
    "local": AddressQualifier.LOCAL,
    "__constant": AddressQualifier.CONSTANT,
    "constant": AddressQualifier.CONSTANT,
    "__private": AddressQualifier.PRIVATE,
    "private": AddressQualifier.PRIVATE,
}

_IGNORED_WORDS = {
    "const",
    "__const",
    "restrict",
    "__restrict",
    "volatile",
    "__read_only",
    "read_only",
    "__write_only",
    "write_only",
    "__read_write",
    "read_write",
}

_COMMENT_RE = re.compile(r"//[^\n]*|/\*.*?\*/", re.DOTALL)
_KERNEL_RE = re.compile(r"\b(?:__kernel|kernel)\s+void\s+(\w+)\s*\(([^)]*)\)")
_VECTOR_RE = re.compile(r"^([a-z]+?)(2|3|4|8|16)$")


@dataclass(frozen=True)
class KernelParam:
    """A kernel parameter as the device reports it."""

    name: str
    type_name: str
    qualifier: AddressQualifier

    @property
    def is_pointer(self) -> bool:
        """Check if the parameter is a pointer."""
        return self.type_name.endswith("*")

    @property
    def element_dtype(self) -> np.dtype[Any] | None:
        """Get the NumPy element type, or None for unknown C types."""
        base = self.type_name.rstrip("*")
        vector = _VECTOR_RE.match(base)
        if vector and vector.group(1) in _C_TYPES:
            base = vector.group(1)
        return _C_TYPES.get(base)


def parse_kernel_params(params: str) -> list[KernelParam]:
    """
    Parse an OpenCL C parameter list.

    Args:
        params: Text between the parentheses of a kernel declaration.

    Returns:
        Parameters with normalized type names (e.g. 'uint*').
    """
    text = params.strip()
    if not text or text == "void":
        return []

    result = []
    for raw in text.split(","):
        tokens = re.findall(r"\w+|\*", raw)
        qualifier = AddressQualifier.PRIVATE
        words = []
        pointer = False
        for token in tokens:
            if token in _QUALIFIERS:
                qualifier = _QUALIFIERS[token]
            elif token == "*":
                pointer = True
            elif token not in _IGNORED_WORDS:
                words.append(token)

        name = words.pop() if len(words) > 1 else f"arg{len(result)}"
        base = " ".join(words)
        base = _UNSIGNED_ALIASES.get(base, base)
        result.append(KernelParam(name, base + ("*" if pointer else ""), qualifier))

    return result


@dataclass
class WorkRange:
    """
    Index space handed to host kernel bodies.

    Example:
        >>> def double(work, data):
        ...     gid = work.global_ids(0)
        ...     data[gid] *= 2
    """

    global_size: tuple[int, ...]
    local_size: tuple[int, ...]
    offset: tuple[int, ...]

    @property
    def dimensions(self) -> int:
        """Get the number of work dimensions."""
        return len(self.global_size)

    def global_ids(self, dim: int = 0) -> NDArray[np.int64]:
        """Get every global id along one dimension."""
        start = self.offset[dim]
        return np.arange(start, start + self.global_size[dim], dtype=np.int64)

    def num_groups(self, dim: int = 0) -> int:
        """Get the number of work groups along one dimension."""
        return self.global_size[dim] // self.local_size[dim]

    def grid(self) -> tuple[NDArray[np.int64], ...]:
        """Get broadcast global ids for all dimensions."""
        axes = [self.global_ids(d) for d in range(self.dimensions)]
        return tuple(np.meshgrid(*axes, indexing="ij"))


@dataclass
class HostDevice:
    """An emulated device."""

    name: str = "PyDotCL Host Device"
    device_type: str = "gpu"
    unified_memory: bool = False


@dataclass
class HostPlatform:
    """An emulated platform."""

    name: str = "PyDotCL Host"
    version: str = "OpenCL 3.0 PyDotCL"
    devices: list[HostDevice] = field(default_factory=lambda: [HostDevice()])


class _Handle:
    kind = "handle"
    invalid_status = StatusCode.INVALID_VALUE

    def __init__(self) -> None:
        self.released = False

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"<Host{self.kind.capitalize()} {id(self):#x} {state}>"


class HostContext(_Handle):
    kind = "context"
    invalid_status = StatusCode.INVALID_CONTEXT

    def __init__(self, device: HostDevice) -> None:
        super().__init__()
        self.device = device


class _ContextBound(_Handle):
    def __init__(self, context: HostContext) -> None:
        super().__init__()
        self.context = context


class HostQueue(_ContextBound):
    kind = "queue"
    invalid_status = StatusCode.INVALID_COMMAND_QUEUE

    def __init__(self, context: HostContext, profiling: bool) -> None:
        super().__init__(context)
        self.profiling = profiling
        self.commands = 0


class HostBuffer(_ContextBound):
    kind = "buffer"
    invalid_status = StatusCode.INVALID_MEM_OBJECT

    def __init__(self, context: HostContext, flags: MemFlags, storage: NDArray[np.uint8]) -> None:
        super().__init__(context)
        self.flags = flags
        self.storage = storage
        self.maps: list[NDArray[Any]] = []

    @property
    def nbytes(self) -> int:
        return int(self.storage.nbytes)


class HostProgram(_ContextBound):
    kind = "program"
    invalid_status = StatusCode.INVALID_PROGRAM

    def __init__(self, context: HostContext, source: str) -> None:
        super().__init__(context)
        self.source = source
        self.built = False
        self.arg_info = False
        self.build_log = ""
        self.kernels: dict[str, list[KernelParam]] = {}


class HostKernel(_ContextBound):
    kind = "kernel"
    invalid_status = StatusCode.INVALID_KERNEL

    def __init__(
        self,
        program: HostProgram,
        name: str,
        params: list[KernelParam],
        body: HostKernelFunc,
    ) -> None:
        super().__init__(program.context)
        self.program = program
        self.name = name
        self.params = params
        self.body = body
        self.args: dict[int, tuple[str, Any]] = {}


class HostEvent(_ContextBound):
    kind = "event"
    invalid_status = StatusCode.INVALID_EVENT

    def __init__(self, queue: HostQueue, command: str, start_ns: int, end_ns: int) -> None:
        super().__init__(queue.context)
        self.queue = queue
        self.command = command
        self.start_ns = start_ns
        self.end_ns = end_ns


class HostDriver(Driver):
    """
    Driver implementation emulated on the host with NumPy.

    Honours the driver contract: opaque handles, OpenCL status codes,
    events with profiling data, kernel argument info, and an optional
    unified-memory device. Provides full API compatibility for testing
    without an OpenCL runtime.

    Example:
        >>> driver = HostDriver(unified_memory=False)
        >>> @driver.register_kernel("double_it")
        ... def double_it(work, data):
        ...     data[work.global_ids(0)] *= 2
    """

    def __init__(
        self,
        platforms: list[HostPlatform] | None = None,
        *,
        unified_memory: bool = False,
    ) -> None:
        """
        Initialize the host driver.

        Args:
            platforms: Emulated platforms; defaults to one platform with one GPU.
            unified_memory: Whether the default device shares host memory.
        """
        if platforms is None:
            platforms = [HostPlatform(devices=[HostDevice(unified_memory=unified_memory)])]
        self._platforms = platforms
        self._kernels: dict[str, HostKernelFunc] = {}
        self._buffers: list[HostBuffer] = []
        self.call_log: list[str] = []

    @property
    def name(self) -> str:
        """Get the driver name."""
        return "host"

    @property
    def live_buffers(self) -> int:
        """Get the number of buffers not yet released."""
        return sum(1 for b in self._buffers if not b.released)

    def register_kernel(
        self,
        name: str,
        func: HostKernelFunc | None = None,
    ) -> Any:
        """
        Register a Python body for a kernel name.

        Can be used directly or as a decorator.

        Args:
            name: Kernel function name as declared in the source.
            func: Callable taking (work, *args).

        Returns:
            The function, or a decorator when func is omitted.
        """
        if func is None:

            def decorator(f: HostKernelFunc) -> HostKernelFunc:
                self._kernels[name] = f
                return f

            return decorator

        self._kernels[name] = func
        return func

    # Internal helpers

    def _log(self, operation: str) -> None:
        self.call_log.append(operation)

    def _check(self, handle: Any, cls: type[_Handle], operation: str) -> Any:
        if not isinstance(handle, cls) or handle.released:
            raise DriverError(operation, cls.invalid_status)
        context = getattr(handle, "context", None)
        if context is not None and context.released:
            raise DriverError(operation, StatusCode.INVALID_CONTEXT)
        return handle

    def _release(self, handle: Any, cls: type[_Handle], operation: str) -> None:
        self._log(operation)
        if not isinstance(handle, cls) or handle.released:
            raise DriverError(operation, cls.invalid_status)
        handle.released = True

    def _check_wait_list(self, wait_for: Sequence[Any] | None, operation: str) -> None:
        for event in wait_for or ():
            if not isinstance(event, HostEvent) or event.released:
                raise DriverError(operation, StatusCode.INVALID_EVENT_WAIT_LIST)

    def _complete(self, queue: HostQueue, command: str, start_ns: int) -> HostEvent:
        queue.commands += 1
        return HostEvent(queue, command, start_ns, time.perf_counter_ns())

    # Discovery

    def get_platforms(self) -> list[Any]:
        """Enumerate emulated platforms."""
        self._log("clGetPlatformIDs")
        if not self._platforms:
            raise DriverError("clGetPlatformIDs", StatusCode.INVALID_PLATFORM, "no platforms")
        return list(self._platforms)

    def platform_name(self, platform: Any) -> str:
        return platform.name

    def platform_version(self, platform: Any) -> str:
        return platform.version

    def get_devices(self, platform: Any, device_type: str) -> list[Any]:
        self._log("clGetDeviceIDs")
        if device_type not in DEVICE_TYPES:
            raise DriverError("clGetDeviceIDs", StatusCode.INVALID_DEVICE_TYPE)
        devices = [
            d for d in platform.devices if device_type == "all" or d.device_type == device_type
        ]
        if not devices:
            raise DriverError("clGetDeviceIDs", StatusCode.DEVICE_NOT_FOUND)
        return devices

    def device_name(self, device: Any) -> str:
        return device.name

    def host_unified_memory(self, device: Any) -> bool:
        return device.unified_memory

    # Lifecycle

    def create_context(self, device: Any) -> Any:
        self._log("clCreateContext")
        if not isinstance(device, HostDevice):
            raise DriverError("clCreateContext", StatusCode.INVALID_DEVICE)
        return HostContext(device)

    def create_queue(self, context: Any, device: Any, *, profiling: bool = False) -> Any:
        operation = "clCreateCommandQueueWithProperties"
        self._log(operation)
        context = self._check(context, HostContext, operation)
        if device is not context.device:
            raise DriverError(operation, StatusCode.INVALID_DEVICE)
        return HostQueue(context, profiling)

    def release_queue(self, queue: Any) -> None:
        self._release(queue, HostQueue, "clReleaseCommandQueue")

    def release_context(self, context: Any) -> None:
        self._release(context, HostContext, "clReleaseContext")

    def release_device(self, device: Any) -> None:
        # Root devices are not reference counted
        self._log("clReleaseDevice")

    # Memory

    def create_buffer(
        self,
        context: Any,
        flags: MemFlags,
        nbytes: int,
        hostbuf: NDArray[Any] | None = None,
    ) -> Any:
        operation = "clCreateBuffer"
        self._log(operation)
        context = self._check(context, HostContext, operation)
        flags = MemFlags(flags)

        if nbytes <= 0:
            raise DriverError(operation, StatusCode.INVALID_BUFFER_SIZE)
        if MemFlags.ALLOC_HOST_PTR in flags and MemFlags.USE_HOST_PTR in flags:
            raise DriverError(operation, StatusCode.INVALID_VALUE)

        wants_host_ptr = bool(flags & (MemFlags.COPY_HOST_PTR | MemFlags.USE_HOST_PTR))
        if wants_host_ptr != (hostbuf is not None):
            raise DriverError(operation, StatusCode.INVALID_HOST_PTR)

        if MemFlags.USE_HOST_PTR in flags:
            storage = np.ascontiguousarray(hostbuf).reshape(-1).view(np.uint8)
        else:
            storage = np.empty(nbytes, dtype=np.uint8)
            if hostbuf is not None:
                source = np.ascontiguousarray(hostbuf).reshape(-1).view(np.uint8)
                if source.nbytes < nbytes:
                    raise DriverError(operation, StatusCode.INVALID_HOST_PTR)
                storage[:] = source[:nbytes]

        if storage.nbytes < nbytes:
            raise DriverError(operation, StatusCode.INVALID_BUFFER_SIZE)

        logger.debug(f"Host buffer created: {nbytes} bytes, flags={flags!r}")
        buffer = HostBuffer(context, flags, storage[:nbytes])
        self._buffers.append(buffer)
        return buffer

    def release_buffer(self, buffer: Any) -> None:
        self._release(buffer, HostBuffer, "clReleaseMemObject")

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
        operation = "clEnqueueReadBuffer"
        self._log(operation)
        queue = self._check(queue, HostQueue, operation)
        buffer = self._check(buffer, HostBuffer, operation)
        self._check_wait_list(wait_for, operation)

        start = time.perf_counter_ns()
        target = destination.reshape(-1).view(np.uint8)
        if offset < 0 or offset + target.nbytes > buffer.nbytes:
            raise DriverError(operation, StatusCode.INVALID_VALUE)
        target[:] = buffer.storage[offset : offset + target.nbytes]
        return self._complete(queue, operation, start)

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
        operation = "clEnqueueWriteBuffer"
        self._log(operation)
        queue = self._check(queue, HostQueue, operation)
        buffer = self._check(buffer, HostBuffer, operation)
        self._check_wait_list(wait_for, operation)

        start = time.perf_counter_ns()
        data = np.ascontiguousarray(source).reshape(-1).view(np.uint8)
        if offset < 0 or offset + data.nbytes > buffer.nbytes:
            raise DriverError(operation, StatusCode.INVALID_VALUE)
        buffer.storage[offset : offset + data.nbytes] = data
        return self._complete(queue, operation, start)

    def enqueue_copy_buffer(
        self,
        queue: Any,
        source: Any,
        destination: Any,
        nbytes: int,
        *,
        wait_for: Sequence[Any] | None = None,
    ) -> Any:
        operation = "clEnqueueCopyBuffer"
        self._log(operation)
        queue = self._check(queue, HostQueue, operation)
        source = self._check(source, HostBuffer, operation)
        destination = self._check(destination, HostBuffer, operation)
        self._check_wait_list(wait_for, operation)

        if source.context is not destination.context or source.context is not queue.context:
            raise DriverError(operation, StatusCode.INVALID_CONTEXT)
        if nbytes > source.nbytes or nbytes > destination.nbytes:
            raise DriverError(operation, StatusCode.INVALID_VALUE)

        start = time.perf_counter_ns()
        destination.storage[:nbytes] = source.storage[:nbytes]
        return self._complete(queue, operation, start)

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
        operation = "clEnqueueMapBuffer"
        self._log(operation)
        queue = self._check(queue, HostQueue, operation)
        buffer = self._check(buffer, HostBuffer, operation)

        dtype = np.dtype(dtype)
        if count * dtype.itemsize > buffer.nbytes:
            raise DriverError(operation, StatusCode.INVALID_VALUE)

        start = time.perf_counter_ns()
        mapped = buffer.storage[: count * dtype.itemsize].view(dtype)
        buffer.maps.append(mapped)
        return mapped, self._complete(queue, operation, start)

    def enqueue_unmap(self, queue: Any, buffer: Any, mapped: NDArray[Any]) -> Any:
        operation = "clEnqueueUnmapMemObject"
        self._log(operation)
        queue = self._check(queue, HostQueue, operation)
        buffer = self._check(buffer, HostBuffer, operation)

        for i, view in enumerate(buffer.maps):
            if view is mapped:
                del buffer.maps[i]
                break
        else:
            raise DriverError(operation, StatusCode.INVALID_VALUE, "pointer is not mapped")

        return self._complete(queue, operation, time.perf_counter_ns())

    # Programs and kernels

    def create_program(self, context: Any, source: str) -> Any:
        operation = "clCreateProgramWithSource"
        self._log(operation)
        context = self._check(context, HostContext, operation)
        return HostProgram(context, source)

    def build_program(self, program: Any, device: Any, options: Sequence[str]) -> None:
        operation = "clBuildProgram"
        self._log(operation)
        program = self._check(program, HostProgram, operation)
        if device is not program.context.device:
            raise DriverError(operation, StatusCode.INVALID_DEVICE)

        source = _COMMENT_RE.sub("", program.source)
        errors = []
        if source.count("{") != source.count("}"):
            errors.append("error: unbalanced braces in program source")

        kernels = {name: parse_kernel_params(params) for name, params in _KERNEL_RE.findall(source)}
        if not kernels:
            errors.append("error: no kernel functions declared")
        for name in kernels:
            if name not in self._kernels:
                errors.append(f"error: kernel '{name}' has no host implementation")

        if errors:
            program.build_log = "\n".join(errors)
            raise DriverError(operation, StatusCode.BUILD_PROGRAM_FAILURE)

        program.kernels = kernels
        program.arg_info = KERNEL_ARG_INFO_OPTION in options
        program.built = True
        program.build_log = f"{len(kernels)} kernel(s) built for {device.name}"

    def get_build_log(self, program: Any, device: Any) -> str:
        self._log("clGetProgramBuildInfo")
        program = self._check(program, HostProgram, "clGetProgramBuildInfo")
        return program.build_log

    def get_program_binaries(self, program: Any) -> list[bytes]:
        self._log("clGetProgramInfo")
        program = self._check(program, HostProgram, "clGetProgramInfo")
        if not program.built:
            raise DriverError("clGetProgramInfo", StatusCode.INVALID_PROGRAM_EXECUTABLE)
        return [program.source.encode()]

    def release_program(self, program: Any) -> None:
        self._release(program, HostProgram, "clReleaseProgram")

    def create_kernel(self, program: Any, name: str) -> Any:
        operation = "clCreateKernel"
        self._log(operation)
        program = self._check(program, HostProgram, operation)
        if not program.built:
            raise DriverError(operation, StatusCode.INVALID_PROGRAM_EXECUTABLE)
        if name not in program.kernels:
            raise DriverError(operation, StatusCode.INVALID_KERNEL_NAME, name)
        return HostKernel(program, name, program.kernels[name], self._kernels[name])

    def _param(self, kernel: HostKernel, index: int, operation: str) -> KernelParam:
        if index < 0 or index >= len(kernel.params):
            raise DriverError(operation, StatusCode.INVALID_ARG_INDEX)
        return kernel.params[index]

    def _arg_info(self, kernel: Any, index: int) -> KernelParam:
        operation = "clGetKernelArgInfo"
        self._log(operation)
        kernel = self._check(kernel, HostKernel, operation)
        if not kernel.program.arg_info:
            raise DriverError(operation, StatusCode.KERNEL_ARG_INFO_NOT_AVAILABLE)
        return self._param(kernel, index, operation)

    def get_kernel_arg_type_name(self, kernel: Any, index: int) -> str:
        return self._arg_info(kernel, index).type_name

    def get_kernel_arg_address_qualifier(self, kernel: Any, index: int) -> AddressQualifier:
        return self._arg_info(kernel, index).qualifier

    def set_kernel_arg(self, kernel: Any, index: int, value: np.generic) -> None:
        operation = "clSetKernelArg"
        self._log(operation)
        kernel = self._check(kernel, HostKernel, operation)
        param = self._param(kernel, index, operation)
        if param.is_pointer:
            raise DriverError(operation, StatusCode.INVALID_ARG_SIZE)
        kernel.args[index] = ("scalar", value)

    def set_kernel_arg_buffer(self, kernel: Any, index: int, buffer: Any) -> None:
        operation = "clSetKernelArg"
        self._log(operation)
        kernel = self._check(kernel, HostKernel, operation)
        param = self._param(kernel, index, operation)
        buffer = self._check(buffer, HostBuffer, operation)
        if buffer.context is not kernel.context:
            raise DriverError(operation, StatusCode.INVALID_CONTEXT)
        if not param.is_pointer or param.qualifier == AddressQualifier.LOCAL:
            raise DriverError(operation, StatusCode.INVALID_ARG_VALUE)
        kernel.args[index] = ("buffer", buffer)

    def set_kernel_arg_local(self, kernel: Any, index: int, nbytes: int) -> None:
        operation = "clSetKernelArg"
        self._log(operation)
        kernel = self._check(kernel, HostKernel, operation)
        param = self._param(kernel, index, operation)
        if param.qualifier != AddressQualifier.LOCAL:
            raise DriverError(operation, StatusCode.INVALID_ARG_VALUE)
        if nbytes <= 0:
            raise DriverError(operation, StatusCode.INVALID_ARG_SIZE)
        kernel.args[index] = ("local", nbytes)

    def _materialize(self, kernel: HostKernel, operation: str) -> list[Any]:
        values = []
        for index, param in enumerate(kernel.params):
            if index not in kernel.args:
                raise DriverError(operation, StatusCode.INVALID_KERNEL_ARGS, f"argument {index} not set")
            kind, value = kernel.args[index]
            dtype = param.element_dtype or np.dtype(np.uint8)
            if kind == "buffer":
                if value.released:
                    raise DriverError(operation, StatusCode.INVALID_MEM_OBJECT)
                usable = value.nbytes - value.nbytes % dtype.itemsize
                values.append(value.storage[:usable].view(dtype))
            elif kind == "local":
                values.append(np.zeros(value // dtype.itemsize, dtype=dtype))
            else:
                values.append(value)
        return values

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
        operation = "clEnqueueNDRangeKernel"
        self._log(operation)
        queue = self._check(queue, HostQueue, operation)
        kernel = self._check(kernel, HostKernel, operation)
        self._check_wait_list(wait_for, operation)

        dims = len(global_size)
        if dims < 1 or dims > 3:
            raise DriverError(operation, StatusCode.INVALID_WORK_DIMENSION)
        if local_size is None:
            local_size = (1,) * dims
        if len(local_size) != dims:
            raise DriverError(
                operation,
                StatusCode.INVALID_WORK_DIMENSION,
                f"global range has {dims} dimension(s), local range has {len(local_size)}",
            )
        if any(g <= 0 for g in global_size):
            raise DriverError(operation, StatusCode.INVALID_GLOBAL_WORK_SIZE)
        if any(l <= 0 or g % l for g, l in zip(global_size, local_size)):
            raise DriverError(operation, StatusCode.INVALID_WORK_GROUP_SIZE)
        if not offset:
            offset = (0,) * dims
        if len(offset) != dims:
            raise DriverError(operation, StatusCode.INVALID_GLOBAL_OFFSET)

        args = self._materialize(kernel, operation)
        work = WorkRange(tuple(global_size), tuple(local_size), tuple(offset))

        start = time.perf_counter_ns()
        try:
            kernel.body(work, *args)
        except Exception as e:
            raise DriverError(
                operation,
                StatusCode.OUT_OF_RESOURCES,
                f"kernel '{kernel.name}' failed: {e!r}",
            ) from e
        return self._complete(queue, f"{operation}({kernel.name})", start)

    def release_kernel(self, kernel: Any) -> None:
        self._release(kernel, HostKernel, "clReleaseKernel")

    # Events

    def wait_for_events(self, events: Sequence[Any]) -> None:
        operation = "clWaitForEvents"
        self._log(operation)
        for event in events:
            self._check(event, HostEvent, operation)

    def get_event_elapsed(self, event: Any) -> int:
        operation = "clGetEventProfilingInfo"
        event = self._check(event, HostEvent, operation)
        if not event.queue.profiling:
            raise DriverError(operation, StatusCode.PROFILING_INFO_NOT_AVAILABLE)
        return event.end_ns - event.start_ns

    def release_event(self, event: Any) -> None:
        self._release(event, HostEvent, "clReleaseEvent")

    def finish(self, queue: Any) -> None:
        self._log("clFinish")
        self._check(queue, HostQueue, "clFinish")

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"HostDriver(platforms={[p.name for p in self._platforms]}, "
            f"kernels={sorted(self._kernels)})"
        )
