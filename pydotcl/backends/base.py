"""
Driver base classes and interfaces.

Defines the abstract interface every driver binding must implement,
together with the OpenCL constants the core layer passes through it.
Handles are opaque objects owned by the driver.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import IntEnum, IntFlag
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


class StatusCode(IntEnum):
    """OpenCL status codes surfaced by the drivers."""

    SUCCESS = 0
    DEVICE_NOT_FOUND = -1
    MEM_OBJECT_ALLOCATION_FAILURE = -4
    OUT_OF_RESOURCES = -5
    PROFILING_INFO_NOT_AVAILABLE = -7
    BUILD_PROGRAM_FAILURE = -11
    MAP_FAILURE = -12
    KERNEL_ARG_INFO_NOT_AVAILABLE = -19
    INVALID_VALUE = -30
    INVALID_DEVICE_TYPE = -31
    INVALID_PLATFORM = -32
    INVALID_DEVICE = -33
    INVALID_CONTEXT = -34
    INVALID_COMMAND_QUEUE = -36
    INVALID_HOST_PTR = -37
    INVALID_MEM_OBJECT = -38
    INVALID_PROGRAM = -44
    INVALID_PROGRAM_EXECUTABLE = -45
    INVALID_KERNEL_NAME = -46
    INVALID_KERNEL = -48
    INVALID_ARG_INDEX = -49
    INVALID_ARG_VALUE = -50
    INVALID_ARG_SIZE = -51
    INVALID_KERNEL_ARGS = -52
    INVALID_WORK_DIMENSION = -53
    INVALID_WORK_GROUP_SIZE = -54
    INVALID_GLOBAL_OFFSET = -56
    INVALID_EVENT_WAIT_LIST = -57
    INVALID_EVENT = -58
    INVALID_BUFFER_SIZE = -61
    INVALID_GLOBAL_WORK_SIZE = -63


def status_name(status: int) -> str:
    """Get the symbolic name for a status code, or 'UNKNOWN'."""
    try:
        return StatusCode(status).name
    except ValueError:
        return "UNKNOWN"


class MemFlags(IntFlag):
    """Memory object flags (cl_mem_flags)."""

    READ_WRITE = 1 << 0
    WRITE_ONLY = 1 << 1
    READ_ONLY = 1 << 2
    USE_HOST_PTR = 1 << 3
    ALLOC_HOST_PTR = 1 << 4
    COPY_HOST_PTR = 1 << 5


class MapFlags(IntFlag):
    """Buffer mapping flags (cl_map_flags)."""

    READ = 1 << 0
    WRITE = 1 << 1
    WRITE_INVALIDATE_REGION = 1 << 2


class AddressQualifier(IntEnum):
    """Kernel argument address space (cl_kernel_arg_address_qualifier)."""

    GLOBAL = 0x119B
    LOCAL = 0x119C
    CONSTANT = 0x119D
    PRIVATE = 0x119E


DEVICE_TYPES = ("gpu", "cpu", "accelerator", "all")

KERNEL_ARG_INFO_OPTION = "-cl-kernel-arg-info"


class Driver(ABC):
    """
    Abstract base class for driver bindings.

    Every method maps onto one driver primitive. Implementations raise
    DriverError carrying the operation name and the raw status code
    whenever the underlying call does not succeed, and never retry.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the driver name."""
        ...

    # Discovery

    @abstractmethod
    def get_platforms(self) -> list[Any]:
        """Enumerate available platforms."""
        ...

    @abstractmethod
    def platform_name(self, platform: Any) -> str: ...

    @abstractmethod
    def platform_version(self, platform: Any) -> str: ...

    @abstractmethod
    def get_devices(self, platform: Any, device_type: str) -> list[Any]:
        """
        Enumerate the devices of a platform.

        Args:
            platform: Platform handle.
            device_type: One of DEVICE_TYPES.

        Returns:
            Device handles; raises DEVICE_NOT_FOUND when there are none.
        """
        ...

    @abstractmethod
    def device_name(self, device: Any) -> str: ...

    @abstractmethod
    def host_unified_memory(self, device: Any) -> bool:
        """Check whether host and device share one physical memory."""
        ...

    # Lifecycle

    @abstractmethod
    def create_context(self, device: Any) -> Any: ...

    @abstractmethod
    def create_queue(self, context: Any, device: Any, *, profiling: bool = False) -> Any:
        """Create an in-order command queue."""
        ...

    @abstractmethod
    def release_queue(self, queue: Any) -> None: ...

    @abstractmethod
    def release_context(self, context: Any) -> None: ...

    @abstractmethod
    def release_device(self, device: Any) -> None: ...

    # Memory

    @abstractmethod
    def create_buffer(
        self,
        context: Any,
        flags: MemFlags,
        nbytes: int,
        hostbuf: NDArray[Any] | None = None,
    ) -> Any:
        """
        Create a memory object.

        Args:
            context: Owning context.
            flags: Memory flags; COPY_HOST_PTR requires hostbuf.
            nbytes: Size in bytes.
            hostbuf: Initial contents.

        Returns:
            Buffer handle.
        """
        ...

    @abstractmethod
    def release_buffer(self, buffer: Any) -> None: ...

    @abstractmethod
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
        """Read nbytes(destination) bytes starting at byte offset."""
        ...

    @abstractmethod
    def enqueue_write_buffer(
        self,
        queue: Any,
        buffer: Any,
        source: NDArray[Any],
        *,
        offset: int = 0,
        blocking: bool = True,
        wait_for: Sequence[Any] | None = None,
    ) -> Any: ...

    @abstractmethod
    def enqueue_copy_buffer(
        self,
        queue: Any,
        source: Any,
        destination: Any,
        nbytes: int,
        *,
        wait_for: Sequence[Any] | None = None,
    ) -> Any: ...

    @abstractmethod
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
        """
        Map a buffer into host address space.

        Returns:
            Tuple of (mapped array, event).
        """
        ...

    @abstractmethod
    def enqueue_unmap(self, queue: Any, buffer: Any, mapped: NDArray[Any]) -> Any: ...

    # Programs and kernels

    @abstractmethod
    def create_program(self, context: Any, source: str) -> Any: ...

    @abstractmethod
    def build_program(self, program: Any, device: Any, options: Sequence[str]) -> None: ...

    @abstractmethod
    def get_build_log(self, program: Any, device: Any) -> str: ...

    @abstractmethod
    def get_program_binaries(self, program: Any) -> list[bytes]: ...

    @abstractmethod
    def release_program(self, program: Any) -> None: ...

    @abstractmethod
    def create_kernel(self, program: Any, name: str) -> Any: ...

    @abstractmethod
    def get_kernel_arg_type_name(self, kernel: Any, index: int) -> str: ...

    @abstractmethod
    def get_kernel_arg_address_qualifier(self, kernel: Any, index: int) -> AddressQualifier: ...

    @abstractmethod
    def set_kernel_arg(self, kernel: Any, index: int, value: np.generic) -> None:
        """Bind a scalar; its raw bytes form the argument payload."""
        ...

    @abstractmethod
    def set_kernel_arg_buffer(self, kernel: Any, index: int, buffer: Any) -> None: ...

    @abstractmethod
    def set_kernel_arg_local(self, kernel: Any, index: int, nbytes: int) -> None:
        """Reserve nbytes of local memory for the argument (no payload)."""
        ...

    @abstractmethod
    def enqueue_nd_range_kernel(
        self,
        queue: Any,
        kernel: Any,
        global_size: tuple[int, ...],
        local_size: tuple[int, ...] | None,
        offset: tuple[int, ...] | None = None,
        *,
        wait_for: Sequence[Any] | None = None,
    ) -> Any: ...

    @abstractmethod
    def release_kernel(self, kernel: Any) -> None: ...

    # Events

    @abstractmethod
    def wait_for_events(self, events: Sequence[Any]) -> None: ...

    @abstractmethod
    def get_event_elapsed(self, event: Any) -> int:
        """Get profiling end minus start in nanoseconds."""
        ...

    @abstractmethod
    def release_event(self, event: Any) -> None: ...

    @abstractmethod
    def finish(self, queue: Any) -> None:
        """Block until every command enqueued on the queue completed."""
        ...

    def __repr__(self) -> str:
        """String representation."""
        return f"{type(self).__name__}(name={self.name!r})"
