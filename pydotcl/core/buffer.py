"""
Dual-location compute buffer.

A ComputeBuffer owns up to two allocations of the same length and element
type: a host-visible one allocated with ALLOC_HOST_PTR, and a
device-resident one. On unified-memory devices a single host-visible
allocation serves both roles and transfers between them are skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Flag, auto
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import numpy as np

from pydotcl.backends.base import MapFlags, MemFlags
from pydotcl.core.event import CompletionToken, events_of
from pydotcl.exceptions import (
    AccessorReleasedError,
    BufferLengthMismatchError,
    BufferReleasedError,
    InvalidConfigurationError,
    PlacementError,
)

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, DTypeLike, NDArray

    from pydotcl.core.context import DeviceContext


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=np.generic)


class BufferPlacement(Flag):
    """Locations a buffer is allocated in."""

    ON_HOST = auto()
    ON_DEVICE = auto()
    ON_HOST_AND_DEVICE = ON_HOST | ON_DEVICE


def _element_dtype(dtype: DTypeLike) -> np.dtype[Any]:
    dtype = np.dtype(dtype)
    if not np.issubdtype(dtype, np.number):
        raise InvalidConfigurationError("dtype", dtype, "buffer elements must be a numeric type")
    return dtype


class ComputeBuffer(Generic[T]):
    """
    Buffer with a host-visible and/or a device-resident allocation.

    Example:
        >>> buffer = ComputeBuffer(ctx, np.arange(1024, dtype=np.int32),
        ...                        BufferPlacement.ON_HOST_AND_DEVICE)
        >>> buffer.to_device()
        >>> kernel.set_arg(0, buffer)
    """

    def __init__(
        self,
        context: DeviceContext,
        data: ArrayLike,
        placement: BufferPlacement,
        flags: MemFlags = MemFlags.READ_WRITE,
        dtype: DTypeLike | None = None,
    ) -> None:
        """
        Create a buffer initialized with data.

        Args:
            context: Initialized device context.
            data: Initial contents; flattened to one dimension.
            placement: Locations to allocate.
            flags: Memory flags; must not include ALLOC_HOST_PTR.
            dtype: Element type; inferred from data when omitted.
        """
        array = np.ascontiguousarray(data, dtype=dtype).reshape(-1)
        self._setup(context, array.size, array.dtype, placement, flags)
        self._allocate(array)

    @classmethod
    def empty(
        cls,
        context: DeviceContext,
        length: int,
        dtype: DTypeLike,
        placement: BufferPlacement,
        flags: MemFlags = MemFlags.READ_WRITE,
    ) -> ComputeBuffer[Any]:
        """
        Create a buffer with uninitialized storage.

        Args:
            context: Initialized device context.
            length: Number of elements.
            dtype: Element type.
            placement: Locations to allocate.
            flags: Memory flags; must not include ALLOC_HOST_PTR.

        Returns:
            New buffer.
        """
        buffer = cls.__new__(cls)
        buffer._setup(context, length, dtype, placement, flags)
        buffer._allocate(None)
        return buffer

    def _setup(
        self,
        context: DeviceContext,
        length: int,
        dtype: DTypeLike,
        placement: BufferPlacement,
        flags: MemFlags,
    ) -> None:
        flags = MemFlags(flags)
        if MemFlags.ALLOC_HOST_PTR in flags:
            raise InvalidConfigurationError(
                "flags", flags, "ALLOC_HOST_PTR is managed by the buffer and cannot be passed"
            )
        if length <= 0:
            raise InvalidConfigurationError("length", length, "must be positive")
        if not isinstance(placement, BufferPlacement) or not placement:
            raise InvalidConfigurationError("placement", placement, "must be a BufferPlacement")

        self._context = context
        self._length = int(length)
        self._dtype = _element_dtype(dtype)
        self._placement = placement
        self._flags = flags & ~MemFlags.COPY_HOST_PTR
        self._host_handle: Any = None
        self._device_handle: Any = None
        self._accessor: Accessor[T] | None = None
        self._released = False

    def _create(self, flags: MemFlags, hostbuf: NDArray[Any] | None) -> Any:
        if hostbuf is not None:
            flags |= MemFlags.COPY_HOST_PTR
        return self._context.driver.create_buffer(
            self._context.context, flags, self.nbytes, hostbuf
        )

    def _allocate(self, hostbuf: NDArray[Any] | None) -> None:
        host_flags = self._flags | MemFlags.ALLOC_HOST_PTR

        if self._context.is_unified_memory:
            handle = self._create(host_flags, hostbuf)
            self._host_handle = handle
            self._device_handle = handle
            logger.debug(f"Allocated {self.nbytes} bytes of unified memory")
            return

        if BufferPlacement.ON_HOST in self._placement:
            self._host_handle = self._create(host_flags, hostbuf)
        if BufferPlacement.ON_DEVICE in self._placement:
            try:
                self._device_handle = self._create(self._flags, hostbuf)
            except Exception:
                if self._host_handle is not None:
                    self._context.driver.release_buffer(self._host_handle)
                    self._host_handle = None
                raise
        logger.debug(f"Allocated {self.nbytes} bytes as {self._placement}")

    @property
    def context(self) -> DeviceContext:
        return self._context

    @property
    def length(self) -> int:
        """Get the number of elements."""
        return self._length

    @property
    def dtype(self) -> np.dtype[T]:
        """Get the element type."""
        return self._dtype  # type: ignore[return-value]

    @property
    def nbytes(self) -> int:
        """Get the size of one allocation in bytes."""
        return self._length * self._dtype.itemsize

    @property
    def placement(self) -> BufferPlacement:
        return self._placement

    @property
    def flags(self) -> MemFlags:
        return self._flags

    @property
    def host_handle(self) -> Any:
        """Get the host-visible allocation, or None."""
        return self._host_handle

    @property
    def device_handle(self) -> Any:
        """Get the device allocation, or None."""
        return self._device_handle

    @property
    def is_aliased(self) -> bool:
        """Check if one allocation serves as both host and device storage."""
        return self._host_handle is not None and self._host_handle is self._device_handle

    @property
    def released(self) -> bool:
        return self._released

    def _check_live(self) -> None:
        if self._released:
            raise BufferReleasedError()

    def _require_host(self, operation: str) -> Any:
        self._check_live()
        if self._host_handle is None:
            raise PlacementError(operation, "BufferPlacement.ON_HOST")
        return self._host_handle

    def _require_device(self, operation: str) -> Any:
        self._check_live()
        if self._device_handle is None:
            raise PlacementError(operation, "BufferPlacement.ON_DEVICE")
        return self._device_handle

    def _require_both(self, operation: str) -> None:
        self._check_live()
        if self._placement != BufferPlacement.ON_HOST_AND_DEVICE:
            raise PlacementError(operation, "BufferPlacement.ON_HOST_AND_DEVICE")

    def _check_destination(self, destination: NDArray[Any]) -> None:
        if not isinstance(destination, np.ndarray):
            raise InvalidConfigurationError(
                "destination", type(destination).__name__, "must be a numpy array"
            )
        if destination.size != self._length:
            raise BufferLengthMismatchError(self._length, destination.size)
        if destination.dtype != self._dtype:
            raise InvalidConfigurationError(
                "destination", destination.dtype, f"dtype must be {self._dtype}"
            )
        if not destination.flags.c_contiguous or not destination.flags.writeable:
            raise InvalidConfigurationError(
                "destination", destination.shape, "must be a writeable contiguous array"
            )

    def _check_peer(self, destination: ComputeBuffer[Any]) -> None:
        destination._check_live()
        if destination._context is not self._context:
            raise InvalidConfigurationError(
                "destination", destination, "buffers must share one device context"
            )
        if destination._length != self._length:
            raise BufferLengthMismatchError(self._length, destination._length)
        if destination._dtype != self._dtype:
            raise InvalidConfigurationError(
                "destination", destination._dtype, f"dtype must be {self._dtype}"
            )

    def _transfer(
        self,
        source: Any,
        destination: Any,
        command: str,
        blocking: bool,
        wait_for: Sequence[CompletionToken | None] | None,
    ) -> CompletionToken:
        ctx = self._context
        event = ctx.driver.enqueue_copy_buffer(
            ctx.queue, source, destination, self.nbytes, wait_for=events_of(wait_for)
        )
        token = CompletionToken(ctx.driver, event, command)
        if blocking:
            token.wait()
        return token

    def to_device(
        self,
        blocking: bool = True,
        wait_for: Sequence[CompletionToken | None] | None = None,
    ) -> CompletionToken | None:
        """
        Copy the host allocation into the device allocation.

        Args:
            blocking: Wait for the copy to complete.
            wait_for: Tokens the copy must wait for.

        Returns:
            Completion token, or None when both allocations are the same.
        """
        self._require_both("transfer to device")
        if self.is_aliased:
            return None
        token = self._transfer(
            self._host_handle, self._device_handle, "to_device", blocking, wait_for
        )
        return self._context.track_io(token)

    def to_host(
        self,
        blocking: bool = True,
        wait_for: Sequence[CompletionToken | None] | None = None,
    ) -> CompletionToken | None:
        """
        Copy the device allocation into the host allocation.

        Args:
            blocking: Wait for the copy to complete.
            wait_for: Tokens the copy must wait for.

        Returns:
            Completion token, or None when both allocations are the same.
        """
        self._require_both("transfer to host")
        if self.is_aliased:
            return None
        token = self._transfer(
            self._device_handle, self._host_handle, "to_host", blocking, wait_for
        )
        return self._context.track_io(token)

    def _read_to(self, handle: Any, destination: NDArray[Any], command: str) -> None:
        self._check_destination(destination)
        ctx = self._context
        event = ctx.driver.enqueue_read_buffer(ctx.queue, handle, destination, blocking=True)
        ctx.track_io(CompletionToken(ctx.driver, event, command))

    def host_read_to(self, destination: NDArray[T]) -> None:
        """
        Read the host allocation into an array.

        Args:
            destination: Contiguous array of the same length and dtype.
        """
        handle = self._require_host("read host allocation")
        self._read_to(handle, destination, "host_read_to")

    def device_read_to(self, destination: NDArray[T]) -> None:
        """
        Read the device allocation into an array.

        Args:
            destination: Contiguous array of the same length and dtype.
        """
        handle = self._require_device("read device allocation")
        self._read_to(handle, destination, "device_read_to")

    def copy_host_to(
        self,
        destination: ComputeBuffer[T],
        blocking: bool = True,
        wait_for: Sequence[CompletionToken | None] | None = None,
    ) -> CompletionToken:
        """
        Copy this host allocation into another buffer's host allocation.

        Args:
            destination: Buffer of equal length and dtype.
            blocking: Wait for the copy to complete.
            wait_for: Tokens the copy must wait for.

        Returns:
            Completion token.
        """
        source = self._require_host("copy host allocation")
        target = destination._require_host("copy into host allocation")
        self._check_peer(destination)
        token = self._transfer(source, target, "copy_host_to", blocking, wait_for)
        return self._context.track_kernel(token)

    def copy_device_to(
        self,
        destination: ComputeBuffer[T],
        blocking: bool = True,
        wait_for: Sequence[CompletionToken | None] | None = None,
    ) -> CompletionToken:
        """
        Copy this device allocation into another buffer's device allocation.

        Args:
            destination: Buffer of equal length and dtype.
            blocking: Wait for the copy to complete.
            wait_for: Tokens the copy must wait for.

        Returns:
            Completion token.
        """
        source = self._require_device("copy device allocation")
        target = destination._require_device("copy into device allocation")
        self._check_peer(destination)
        token = self._transfer(source, target, "copy_device_to", blocking, wait_for)
        return self._context.track_kernel(token)

    def map_host(
        self,
        flags: MapFlags = MapFlags.READ | MapFlags.WRITE,
        blocking: bool = True,
    ) -> Accessor[T]:
        """
        Map the host allocation for direct element access.

        Args:
            flags: Map access flags.
            blocking: Wait for the map to complete.

        Returns:
            Accessor over the mapped elements; release it before device use.
        """
        handle = self._require_host("map host allocation")
        ctx = self._context
        mapped, event = ctx.driver.enqueue_map_buffer(
            ctx.queue, handle, flags, self._length, self._dtype, blocking=blocking
        )
        token = ctx.track_io(CompletionToken(ctx.driver, event, "map_host"))
        self._accessor = Accessor(self, mapped, token)
        return self._accessor

    def _unmap(self, mapped: NDArray[Any]) -> CompletionToken:
        ctx = self._context
        event = ctx.driver.enqueue_unmap(ctx.queue, self._host_handle, mapped)
        return ctx.track_io(CompletionToken(ctx.driver, event, "unmap"))

    def _peek(self, start: int, count: int) -> dict[int, Any]:
        handle = self._require_device("read device allocation")
        count = max(0, min(count, self._length - start))
        if count == 0:
            return {}
        values = np.empty(count, dtype=self._dtype)
        ctx = self._context
        event = ctx.driver.enqueue_read_buffer(
            ctx.queue, handle, values, offset=start * self._dtype.itemsize, blocking=True
        )
        ctx.track_io(CompletionToken(ctx.driver, event, "peek"))
        return {start + i: value.item() for i, value in enumerate(values)}

    def head(self, n: int = 5) -> dict[int, Any]:
        """Read the first n elements of the device allocation as {index: value}."""
        return self._peek(0, n)

    def tail(self, n: int = 5) -> dict[int, Any]:
        """Read the last n elements of the device allocation as {index: value}."""
        n = min(max(n, 0), self._length)
        return self._peek(self._length - n, n)

    def release(self) -> None:
        """
        Release the allocations.

        An accessor still mapped is released first. Aliased allocations
        are released once. Repeated calls are no-ops.
        """
        if self._released:
            return
        self._released = True

        accessor, self._accessor = self._accessor, None
        try:
            if accessor is not None:
                accessor.release()
        finally:
            driver = self._context.driver
            host, device = self._host_handle, self._device_handle
            self._host_handle = None
            self._device_handle = None
            try:
                if host is not None:
                    driver.release_buffer(host)
            finally:
                if device is not None and device is not host:
                    driver.release_buffer(device)
        logger.debug(f"Released buffer of {self.nbytes} bytes")

    def __enter__(self) -> ComputeBuffer[T]:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.release()

    def __len__(self) -> int:
        return self._length

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ComputeBuffer(length={self._length}, dtype={self._dtype}, "
            f"placement={self._placement}, aliased={self.is_aliased}, "
            f"released={self._released})"
        )


class Accessor(Generic[T]):
    """
    Scoped view of a mapped host allocation.

    Valid until released; release() unmaps through the owning buffer.

    Example:
        >>> with buffer.map_host() as view:
        ...     view[0] = 42
    """

    def __init__(self, buffer: ComputeBuffer[T], mapped: NDArray[T], token: CompletionToken) -> None:
        self._buffer = buffer
        self._mapped: NDArray[T] | None = mapped
        self._token = token

    @property
    def buffer(self) -> ComputeBuffer[T]:
        return self._buffer

    @property
    def token(self) -> CompletionToken:
        """Get the token of the map command."""
        return self._token

    @property
    def released(self) -> bool:
        return self._mapped is None

    def _view(self) -> NDArray[T]:
        if self._mapped is None:
            raise AccessorReleasedError()
        return self._mapped

    def as_array(self) -> NDArray[T]:
        """Get the mapped NumPy view."""
        return self._view()

    def __len__(self) -> int:
        return len(self._view())

    def __getitem__(self, key: Any) -> Any:
        return self._view()[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._view()[key] = value

    def release(self) -> None:
        """Unmap the view. Repeated calls are no-ops."""
        if self._mapped is None:
            return
        mapped, self._mapped = self._mapped, None
        if self._buffer._accessor is self:
            self._buffer._accessor = None
        self._buffer._unmap(mapped)

    def __enter__(self) -> Accessor[T]:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.release()

    def __repr__(self) -> str:
        """String representation."""
        length = None if self._mapped is None else len(self._mapped)
        return f"Accessor(length={length}, released={self.released})"
