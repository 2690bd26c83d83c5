"""
Typed kernel binder.

Validates every kernel argument against the signature the device itself
reports before binding it. The mapping from OpenCL type names to NumPy
element types is a closed table; any other type name is unsupported.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from pydotcl.backends.base import AddressQualifier
from pydotcl.core.buffer import ComputeBuffer
from pydotcl.core.event import CompletionToken, events_of
from pydotcl.exceptions import (
    ArgumentTypeMismatchError,
    KernelReleasedError,
    UnsupportedArgumentTypeError,
)

if TYPE_CHECKING:
    from numpy.typing import DTypeLike

    from pydotcl.compilation.program import ComputeProgram


logger = logging.getLogger(__name__)

ARG_TYPES: dict[str, np.dtype[Any]] = {
    "float": np.dtype(np.float32),
    "float4": np.dtype(np.float32),
    "double": np.dtype(np.float64),
    "int": np.dtype(np.int32),
    "uint": np.dtype(np.uint32),
    "uchar": np.dtype(np.uint8),
    "uchar4": np.dtype(np.uint8),
    "long": np.dtype(np.int64),
}

# Work-group size used when callers have no better choice for 1-D ranges
PREFERRED_1D = 32

NDRange = tuple[int, ...]


def as_ndrange(value: int | Sequence[int] | None) -> NDRange:
    """
    Normalize a work size to a tuple.

    An int becomes a one-dimensional range; None becomes the empty range,
    meaning "not given".
    """
    if value is None:
        return ()
    if isinstance(value, (int, np.integer)):
        return (int(value),)
    return tuple(int(v) for v in value)


@dataclass(frozen=True)
class ArgInfo:
    """Signature of one kernel argument as reported by the device."""

    type_name: str
    qualifier: AddressQualifier
    dtype: np.dtype[Any]
    is_pointer: bool

    @classmethod
    def parse(cls, type_name: str, qualifier: AddressQualifier) -> ArgInfo:
        """
        Resolve a reported type name through the closed type table.

        Args:
            type_name: Type name such as 'float*' or 'uint'.
            qualifier: Address space of the argument.

        Returns:
            Parsed signature.

        Raises:
            UnsupportedArgumentTypeError: If the base type is not in ARG_TYPES.
        """
        name = type_name.strip()
        is_pointer = name.endswith("*")
        base = name.rstrip("*").strip()
        if base not in ARG_TYPES:
            raise UnsupportedArgumentTypeError(type_name)
        return cls(name, AddressQualifier(qualifier), ARG_TYPES[base], is_pointer)

    @property
    def is_local(self) -> bool:
        return self.qualifier == AddressQualifier.LOCAL


def _describe(value: Any) -> str:
    if isinstance(value, ComputeBuffer):
        return f"ComputeBuffer[{value.dtype.name}]"
    if isinstance(value, np.generic):
        return value.dtype.name
    return type(value).__name__


class Kernel:
    """
    A kernel from a built program with validated argument binding.

    Example:
        >>> kernel = program.get_kernel("double_it", 1024, 32)
        >>> kernel.push_arg(buffer)
        >>> kernel.push_arg(np.uint32(1024))
        >>> kernel.execute()
    """

    def __init__(
        self,
        program: ComputeProgram,
        name: str,
        global_work: int | Sequence[int],
        local_work: int | Sequence[int] | None = None,
        offset: int | Sequence[int] | None = None,
    ) -> None:
        """
        Create a kernel.

        Args:
            program: Built program declaring the kernel.
            name: Kernel function name.
            global_work: Global work size per dimension.
            local_work: Work-group size per dimension; empty lets the driver pick.
            offset: Global offset per dimension; empty means zero.
        """
        self._program = program
        self._context = program.context
        self._name = name
        self._handle = self._context.driver.create_kernel(program.handle, name)
        self._global_work = as_ndrange(global_work)
        self._local_work = as_ndrange(local_work)
        self._offset = as_ndrange(offset)
        self._cursor = 0
        self._released = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def program(self) -> ComputeProgram:
        return self._program

    @property
    def handle(self) -> Any:
        """Get the driver kernel handle."""
        self._check_live()
        return self._handle

    @property
    def global_work(self) -> NDRange:
        return self._global_work

    @global_work.setter
    def global_work(self, value: int | Sequence[int]) -> None:
        self._global_work = as_ndrange(value)

    @property
    def local_work(self) -> NDRange:
        return self._local_work

    @local_work.setter
    def local_work(self, value: int | Sequence[int] | None) -> None:
        self._local_work = as_ndrange(value)

    @property
    def offset(self) -> NDRange:
        return self._offset

    @offset.setter
    def offset(self, value: int | Sequence[int] | None) -> None:
        self._offset = as_ndrange(value)

    @property
    def cursor(self) -> int:
        """Get the index push_arg binds next."""
        return self._cursor

    @property
    def released(self) -> bool:
        return self._released

    def _check_live(self) -> None:
        if self._released:
            raise KernelReleasedError(self._name)

    def get_arg_info(self, index: int) -> ArgInfo:
        """
        Query the device for an argument's signature.

        Not cached: every call asks the driver.
        """
        self._check_live()
        driver = self._context.driver
        type_name = driver.get_kernel_arg_type_name(self._handle, index)
        qualifier = driver.get_kernel_arg_address_qualifier(self._handle, index)
        return ArgInfo.parse(type_name, qualifier)

    def set_arg(self, index: int, value: ComputeBuffer[Any] | np.generic) -> None:
        """
        Bind a scalar or a buffer to an argument.

        Scalars must be NumPy scalars of exactly the argument's element
        type. Buffers bind their device allocation to pointer arguments
        of the same element type.

        Args:
            index: Argument position.
            value: NumPy scalar or ComputeBuffer.

        Raises:
            ArgumentTypeMismatchError: If the value does not match the signature.
        """
        info = self.get_arg_info(index)
        driver = self._context.driver

        if isinstance(value, ComputeBuffer):
            if not info.is_pointer or info.is_local or value.dtype != info.dtype:
                raise ArgumentTypeMismatchError(index, info.type_name, _describe(value))
            handle = value._require_device(f"bind kernel argument {index}")
            driver.set_kernel_arg_buffer(self._handle, index, handle)
        elif isinstance(value, np.generic):
            if info.is_pointer or value.dtype != info.dtype:
                raise ArgumentTypeMismatchError(index, info.type_name, _describe(value))
            driver.set_kernel_arg(self._handle, index, value)
        else:
            raise ArgumentTypeMismatchError(index, info.type_name, _describe(value))

    def set_size(self, index: int, dtype: DTypeLike, count: int) -> None:
        """
        Reserve local memory for count elements of dtype.

        Args:
            index: Argument position; must be a __local pointer.
            dtype: Element type matching the argument.
            count: Number of elements.
        """
        info = self.get_arg_info(index)
        dtype = np.dtype(dtype)
        if not info.is_pointer or not info.is_local or dtype != info.dtype:
            raise ArgumentTypeMismatchError(
                index,
                f"{info.qualifier.name.lower()} {info.type_name}",
                f"local {dtype.name}[{count}]",
            )
        self._context.driver.set_kernel_arg_local(self._handle, index, count * dtype.itemsize)

    def push_arg(self, value: ComputeBuffer[Any] | np.generic) -> int:
        """
        Bind an argument at the cursor and advance it.

        Returns:
            The new cursor position.
        """
        self.set_arg(self._cursor, value)
        self._cursor += 1
        return self._cursor

    def reset_cursor(self) -> None:
        """Move the push_arg cursor back to argument 0."""
        self._cursor = 0

    def execute(
        self,
        blocking: bool = True,
        wait_for: Sequence[CompletionToken | None] | None = None,
    ) -> CompletionToken:
        """
        Enqueue the kernel over its work ranges.

        Args:
            blocking: Wait for the kernel to complete.
            wait_for: Tokens the dispatch must wait for.

        Returns:
            Completion token.
        """
        self._check_live()
        ctx = self._context
        event = ctx.driver.enqueue_nd_range_kernel(
            ctx.queue,
            self._handle,
            self._global_work,
            self._local_work or None,
            self._offset or None,
            wait_for=events_of(wait_for),
        )
        token = ctx.track_kernel(CompletionToken(ctx.driver, event, self._name))
        if blocking:
            token.wait()
        return token

    def release(self) -> None:
        """Release the kernel. Repeated calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._context.driver.release_kernel(self._handle)
        logger.debug(f"Released kernel '{self._name}'")

    def __enter__(self) -> Kernel:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.release()

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"Kernel(name={self._name!r}, global_work={self._global_work}, "
            f"local_work={self._local_work}, released={self._released})"
        )
