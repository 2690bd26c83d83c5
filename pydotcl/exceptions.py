"""
PyDotCL exception hierarchy.

This module defines the complete exception hierarchy for PyDotCL,
providing specific exception types for different error categories:

- DriverError: Non-success status reported by the driver binding
- ConfigurationError: Invalid flags, placements, lengths or type names
- ArgumentTypeMismatchError: Kernel argument does not match its signature
- BuildError: Program compilation failures (carries the build log)
- ProgramError: Use of released programs and kernels
- ContextError: Device context lifecycle misuse
- BufferError: Use of released buffers and accessors

All exceptions inherit from PyDotCLError for easy catching.
"""

from __future__ import annotations


class PyDotCLError(Exception):
    """Base exception for all PyDotCL errors."""

    pass


class DriverError(PyDotCLError):
    """Raised when a driver call returns a non-success status."""

    def __init__(self, operation: str, status: int, detail: str | None = None) -> None:
        self.operation = operation
        self.status = int(status)
        self.detail = detail

        # Imported lazily, the backends package depends on this module
        from pydotcl.backends.base import status_name

        msg = f"{operation} failed with status {self.status} ({status_name(self.status)})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ConfigurationError(PyDotCLError):
    """Base exception for configuration errors."""

    pass


class InvalidConfigurationError(ConfigurationError):
    """Raised when configuration is invalid."""

    def __init__(self, parameter: str, value: object, reason: str) -> None:
        self.parameter = parameter
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid configuration: {parameter}={value!r} - {reason}")


class PlacementError(ConfigurationError):
    """Raised when an operation needs a location the buffer does not have."""

    def __init__(self, operation: str, required: str) -> None:
        self.operation = operation
        self.required = required
        super().__init__(f"Cannot {operation}: buffer must be created with {required}")


class BufferLengthMismatchError(ConfigurationError):
    """Raised when source and destination lengths differ."""

    def __init__(self, source_length: int, destination_length: int) -> None:
        self.source_length = source_length
        self.destination_length = destination_length
        super().__init__(
            f"Source and destination sizes don't match: "
            f"{source_length} != {destination_length}"
        )


class UnsupportedArgumentTypeError(ConfigurationError):
    """Raised when a kernel argument type name has no element type mapping."""

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(f"Unsupported kernel argument type: '{type_name}'")


class ArgumentTypeMismatchError(PyDotCLError):
    """Raised when a kernel argument does not match its device-reported type."""

    def __init__(self, index: int, expected: str, actual: str) -> None:
        self.index = index
        self.expected = expected
        self.actual = actual
        super().__init__(f'Kernel argument {index}: expected "{expected}", got "{actual}"')


class BuildError(PyDotCLError):
    """Raised when program compilation fails."""

    def __init__(self, build_log: str, cause: Exception) -> None:
        self.build_log = build_log
        self.cause = cause
        super().__init__(f"Program build failed: {cause}\n{build_log}")


class ContextError(PyDotCLError):
    """Base exception for device context errors."""

    pass


class ContextNotInitializedError(ContextError):
    """Raised when the device context is used before init() or after deinit()."""

    def __init__(self, operation: str | None = None) -> None:
        self.operation = operation
        msg = "Device context is not initialized. Call init() first."
        if operation:
            msg = f"Cannot access {operation}: {msg}"
        super().__init__(msg)


class BufferError(PyDotCLError):
    """Base exception for buffer-related errors."""

    pass


class BufferReleasedError(BufferError):
    """Raised when a released buffer is used."""

    def __init__(self) -> None:
        super().__init__("Buffer has already been released")


class AccessorReleasedError(BufferError):
    """Raised when a released accessor is used."""

    def __init__(self) -> None:
        super().__init__("Accessor has been released; the mapped view is no longer valid")


class ProgramError(PyDotCLError):
    """Base exception for program and kernel errors."""

    pass


class ProgramReleasedError(ProgramError):
    """Raised when a released program is used."""

    def __init__(self) -> None:
        super().__init__("Program has already been released")


class KernelReleasedError(ProgramError):
    """Raised when a released kernel is used."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Kernel '{name}' has already been released")
