"""
Unit tests for the exception hierarchy.
"""

from __future__ import annotations

import builtins

import pytest

from pydotcl.backends.base import StatusCode
from pydotcl.exceptions import (
    AccessorReleasedError,
    ArgumentTypeMismatchError,
    BufferError,
    BufferLengthMismatchError,
    BufferReleasedError,
    BuildError,
    ConfigurationError,
    ContextError,
    ContextNotInitializedError,
    DriverError,
    InvalidConfigurationError,
    KernelReleasedError,
    PlacementError,
    ProgramError,
    ProgramReleasedError,
    PyDotCLError,
    UnsupportedArgumentTypeError,
)


class TestHierarchy:
    """Tests for exception inheritance."""

    @pytest.mark.parametrize(
        "exc_type, base",
        [
            (InvalidConfigurationError, ConfigurationError),
            (PlacementError, ConfigurationError),
            (BufferLengthMismatchError, ConfigurationError),
            (UnsupportedArgumentTypeError, ConfigurationError),
            (ContextNotInitializedError, ContextError),
            (BufferReleasedError, BufferError),
            (AccessorReleasedError, BufferError),
            (ProgramReleasedError, ProgramError),
            (KernelReleasedError, ProgramError),
        ],
    )
    def test_subclass(self, exc_type: type, base: type) -> None:
        """Test that specific errors derive from their category."""
        assert issubclass(exc_type, base)
        assert issubclass(exc_type, PyDotCLError)

    def test_top_level_errors(self) -> None:
        """Test that category errors derive from the root."""
        for exc_type in (DriverError, ArgumentTypeMismatchError, BuildError):
            assert issubclass(exc_type, PyDotCLError)

    def test_buffer_error_is_not_builtin(self) -> None:
        """Test that the package BufferError is distinct from the builtin."""
        assert BufferError is not builtins.BufferError


class TestDriverError:
    """Tests for DriverError."""

    def test_message_names_operation_and_status(self) -> None:
        """Test that the message carries the operation and symbolic status."""
        error = DriverError("clCreateBuffer", StatusCode.INVALID_BUFFER_SIZE)

        assert error.operation == "clCreateBuffer"
        assert error.status == -61
        assert "clCreateBuffer" in str(error)
        assert "-61" in str(error)
        assert "INVALID_BUFFER_SIZE" in str(error)

    def test_unknown_status(self) -> None:
        """Test formatting of a status without a symbolic name."""
        error = DriverError("clFoo", -9999)

        assert error.status == -9999
        assert "UNKNOWN" in str(error)

    def test_detail(self) -> None:
        """Test that detail text is appended."""
        error = DriverError("clCreateKernel", StatusCode.INVALID_KERNEL_NAME, "missing")

        assert error.detail == "missing"
        assert str(error).endswith(": missing")


class TestConfigurationErrors:
    """Tests for configuration error messages."""

    def test_invalid_configuration(self) -> None:
        """Test InvalidConfigurationError attributes."""
        error = InvalidConfigurationError("driver", "cuda", "unknown driver")

        assert error.parameter == "driver"
        assert error.value == "cuda"
        assert "unknown driver" in str(error)

    def test_placement(self) -> None:
        """Test PlacementError message."""
        error = PlacementError("transfer to device", "BufferPlacement.ON_HOST_AND_DEVICE")

        assert "transfer to device" in str(error)
        assert "ON_HOST_AND_DEVICE" in str(error)

    def test_length_mismatch(self) -> None:
        """Test BufferLengthMismatchError names both lengths."""
        error = BufferLengthMismatchError(10, 12)

        assert error.source_length == 10
        assert error.destination_length == 12
        assert "10 != 12" in str(error)

    def test_unsupported_type(self) -> None:
        """Test UnsupportedArgumentTypeError names the type."""
        error = UnsupportedArgumentTypeError("half*")

        assert error.type_name == "half*"
        assert "half*" in str(error)


class TestOtherErrors:
    """Tests for the remaining error types."""

    def test_argument_mismatch_names_both_types(self) -> None:
        """Test that the message names expected and supplied types."""
        error = ArgumentTypeMismatchError(1, "uint", "int32")

        assert error.index == 1
        assert str(error) == 'Kernel argument 1: expected "uint", got "int32"'

    def test_build_error_carries_log(self) -> None:
        """Test that BuildError keeps the log and cause."""
        cause = DriverError("clBuildProgram", StatusCode.BUILD_PROGRAM_FAILURE)
        error = BuildError("error: expected ';'", cause)

        assert error.build_log == "error: expected ';'"
        assert error.cause is cause
        assert "expected ';'" in str(error)

    def test_context_not_initialized(self) -> None:
        """Test ContextNotInitializedError with and without an operation."""
        assert "init()" in str(ContextNotInitializedError())

        error = ContextNotInitializedError("queue")
        assert error.operation == "queue"
        assert "queue" in str(error)
