"""
Unit tests for ComputeProgram.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from pydotcl.backends.base import KERNEL_ARG_INFO_OPTION, StatusCode
from pydotcl.compilation.program import BUILD_OPTIONS, ComputeProgram
from pydotcl.core.context import DeviceContext
from pydotcl.exceptions import BuildError, DriverError, ProgramReleasedError


class TestProgramBuild:
    """Tests for program compilation."""

    def test_from_source(self, context: DeviceContext, kernel_source: str) -> None:
        program = ComputeProgram.from_source(context, kernel_source)

        assert program.source == kernel_source
        assert program.handle.built
        assert program.handle.arg_info
        assert "4 kernel(s) built" in program.build_log
        program.release()

    def test_build_options(self) -> None:
        assert BUILD_OPTIONS == (KERNEL_ARG_INFO_OPTION,)
        assert KERNEL_ARG_INFO_OPTION == "-cl-kernel-arg-info"

    def test_from_file_prepends(self, context: DeviceContext, kernel_source: str, tmp_path: Path) -> None:
        """Test that prepended source goes before the file contents."""
        path = tmp_path / "kernels.cl"
        path.write_text(kernel_source)

        program = ComputeProgram.from_file(context, path, prepend_source="#define WIDTH 16")

        assert program.source == "#define WIDTH 16\n" + kernel_source
        program.release()

    def test_from_file_no_prepend(self, context: DeviceContext, kernel_source: str, tmp_path: Path) -> None:
        path = tmp_path / "kernels.cl"
        path.write_text(kernel_source)

        program = ComputeProgram.from_file(context, str(path))

        assert program.source == "\n" + kernel_source
        program.release()

    def test_missing_file(self, context: DeviceContext, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ComputeProgram.from_file(context, tmp_path / "missing.cl")

    def test_build_failure(self, context: DeviceContext, caplog: pytest.LogCaptureFixture) -> None:
        """Test that a failed build raises BuildError with the log."""
        source = "__kernel void unknown_kernel(__global float* x) { x[0] = 1.0f; }"

        with caplog.at_level(logging.ERROR, logger="pydotcl.compilation.program"):
            with pytest.raises(BuildError) as exc_info:
                ComputeProgram.from_source(context, source)

        error = exc_info.value
        assert "'unknown_kernel' has no host implementation" in error.build_log
        assert isinstance(error.cause, DriverError)
        assert error.cause.status == StatusCode.BUILD_PROGRAM_FAILURE
        assert error.__cause__ is error.cause

        messages = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert len(messages) == 1
        assert "BUILD LOG" in messages[0]
        assert error.build_log in messages[0]

    def test_build_failure_releases_program(self, context: DeviceContext) -> None:
        with pytest.raises(BuildError):
            ComputeProgram.from_source(context, "int helper(int x) { return x; }")

        assert context.driver.call_log[-1] == "clReleaseProgram"


class TestProgramUsage:
    """Tests for kernels, binaries and release."""

    def test_get_kernel(self, program: ComputeProgram) -> None:
        kernel = program.get_kernel("double_it", 1024, 32)

        assert kernel.name == "double_it"
        assert kernel.program is program
        assert kernel.global_work == (1024,)
        assert kernel.local_work == (32,)
        kernel.release()

    def test_unknown_kernel(self, program: ComputeProgram) -> None:
        with pytest.raises(DriverError) as exc_info:
            program.get_kernel("not_declared", 8)

        assert exc_info.value.status == StatusCode.INVALID_KERNEL_NAME

    def test_binaries(self, program: ComputeProgram) -> None:
        binaries = program.binaries()

        assert len(binaries) == 1
        assert isinstance(binaries[0], bytes)

    def test_release(self, context: DeviceContext, kernel_source: str) -> None:
        program = ComputeProgram.from_source(context, kernel_source)

        program.release()
        program.release()

        assert program.released
        assert context.driver.call_log.count("clReleaseProgram") == 1
        with pytest.raises(ProgramReleasedError):
            program.get_kernel("double_it", 8)
        with pytest.raises(ProgramReleasedError):
            program.binaries()

    def test_context_manager(self, context: DeviceContext, kernel_source: str) -> None:
        with ComputeProgram.from_source(context, kernel_source) as program:
            assert not program.released

        assert program.released
