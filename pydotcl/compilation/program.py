"""
Program compilation for PyDotCL.

Compiles OpenCL C source once for the context's device, with kernel
argument info enabled so kernels can validate their arguments.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydotcl.backends.base import KERNEL_ARG_INFO_OPTION
from pydotcl.compilation.kernel import Kernel
from pydotcl.exceptions import BuildError, DriverError, ProgramReleasedError

if TYPE_CHECKING:
    from pydotcl.core.context import DeviceContext


logger = logging.getLogger(__name__)

BUILD_OPTIONS = (KERNEL_ARG_INFO_OPTION,)

_BANNER_OPEN = f"{'=' * 32} BUILD LOG {'=' * 32}"
_BANNER_CLOSE = "=" * len(_BANNER_OPEN)


class ComputeProgram:
    """
    A program built from OpenCL C source.

    Example:
        >>> program = ComputeProgram.from_file(ctx, "kernels.cl", "#define N 1024")
        >>> kernel = program.get_kernel("double_it", 1024, 32)
    """

    def __init__(self, context: DeviceContext, source: str) -> None:
        """
        Create and build a program.

        Args:
            context: Initialized device context.
            source: OpenCL C source.

        Raises:
            BuildError: If compilation fails; carries the build log.
        """
        self._context = context
        self._source = source
        self._released = False

        driver = context.driver
        self._handle = driver.create_program(context.context, source)

        start = time.perf_counter()
        try:
            driver.build_program(self._handle, context.device, BUILD_OPTIONS)
        except DriverError as e:
            log = driver.get_build_log(self._handle, context.device)
            logger.error(f"{_BANNER_OPEN}\n{log}\n{_BANNER_CLOSE}")
            driver.release_program(self._handle)
            self._released = True
            raise BuildError(log, e) from e
        logger.debug(f"Program build took {(time.perf_counter() - start) * 1000:.3f} ms")

    @classmethod
    def from_source(cls, context: DeviceContext, source: str) -> ComputeProgram:
        """Build a program from source text."""
        return cls(context, source)

    @classmethod
    def from_file(
        cls,
        context: DeviceContext,
        path: str | Path,
        prepend_source: str = "",
    ) -> ComputeProgram:
        """
        Build a program from a source file.

        Args:
            context: Initialized device context.
            path: Path of the OpenCL C file.
            prepend_source: Text placed before the file contents, such as defines.

        Returns:
            Built program.
        """
        source = Path(path).read_text()
        return cls(context, prepend_source + "\n" + source)

    @property
    def context(self) -> DeviceContext:
        return self._context

    @property
    def source(self) -> str:
        """Get the full source the program was built from."""
        return self._source

    @property
    def handle(self) -> Any:
        """Get the driver program handle."""
        self._check_live()
        return self._handle

    @property
    def released(self) -> bool:
        return self._released

    @property
    def build_log(self) -> str:
        """Get the device build log."""
        self._check_live()
        return self._context.driver.get_build_log(self._handle, self._context.device)

    def _check_live(self) -> None:
        if self._released:
            raise ProgramReleasedError()

    def get_kernel(
        self,
        name: str,
        global_work: int | Sequence[int],
        local_work: int | Sequence[int] | None = None,
    ) -> Kernel:
        """
        Create a kernel from this program.

        Args:
            name: Kernel function name.
            global_work: Global work size per dimension.
            local_work: Work-group size per dimension.

        Returns:
            New kernel; release it before the program's context is deinitialized.
        """
        self._check_live()
        return Kernel(self, name, global_work, local_work)

    def binaries(self) -> list[bytes]:
        """Get the compiled binary for each device."""
        self._check_live()
        return self._context.driver.get_program_binaries(self._handle)

    def release(self) -> None:
        """Release the program. Repeated calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._context.driver.release_program(self._handle)

    def __enter__(self) -> ComputeProgram:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.release()

    def __repr__(self) -> str:
        """String representation."""
        return f"ComputeProgram(source_length={len(self._source)}, released={self._released})"
