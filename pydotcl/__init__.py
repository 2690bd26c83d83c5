"""
PyDotCL - host-side compute layer over OpenCL.

Manages a single compute context, buffers that live on the host, the
device or both, and kernels whose arguments are checked against the
signature the device reports before every dispatch.

Core Features:
    - Dual-location buffers: explicit host/device placement and transfers
    - Unified memory: one allocation serves both roles, transfers are skipped
    - Scoped mapping: accessors unmap when released or on scope exit
    - Typed kernel binding: argument types validated against the device
    - Host driver: NumPy emulation for machines without an OpenCL runtime

Quick Start:
    >>> import numpy as np
    >>> from pydotcl import BufferPlacement, ComputeBuffer, ComputeProgram, DeviceContext
    >>>
    >>> with DeviceContext() as ctx:
    ...     data = ComputeBuffer(ctx, np.arange(1024, dtype=np.int32),
    ...                          BufferPlacement.ON_HOST_AND_DEVICE)
    ...     data.to_device()
    ...     program = ComputeProgram.from_file(ctx, "double.cl")
    ...     kernel = program.get_kernel("double_it", 1024, 32)
    ...     kernel.push_arg(data)
    ...     kernel.execute()
    ...     data.to_host()
"""

from pydotcl.backends.base import MapFlags, MemFlags
from pydotcl.compilation.kernel import ArgInfo, Kernel
from pydotcl.compilation.program import ComputeProgram
from pydotcl.config import CoreConfig
from pydotcl.core.buffer import Accessor, BufferPlacement, ComputeBuffer
from pydotcl.core.context import DeviceContext
from pydotcl.core.event import CompletionToken, wait_all

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Core
    "DeviceContext",
    "ComputeBuffer",
    "BufferPlacement",
    "Accessor",
    "CompletionToken",
    "wait_all",
    # Compilation
    "ComputeProgram",
    "Kernel",
    "ArgInfo",
    # Configuration
    "CoreConfig",
    "MemFlags",
    "MapFlags",
]
