"""
Core abstractions for PyDotCL.
"""

from pydotcl.core.buffer import Accessor, BufferPlacement, ComputeBuffer
from pydotcl.core.context import DeviceContext
from pydotcl.core.event import CompletionToken, TimingCollector, wait_all

__all__ = [
    "DeviceContext",
    "ComputeBuffer",
    "BufferPlacement",
    "Accessor",
    "CompletionToken",
    "TimingCollector",
    "wait_all",
]
