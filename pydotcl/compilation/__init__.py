"""
Program compilation and typed kernel binding.
"""

from pydotcl.compilation.kernel import ARG_TYPES, ArgInfo, Kernel
from pydotcl.compilation.program import ComputeProgram

__all__ = [
    "ComputeProgram",
    "Kernel",
    "ArgInfo",
    "ARG_TYPES",
]
