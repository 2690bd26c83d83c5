"""
Driver bindings for PyDotCL.

OpenCLDriver is imported on first use so the host driver stays usable
on machines without an OpenCL ICD loader.
"""

from typing import Any

from pydotcl.backends.base import (
    AddressQualifier,
    Driver,
    MapFlags,
    MemFlags,
    StatusCode,
    status_name,
)
from pydotcl.backends.host import HostDevice, HostDriver, HostPlatform, WorkRange

__all__ = [
    "Driver",
    "StatusCode",
    "status_name",
    "MemFlags",
    "MapFlags",
    "AddressQualifier",
    "HostDriver",
    "HostDevice",
    "HostPlatform",
    "WorkRange",
    "OpenCLDriver",
]


def __getattr__(name: str) -> Any:
    if name == "OpenCLDriver":
        from pydotcl.backends.opencl import OpenCLDriver

        return OpenCLDriver
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
