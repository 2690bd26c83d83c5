"""
Configuration for PyDotCL.

Settings can be given explicitly or read from the environment:

- PYDOTCL_DRIVER: "opencl" (default) or "host"
- PYDOTCL_DEVICE_TYPE: "gpu" (default), "cpu", "accelerator" or "all"
- PYDOTCL_COLLECT_TIME: "1" to accumulate profiling events for measure_time()
- PYDOTCL_PROFILING: "1" to enable queue profiling without collecting events
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from pydotcl.backends.base import DEVICE_TYPES
from pydotcl.exceptions import InvalidConfigurationError

DRIVERS = ("opencl", "host")

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUE_VALUES


@dataclass
class CoreConfig:
    """Configuration for a device context."""

    driver: str = "opencl"
    device_type: str = "gpu"
    collect_time: bool = False
    profiling: bool = False
    avoid_platforms: tuple[str, ...] = field(default_factory=lambda: ("Clover",))

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.driver not in DRIVERS:
            raise InvalidConfigurationError("driver", self.driver, f"must be one of {DRIVERS}")
        if self.device_type not in DEVICE_TYPES:
            raise InvalidConfigurationError(
                "device_type", self.device_type, f"must be one of {DEVICE_TYPES}"
            )
        if isinstance(self.avoid_platforms, str):
            self.avoid_platforms = (self.avoid_platforms,)

    @property
    def queue_profiling(self) -> bool:
        """Check if the command queue needs profiling enabled."""
        return self.collect_time or self.profiling

    @classmethod
    def from_env(cls) -> CoreConfig:
        """
        Build a configuration from PYDOTCL_* environment variables.

        Returns:
            CoreConfig with defaults for unset variables.
        """
        return cls(
            driver=os.environ.get("PYDOTCL_DRIVER", "opencl").strip().lower(),
            device_type=os.environ.get("PYDOTCL_DEVICE_TYPE", "gpu").strip().lower(),
            collect_time=_env_flag("PYDOTCL_COLLECT_TIME"),
            profiling=_env_flag("PYDOTCL_PROFILING"),
        )
