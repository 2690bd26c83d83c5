"""
Device context abstraction.

Provides platform and device discovery, and owns the single compute
context and in-order command queue every buffer and program uses.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydotcl.config import CoreConfig
from pydotcl.core.event import CompletionToken, TimingCollector
from pydotcl.exceptions import ContextNotInitializedError

if TYPE_CHECKING:
    from pydotcl.backends.base import Driver


logger = logging.getLogger(__name__)

DeinitCallback = Callable[[], None]


def create_driver(config: CoreConfig) -> Driver:
    """
    Create the driver named by a configuration.

    Args:
        config: Configuration selecting "opencl" or "host".

    Returns:
        A new driver instance.
    """
    if config.driver == "host":
        from pydotcl.backends.host import HostDriver

        return HostDriver()

    from pydotcl.backends.opencl import OpenCLDriver

    return OpenCLDriver()


class DeviceContext:
    """
    The single active compute context.

    Holds the selected device, one context and one in-order queue.
    Buffers, programs and kernels take the context explicitly and must be
    released before or during deinit().

    Example:
        >>> with DeviceContext(CoreConfig(device_type="gpu")) as ctx:
        ...     buffer = ComputeBuffer(ctx, np.arange(16), BufferPlacement.ON_HOST_AND_DEVICE)
        ...     buffer.to_device()
    """

    def __init__(self, config: CoreConfig | None = None, *, driver: Driver | None = None) -> None:
        """
        Initialize a device context.

        Args:
            config: Context configuration; defaults to CoreConfig().
            driver: Driver to use instead of the one config.driver names.
        """
        self._config = config or CoreConfig()
        self._driver = driver if driver is not None else create_driver(self._config)

        self._platform: Any = None
        self._device: Any = None
        self._context: Any = None
        self._queue: Any = None
        self._platform_name = ""
        self._device_name = ""
        self._unified_memory = False

        self._callbacks: list[DeinitCallback] = []
        self._timing = TimingCollector()

    @property
    def config(self) -> CoreConfig:
        """Get the context configuration."""
        return self._config

    @property
    def driver(self) -> Driver:
        """Get the driver binding."""
        return self._driver

    @property
    def is_initialized(self) -> bool:
        """Check if the context holds live handles."""
        return self._queue is not None

    @property
    def device(self) -> Any:
        """Get the device handle."""
        self._require("device")
        return self._device

    @property
    def context(self) -> Any:
        """Get the driver context handle."""
        self._require("context")
        return self._context

    @property
    def queue(self) -> Any:
        """Get the command queue handle."""
        self._require("queue")
        return self._queue

    @property
    def platform_name(self) -> str:
        return self._platform_name

    @property
    def device_name(self) -> str:
        return self._device_name

    @property
    def is_unified_memory(self) -> bool:
        """Check if the device shares physical memory with the host."""
        self._require("is_unified_memory")
        return self._unified_memory

    @property
    def collect_time(self) -> bool:
        return self._config.collect_time

    @property
    def timing(self) -> TimingCollector:
        """Get the collector of timed commands."""
        return self._timing

    def _require(self, operation: str) -> None:
        if not self.is_initialized:
            raise ContextNotInitializedError(operation)

    def _select_platform(self, platforms: list[Any]) -> Any:
        # Skip avoided platforms (Mesa Clover) when there is an alternative
        for platform in platforms:
            if self._driver.platform_name(platform) not in self._config.avoid_platforms:
                return platform
        return platforms[0]

    def init(self) -> DeviceContext:
        """
        Discover a device and create the context and queue.

        Calling init() on an initialized context logs a warning and
        does nothing.

        Returns:
            Self for chaining.
        """
        if self.is_initialized:
            logger.warning("DeviceContext.init() called on an initialized context; ignoring")
            return self

        driver = self._driver
        config = self._config

        start = time.perf_counter()
        platforms = driver.get_platforms()
        platform = self._select_platform(platforms)
        self._platform_name = driver.platform_name(platform)
        logger.info(f"Platform: {self._platform_name}")
        logger.info(f"Version: {driver.platform_version(platform)}")
        logger.debug(f"Platform discovery took {(time.perf_counter() - start) * 1000:.3f} ms")

        start = time.perf_counter()
        device = driver.get_devices(platform, config.device_type)[0]
        self._device_name = driver.device_name(device)
        self._unified_memory = driver.host_unified_memory(device)
        logger.info(f"Device: {self._device_name}")
        logger.debug(f"Device discovery took {(time.perf_counter() - start) * 1000:.3f} ms")

        start = time.perf_counter()
        context = driver.create_context(device)
        logger.debug(f"Context creation took {(time.perf_counter() - start) * 1000:.3f} ms")

        start = time.perf_counter()
        try:
            queue = driver.create_queue(context, device, profiling=config.queue_profiling)
        except Exception:
            driver.release_context(context)
            driver.release_device(device)
            raise
        logger.debug(f"Queue creation took {(time.perf_counter() - start) * 1000:.3f} ms")

        self._platform = platform
        self._device = device
        self._context = context
        self._queue = queue
        return self

    def deinit(self) -> None:
        """
        Run deinit callbacks and release the queue, context and device.

        Callbacks run once each in registration order. Does nothing on an
        uninitialized context.
        """
        if not self.is_initialized:
            return

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

        queue, context, device = self._queue, self._context, self._device
        self._queue = None
        self._context = None
        self._device = None
        self._platform = None
        self._timing.reset()

        self._driver.release_queue(queue)
        self._driver.release_context(context)
        self._driver.release_device(device)
        logger.debug(f"Context released for {self._device_name}")

    def on_deinit(self, callback: DeinitCallback) -> DeinitCallback:
        """
        Register a callback to run at deinit().

        Can be used as a decorator.
        """
        self._callbacks.append(callback)
        return callback

    def wait_queue(self) -> None:
        """Block until every enqueued command completed."""
        self._driver.finish(self.queue)

    def track_io(self, token: CompletionToken) -> CompletionToken:
        """Record an I/O token when timing collection is enabled."""
        if self._config.collect_time:
            self._timing.record_io(token)
        return token

    def track_kernel(self, token: CompletionToken) -> CompletionToken:
        """Record a kernel or peer-copy token when timing collection is enabled."""
        if self._config.collect_time:
            self._timing.record_kernel(token)
        return token

    def measure_time(self) -> tuple[int, int]:
        """
        Sum the device time of collected commands and clear them.

        All collected commands must have completed.

        Returns:
            Tuple of (io_ns, kernel_ns); zeros when collection is disabled.
        """
        return self._timing.measure()

    def reset_time(self) -> None:
        """Drop collected timing tokens."""
        self._timing.reset()

    def __enter__(self) -> DeviceContext:
        return self.init()

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.deinit()

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"DeviceContext(driver={self._driver.name!r}, "
            f"device={self._device_name or None!r}, "
            f"initialized={self.is_initialized})"
        )
