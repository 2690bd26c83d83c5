"""
Completion tokens and timing collection.

Every asynchronous enqueue returns a CompletionToken. When timing
collection is enabled, tokens are also accumulated by a TimingCollector
so aggregate device time can be measured after a phase of work.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydotcl.backends.base import Driver


class CompletionToken:
    """
    Handle to a pending or finished device operation.

    Example:
        >>> token = buffer.to_device(blocking=False)
        >>> kernel.execute(wait_for=[token])
    """

    def __init__(self, driver: Driver, event: Any, command: str = "") -> None:
        """
        Initialize a completion token.

        Args:
            driver: Driver that issued the event.
            event: Driver event handle.
            command: Name of the enqueued command.
        """
        self._driver = driver
        self._event = event
        self._command = command
        self._released = False

    @property
    def event(self) -> Any:
        """Get the underlying driver event."""
        return self._event

    @property
    def command(self) -> str:
        """Get the name of the enqueued command."""
        return self._command

    @property
    def released(self) -> bool:
        return self._released

    def wait(self) -> None:
        """Block until the operation completes."""
        self._driver.wait_for_events([self._event])

    @property
    def elapsed_ns(self) -> int:
        """
        Get device execution time in nanoseconds.

        Requires a profiling-enabled queue; the driver raises
        PROFILING_INFO_NOT_AVAILABLE otherwise.
        """
        return self._driver.get_event_elapsed(self._event)

    @property
    def elapsed_ms(self) -> float:
        """Get device execution time in milliseconds."""
        return self.elapsed_ns / 1_000_000

    def release(self) -> None:
        """Release the driver event. Repeated calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._driver.release_event(self._event)

    def __enter__(self) -> CompletionToken:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.release()

    def __repr__(self) -> str:
        """String representation."""
        return f"CompletionToken(command={self._command!r}, released={self._released})"


def wait_all(tokens: Iterable[CompletionToken | None]) -> None:
    """
    Wait for every token, skipping None entries.

    None stands for an operation that was already synchronized, such as a
    transfer on a unified-memory buffer.
    """
    live = [t for t in tokens if t is not None]
    if not live:
        return
    live[0]._driver.wait_for_events([t.event for t in live])


def events_of(tokens: Iterable[CompletionToken | None] | None) -> list[Any] | None:
    """Convert a token wait list into driver events."""
    if tokens is None:
        return None
    return [t.event for t in tokens if t is not None]


@dataclass
class TimingCollector:
    """
    Accumulates tokens of I/O and kernel commands for aggregate timing.

    Must only be measured after all recorded operations completed.
    """

    io_tokens: list[CompletionToken] = field(default_factory=list)
    kernel_tokens: list[CompletionToken] = field(default_factory=list)

    def record_io(self, token: CompletionToken) -> None:
        """Record a read, write, transfer, map or unmap."""
        self.io_tokens.append(token)

    def record_kernel(self, token: CompletionToken) -> None:
        """Record a kernel dispatch or a buffer-to-buffer copy."""
        self.kernel_tokens.append(token)

    def measure(self) -> tuple[int, int]:
        """
        Sum elapsed device time and clear the collected tokens.

        Returns:
            Tuple of (io_ns, kernel_ns).
        """
        io_ns = sum(t.elapsed_ns for t in self.io_tokens)
        kernel_ns = sum(t.elapsed_ns for t in self.kernel_tokens)
        self.reset()
        return io_ns, kernel_ns

    def reset(self) -> None:
        """Drop all collected tokens."""
        self.io_tokens.clear()
        self.kernel_tokens.clear()

    def __len__(self) -> int:
        return len(self.io_tokens) + len(self.kernel_tokens)
