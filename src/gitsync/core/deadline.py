"""
Per-iteration deadline and cancellation.

A Deadline is created by the scheduler at the start of every iteration and
handed to every blocking step. Steps call ``check()`` between operations and
use ``remaining()`` to bound subprocess calls, so an iteration can never
outlive its timeout and stops promptly once shutdown is requested.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from gitsync.core.errors import IterationTimeoutError, ShutdownRequested


class Deadline:
    """
    Wall-clock budget for one sync iteration.

    Attributes:
        timeout: Seconds allowed for the iteration (None means unbounded)
    """

    def __init__(
        self,
        timeout: float | None,
        cancel: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.timeout = timeout
        self._cancel = cancel
        self._clock = clock
        self._started = clock()

    @property
    def cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self.timeout is None:
            return None
        return self.timeout - self.elapsed()

    def check(self, step: str = "") -> None:
        """
        Raise if the iteration must not continue.

        Args:
            step: Name of the step about to start, used in the error message

        Raises:
            ShutdownRequested: If shutdown was requested
            IterationTimeoutError: If the deadline has passed
        """
        if self.cancelled:
            raise ShutdownRequested(f"Shutdown requested before {step or 'next step'}")
        if self.expired:
            where = f" before {step}" if step else ""
            raise IterationTimeoutError(f"Sync iteration exceeded {self.timeout}s{where}")
