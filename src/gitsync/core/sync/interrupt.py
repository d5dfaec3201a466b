"""
Signal handling for clean shutdown of the sync loop.

gitsync usually runs as a container sidecar, so SIGTERM from the runtime
is the normal way it ends. Both SIGTERM and SIGINT are handled in two
stages:

1. First signal: run the registered callbacks (the scheduler's
   request_stop). The current git command finishes or hits its deadline,
   hook workers are stopped and the process exits 0, or 1 when a one-shot
   sync had not finished yet.
2. Second signal: give up immediately with SystemExit(130).

Usage:
    >>> with InterruptHandler() as handler:
    ...     handler.on_interrupt(scheduler.request_stop)
    ...     scheduler.run()
"""

from __future__ import annotations

import logging
import signal
import sys
from collections.abc import Callable
from types import FrameType, TracebackType
from typing import Any

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class InterruptHandler:
    """
    Turns termination signals into a stop request.

    Attributes:
        interrupted: Whether a signal has been received
        received: Name of the first signal received
    """

    def __init__(self) -> None:
        self.received: str | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._previous: dict[int, Any] = {}

    @property
    def interrupted(self) -> bool:
        return self.received is not None

    def on_interrupt(self, callback: Callable[[], None]) -> None:
        """
        Run ``callback`` on the first signal.

        Callbacks run inside the signal handler and must not block.
        """
        self._callbacks.append(callback)

    def register(self) -> None:
        """Install the handler, remembering what it replaces."""
        for signum in HANDLED_SIGNALS:
            self._previous[signum] = signal.signal(signum, self._handle_signal)

    def unregister(self) -> None:
        """Put back the handlers replaced by register()."""
        while self._previous:
            signum, previous = self._previous.popitem()
            signal.signal(signum, previous)

    def __enter__(self) -> InterruptHandler:
        self.register()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.unregister()

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        name = signal.Signals(signum).name
        if self.interrupted:
            self._notify(f"\n[{name} received again, exiting now]\n")
            raise SystemExit(130)

        self.received = name
        self._notify(f"\n[{name} received, stopping after the current step]\n")
        for callback in self._callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Shutdown callback %r failed", callback)

    @staticmethod
    def _notify(message: str) -> None:
        # rich and logging both take locks; not safe inside a signal handler
        sys.stderr.write(message)
        sys.stderr.flush()
