"""
Cross-process lock over the worktrees under one sync root.

Reservations live in the memory of the process that made them, so a second
process (``gitsync collect`` next to a running sidecar) cannot see them.
Every step that creates, publishes or deletes worktrees therefore runs
under an exclusive flock on ``<root>/.git/gitsync.lock``.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import time
from collections.abc import Iterator
from pathlib import Path

from gitsync.core.deadline import Deadline
from gitsync.core.errors import StoreLockedError
from gitsync.core.store.adapter import classify_os_error

logger = logging.getLogger(__name__)


class StoreLock:
    """
    Exclusive advisory lock shared by all gitsync processes on one root.

    Example:
        >>> lock = StoreLock(Path("/git/.git"))
        >>> with lock.hold(deadline):
        ...     worktrees.collect(deadline)
    """

    FILENAME = "gitsync.lock"
    POLL_INTERVAL = 0.05

    def __init__(self, git_dir: Path) -> None:
        self.path = git_dir / self.FILENAME

    @contextlib.contextmanager
    def hold(self, deadline: Deadline | None = None, blocking: bool = True) -> Iterator[None]:
        """
        Hold the lock for the duration of the block.

        Args:
            deadline: Bounds the wait when blocking
            blocking: Wait for the holder to finish instead of failing

        Raises:
            StoreLockedError: If not blocking and another process holds the lock
            IterationTimeoutError, ShutdownRequested: From the deadline while waiting
        """
        try:
            handle = open(self.path, "a")
        except OSError as e:
            raise classify_os_error(e, f"open lock file {self.path}") from e

        with handle:
            self._acquire(handle.fileno(), deadline, blocking)
            logger.debug("Acquired %s", self.path)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _acquire(self, fd: int, deadline: Deadline | None, blocking: bool) -> None:
        # polled so the wait honours the deadline and shutdown
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if not blocking:
                    raise StoreLockedError(f"{self.path} is held by another gitsync process")
            if deadline is not None:
                deadline.check("lock worktrees")
            time.sleep(self.POLL_INTERVAL)
