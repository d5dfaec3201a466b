"""
Sync engine: one pass of resolve, fetch, materialize, publish, notify.

The engine performs a single iteration and reports it as an
IterationOutcome. It never decides whether to retry or exit; that belongs
to the SyncScheduler, which owns the failure tracker.

Per iteration:

    resolve ref -> identifier
    identifier already published and intact?  -> success(changed=False)
    fetch identifier unless present
    materialize worktree for identifier
    retarget publication link                   (the only visible step)
    release previous worktree, collect stale ones
    (materialize through collect hold the StoreLock)
    dispatch hooks                              -> success(changed=True)

Any step may raise a SyncError; terminal errors become fatal outcomes and
everything else a transient failure. The previous publication stays valid
whenever an iteration fails before the retarget.
"""

import logging
import time

from gitsync.core.config.models import SyncTarget
from gitsync.core.deadline import Deadline
from gitsync.core.errors import ShutdownRequested, SyncError
from gitsync.core.hooks.dispatcher import HookDispatcher
from gitsync.core.hooks.models import HookRecord
from gitsync.core.publish.link import PublicationPoint
from gitsync.core.store.adapter import ContentStore
from gitsync.core.sync.models import IterationOutcome
from gitsync.core.worktree.lock import StoreLock
from gitsync.core.worktree.manager import Worktree, WorktreeStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Executes sync iterations for a single target.

    Example:
        >>> engine = SyncEngine(target, store, worktrees, publication, dispatcher)
        >>> engine.start()
        >>> outcome = engine.run_iteration(Deadline(120))
        >>> outcome.changed
        True
    """

    def __init__(
        self,
        target: SyncTarget,
        content_store: ContentStore,
        worktrees: WorktreeStore,
        publication: PublicationPoint,
        dispatcher: HookDispatcher | None = None,
    ):
        self.target = target
        self.content_store = content_store
        self.worktrees = worktrees
        self.publication = publication
        self.dispatcher = dispatcher
        self._published: Worktree | None = None
        self.lock = StoreLock(content_store.git_dir)

    @property
    def published(self) -> Worktree | None:
        """Worktree published by this process (or adopted at start)."""
        return self._published

    def start(self) -> None:
        """
        Adopt the publication left by a previous process, if any.

        The adopted worktree is reserved so collect() keeps it until it is
        superseded.

        Raises:
            SyncError: If the object store cannot be opened
        """
        self.content_store.ensure_initialized()
        path = self.publication.current_path()
        if path is None:
            return
        worktree = self.worktrees.adopt(path)
        if worktree is None:
            logger.warning(f"Publication link points at unknown directory {path}")
            return
        self.worktrees.reserve(worktree)
        self._published = worktree
        logger.info(f"Resuming with {worktree.identifier} published at {path}")

    def close(self) -> None:
        """Drop the reservation on the published worktree."""
        if self._published is not None:
            self.worktrees.release(self._published)
            self._published = None

    def run_iteration(self, deadline: Deadline, notify_unchanged: bool = False) -> IterationOutcome:
        """
        Perform one sync iteration.

        Args:
            deadline: Budget and cancellation for this iteration
            notify_unchanged: Deliver hooks even if nothing was republished

        Returns:
            IterationOutcome describing the iteration

        Raises:
            ShutdownRequested: If shutdown was requested mid-iteration
        """
        started = time.monotonic()
        try:
            identifier, changed = self._sync(deadline)
        except ShutdownRequested:
            raise
        except SyncError as e:
            duration = time.monotonic() - started
            if e.terminal:
                return IterationOutcome.fatal(e, duration_seconds=duration)
            return IterationOutcome.transient(e, duration_seconds=duration)

        records: tuple[HookRecord, ...] = ()
        if (changed or notify_unchanged) and self._published is not None:
            records = self._notify(self._published)

        return IterationOutcome.success(
            identifier,
            changed,
            duration_seconds=time.monotonic() - started,
            hook_records=records,
        )

    def _sync(self, deadline: Deadline) -> tuple[str, bool]:
        deadline.check("resolve")
        identifier = self.content_store.resolve(self.target.ref, deadline)
        logger.debug(f"{self.target.ref} resolved to {identifier}")

        current = self._published
        if current is not None and current.identifier == identifier:
            if self.worktrees.is_intact(current.path, identifier, deadline):
                return identifier, False
            logger.warning(f"Published worktree {current.path} is damaged, rebuilding")

        if not self.content_store.is_present(identifier, deadline):
            self.content_store.fetch(identifier, self.target.depth, deadline)

        with self.lock.hold(deadline):
            worktree = self.worktrees.materialize(identifier, deadline)
            if current is not None and current.path == worktree.path:
                return identifier, False

            deadline.check("publish")
            self._publish(worktree)
            self._collect(deadline)
        return identifier, True

    def _publish(self, worktree: Worktree) -> None:
        self.worktrees.reserve(worktree)
        try:
            self.publication.retarget(worktree)
        except SyncError:
            self.worktrees.release(worktree)
            raise

        previous, self._published = self._published, worktree
        if previous is not None:
            self.worktrees.release(previous)

    def _collect(self, deadline: Deadline) -> None:
        """Remove stale worktrees; failures here do not undo the publication."""
        try:
            removed = self.worktrees.collect(deadline)
        except (SyncError, ShutdownRequested) as e:
            logger.warning(f"Garbage collection failed, will retry next sync: {e}")
            return
        if removed:
            logger.info(f"Removed {len(removed)} stale worktree(s)")

    def _notify(self, worktree: Worktree) -> tuple[HookRecord, ...]:
        if self.dispatcher is None:
            return ()
        return tuple(self.dispatcher.dispatch(worktree.identifier, worktree.path))
