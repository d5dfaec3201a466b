"""
Hook dispatcher: asynchronous, retried delivery of publication notices.

Each registered hook gets one daemon worker thread. ``dispatch()`` creates
one HookRecord per hook and hands it to that hook's worker without
blocking, so a slow or failing hook never stalls the sync loop or another
hook.

A worker owns the record it is delivering. When a newer record arrives
while an older one is still waiting or between retries, the older one is
abandoned as superseded: only the newest published content is worth
announcing. Failed attempts are retried with the HookRetryConfig backoff
until acknowledged, out of attempts, or the dispatcher is stopped.
Exhausted records are reported as warnings and never affect sync health.

Usage:
    >>> dispatcher = HookDispatcher(hooks, HookRetryConfig())
    >>> dispatcher.start()
    >>> records = dispatcher.dispatch(identifier, worktree_path)
    >>> dispatcher.wait(records, timeout=30)
    >>> dispatcher.stop()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import wait as wait_futures
from pathlib import Path
from types import TracebackType

import httpx

from gitsync.core.config.models import ExecHookConfig, HookRetryConfig, HookSpec
from gitsync.core.hooks.exechook import ExecHook
from gitsync.core.hooks.models import DeliveryState, Hook, HookRecord
from gitsync.core.hooks.webhook import Webhook

logger = logging.getLogger(__name__)


def create_hooks(
    specs: Iterable[HookSpec],
    link_path: Path,
    client: httpx.Client | None = None,
) -> list[Hook]:
    """
    Build hook actions from their configuration.

    Args:
        specs: Hook configurations
        link_path: Publication link (passed to exec hooks)
        client: Shared HTTP client for webhooks

    Returns:
        List of hooks in configuration order
    """
    hooks: list[Hook] = []
    for spec in specs:
        if isinstance(spec, ExecHookConfig):
            hooks.append(ExecHook(spec, link_path))
        else:
            hooks.append(Webhook(spec, client))
    return hooks


class _HookWorker:
    """Delivery loop for a single hook."""

    def __init__(self, hook: Hook, retry: HookRetryConfig) -> None:
        self.hook = hook
        self.retry = retry
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._pending: HookRecord | None = None
        self._stopping = False
        self._thread = threading.Thread(
            target=self._run,
            name=f"hook-{hook.name}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def submit(self, record: HookRecord) -> None:
        with self._lock:
            if self._stopping:
                record.finish(DeliveryState.ABANDONED, "dispatcher stopped")
                return
            if self._pending is not None:
                self._supersede(self._pending)
            self._pending = record
        self._wake.set()

    def stop(self) -> None:
        with self._lock:
            self._stopping = True
        self._wake.set()

    def join(self, timeout: float | None) -> bool:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def abandon_pending(self, reason: str) -> None:
        with self._lock:
            record, self._pending = self._pending, None
        if record is not None:
            record.finish(DeliveryState.ABANDONED, reason)

    def _supersede(self, record: HookRecord) -> None:
        logger.info(f"{self.hook.name}: delivery for {record.identifier} superseded")
        record.finish(DeliveryState.ABANDONED, "superseded")

    def _next(self) -> HookRecord | None:
        self._wake.wait()
        with self._lock:
            self._wake.clear()
            record, self._pending = self._pending, None
            return record

    def _run(self) -> None:
        while True:
            record = self._next()
            if record is not None:
                try:
                    self._deliver(record)
                except Exception:
                    logger.exception(f"{self.hook.name}: unexpected error delivering hook")
                    record.finish(DeliveryState.ABANDONED, "internal error")
            with self._lock:
                if self._stopping:
                    break
        self.abandon_pending("dispatcher stopped")

    def _interrupted(self, record: HookRecord) -> bool:
        """Abandon ``record`` if a newer one arrived or we are stopping."""
        with self._lock:
            if self._stopping:
                record.finish(DeliveryState.ABANDONED, "dispatcher stopped")
                return True
            if self._pending is not None:
                self._supersede(record)
                return True
        return False

    def _deliver(self, record: HookRecord) -> None:
        for attempt in range(self.retry.max_attempts):
            if self._interrupted(record):
                return

            record.attempts += 1
            result = self.hook.deliver(record)
            if result.success:
                logger.info(
                    f"{self.hook.name}: delivered {record.identifier} "
                    f"(attempt {record.attempts}, {result.duration_seconds:.2f}s)"
                )
                record.finish(DeliveryState.SUCCEEDED)
                return

            if attempt + 1 >= self.retry.max_attempts:
                logger.warning(
                    f"{self.hook.name}: attempt {record.attempts} failed: {result.error_message}"
                )
                break

            delay = self.retry.calculate_delay(attempt)
            logger.warning(
                f"{self.hook.name}: attempt {record.attempts} failed: "
                f"{result.error_message}; retrying in {delay:.1f}s"
            )
            # Woken early by a newer record or stop(); re-checked at loop top
            self._wake.wait(delay)

        logger.warning(
            f"{self.hook.name}: giving up on {record.identifier} after {record.attempts} attempts"
        )
        record.finish(DeliveryState.ABANDONED, "retries exhausted")


class HookDispatcher:
    """
    Delivers publication notices to all registered hooks.

    Can be used as a context manager; leaving the block stops the workers.

    Attributes:
        hooks: Registered hooks
        retry: Retry policy shared by all hooks
    """

    def __init__(self, hooks: Sequence[Hook], retry: HookRetryConfig | None = None) -> None:
        self.hooks = list(hooks)
        self.retry = retry or HookRetryConfig()
        self._workers = [_HookWorker(hook, self.retry) for hook in self.hooks]
        self._records: list[HookRecord] = []
        self._started = False
        self._stopped = False

    def start(self) -> None:
        """Start one worker thread per hook."""
        if self._started:
            return
        for worker in self._workers:
            worker.start()
        self._started = True

    def dispatch(self, identifier: str, worktree_path: Path) -> list[HookRecord]:
        """
        Queue one delivery per hook for a publication.

        Never blocks on delivery.

        Args:
            identifier: Published commit hash
            worktree_path: Published worktree directory

        Returns:
            The created records (one per hook)

        Raises:
            RuntimeError: If the dispatcher was not started or already stopped
        """
        if not self._started or self._stopped:
            raise RuntimeError("Hook dispatcher is not running")

        records = []
        for worker in self._workers:
            record = HookRecord(
                hook_name=worker.hook.name,
                identifier=identifier,
                worktree_path=worktree_path,
            )
            worker.submit(record)
            records.append(record)

        self._records = [r for r in self._records if not r.done] + records
        if records:
            logger.debug(f"Dispatched {len(records)} hook(s) for {identifier}")
        return records

    def wait(self, records: Iterable[HookRecord] | None = None, timeout: float | None = None) -> bool:
        """
        Wait for deliveries to reach a final state.

        Args:
            records: Records to wait for (defaults to all outstanding ones)
            timeout: Maximum seconds to wait

        Returns:
            True if every record finished within the timeout
        """
        pending = list(self._records if records is None else records)
        if not pending:
            return True
        _, not_done = wait_futures([r.future for r in pending], timeout=timeout)
        return not not_done

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop all workers, abandoning outstanding deliveries.

        Backoff waits are interrupted immediately; an attempt already in
        flight is given up to ``timeout`` seconds to finish.
        """
        if self._stopped:
            return
        self._stopped = True
        for worker in self._workers:
            worker.stop()
        for worker in self._workers:
            if not worker.join(timeout):
                logger.warning(f"{worker.hook.name}: still delivering after {timeout}s, leaving it")
            worker.abandon_pending("dispatcher stopped")
        for hook in self.hooks:
            if isinstance(hook, Webhook):
                hook.close()

    def __enter__(self) -> HookDispatcher:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
