"""
Sync scheduler: the top-level control loop.

The scheduler runs engine iterations strictly one after another. Each
iteration gets a fresh Deadline bounded by the sync timeout and tied to
the shutdown event. Iterations start every ``period`` seconds measured
start to start; an iteration that overruns the period is followed
immediately by the next one, never overlapped.

The scheduler is the single place that turns outcomes into decisions:

- success resets the failure tracker
- transient failure is counted and may become fatal
- fatal (terminal error or threshold exceeded) ends the run

Two modes:

- continuous: repeat until fatal or shutdown
- one-shot: exactly one iteration, then wait (bounded) for its hooks
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from gitsync.core.deadline import Deadline
from gitsync.core.errors import ShutdownRequested
from gitsync.core.failures import FailureState, FailureTracker
from gitsync.core.hooks.dispatcher import HookDispatcher
from gitsync.core.hooks.models import DeliveryState
from gitsync.core.sync.engine import SyncEngine
from gitsync.core.sync.metrics import SyncMetrics
from gitsync.core.sync.models import IterationOutcome, OutcomeKind, RunResult, RunStatus

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Drives the sync engine on a fixed period.

    Owns the failure tracker, the shutdown event and the flag recording
    whether hooks have been delivered since the process started.

    Example:
        >>> scheduler = SyncScheduler(engine, FailureTracker(3), period=10, timeout=120)
        >>> result = scheduler.run()
        >>> result.status
        <RunStatus.STOPPED: 'stopped'>
    """

    def __init__(
        self,
        engine: SyncEngine,
        tracker: FailureTracker,
        *,
        period: float,
        timeout: float | None,
        one_time: bool = False,
        dispatcher: HookDispatcher | None = None,
        hook_wait_timeout: float | None = None,
        stop_event: threading.Event | None = None,
        metrics: SyncMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            engine: Engine performing the iterations
            tracker: Failure tracker (owned by the scheduler from now on)
            period: Seconds between iteration starts
            timeout: Seconds allowed per iteration
            one_time: Run a single iteration and return
            dispatcher: Hook dispatcher, waited on in one-shot mode
            hook_wait_timeout: Bound on that wait
            stop_event: Event signalling shutdown (created if omitted)
            metrics: Prometheus metrics updated after every iteration
            clock: Monotonic clock
        """
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.engine = engine
        self.tracker = tracker
        self.period = period
        self.timeout = timeout
        self.one_time = one_time
        self.dispatcher = dispatcher
        self.hook_wait_timeout = hook_wait_timeout
        self._stop = stop_event or threading.Event()
        self.metrics = metrics
        self._clock = clock
        self._hooks_primed = False

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Ask the loop to stop; interrupts the period wait and the current iteration."""
        self._stop.set()

    def run_once(self) -> IterationOutcome:
        """
        Run one iteration and record its outcome.

        Returns:
            The iteration outcome

        Raises:
            ShutdownRequested: If shutdown interrupted the iteration
        """
        deadline = Deadline(self.timeout, cancel=self._stop, clock=self._clock)
        outcome = self.engine.run_iteration(deadline, notify_unchanged=not self._hooks_primed)
        self._record(outcome)
        return outcome

    def _record(self, outcome: IterationOutcome) -> FailureState:
        if self.metrics is not None:
            self.metrics.observe(outcome)

        if outcome.kind == OutcomeKind.SUCCESS:
            state = self.tracker.record_success()
            self._hooks_primed = True
            logger.info(
                "Sync %s: %s (%s) in %.2fs",
                "updated" if outcome.changed else "unchanged",
                outcome.identifier,
                f"{len(outcome.hook_records)} hook(s) notified",
                outcome.duration_seconds,
            )
            return state

        error = outcome.error or RuntimeError("unknown failure")
        if outcome.kind == OutcomeKind.FATAL:
            state = self.tracker.escalate(error)
            logger.error("Sync failed with a non-retryable error: %s", error)
            return state

        state = self.tracker.record_failure(error)
        limit = "unlimited" if state.max_failures < 0 else state.max_failures
        logger.error(
            "Sync failed (%d consecutive, max %s) after %.2fs: %s",
            state.consecutive_failures,
            limit,
            outcome.duration_seconds,
            error,
        )
        return state

    def run(self) -> RunResult:
        """
        Run until fatal failure or shutdown (or once, in one-shot mode).

        Returns:
            RunResult describing how the run ended
        """
        iterations = 0
        last: IterationOutcome | None = None

        while not self.stopping:
            started = self._clock()
            try:
                last = self.run_once()
            except ShutdownRequested as e:
                logger.info("Sync interrupted: %s", e)
                break
            iterations += 1

            if self.one_time:
                return self._finish_once(last)

            state = self.tracker.state()
            if state.is_fatal:
                logger.error("Giving up after %d consecutive failure(s)", state.consecutive_failures)
                return RunResult(RunStatus.FATAL, iterations, last, state)

            wait = self.period - (self._clock() - started)
            if wait > 0 and self._stop.wait(wait):
                break

        if self.one_time:
            # the single sync never completed
            return RunResult(RunStatus.FAILED, iterations, last, self.tracker.state())
        return RunResult(RunStatus.STOPPED, iterations, last, self.tracker.state())

    def _finish_once(self, outcome: IterationOutcome) -> RunResult:
        """One-shot result: only a terminal error is fatal, other failures just fail."""
        state = self.tracker.state()
        if outcome.kind == OutcomeKind.FATAL:
            return RunResult(RunStatus.FATAL, 1, outcome, state)
        if not outcome.succeeded:
            return RunResult(RunStatus.FAILED, 1, outcome, state)
        self._await_hooks(outcome)
        return RunResult(RunStatus.SUCCEEDED, 1, outcome, state)

    def _await_hooks(self, outcome: IterationOutcome) -> None:
        """Give one-shot hook deliveries a chance to finish before exit."""
        if self.dispatcher is None or not outcome.hook_records:
            return
        if not self.dispatcher.wait(outcome.hook_records, timeout=self.hook_wait_timeout):
            logger.warning("Hooks still running after %ss, exiting anyway", self.hook_wait_timeout)
        for record in outcome.hook_records:
            if record.state == DeliveryState.ABANDONED:
                logger.warning("Hook %s was not delivered: %s", record.hook_name, record.reason)
