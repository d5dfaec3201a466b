"""
Tests for SyncScheduler.

The engine is replaced by a scripted fake so the tests exercise only the
loop: failure accounting, one-shot mode, hook priming and shutdown.
"""

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gitsync.core.errors import AuthError, NetworkError, ShutdownRequested
from gitsync.core.failures import FailureTracker, HealthState
from gitsync.core.hooks import HookRecord
from gitsync.core.sync import IterationOutcome, RunStatus, SyncScheduler
from gitsync.core.sync.metrics import SyncMetrics

HASH = "d" * 40


def ok(changed=True, hook_records=()):
    return IterationOutcome.success(HASH, changed, hook_records=hook_records)


def transient():
    return IterationOutcome.transient(NetworkError("connection reset"))


def fatal():
    return IterationOutcome.fatal(AuthError("authentication failed"))


class FakeEngine:
    """Returns scripted outcomes, then stops the scheduler."""

    def __init__(self, script):
        self.script = list(script)
        self.scheduler = None
        self.deadlines = []
        self.notify_flags = []

    def run_iteration(self, deadline, notify_unchanged=False):
        self.deadlines.append(deadline)
        self.notify_flags.append(notify_unchanged)
        if not self.script:
            self.scheduler.request_stop()
            return ok(changed=False)
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


def make_scheduler(script, max_failures=0, **kwargs):
    engine = FakeEngine(script)
    kwargs.setdefault("period", 0.001)
    kwargs.setdefault("timeout", 30)
    scheduler = SyncScheduler(engine, FailureTracker(max_failures), **kwargs)
    engine.scheduler = scheduler
    return scheduler, engine


class TestFailureThreshold:
    """Test how outcomes drive the failure tracker."""

    def test_fatal_after_max_plus_one_failures(self):
        scheduler, engine = make_scheduler([transient()] * 5, max_failures=2)

        result = scheduler.run()

        assert result.status == RunStatus.FATAL
        assert result.iterations == 3
        assert result.failure_state.consecutive_failures == 3
        assert isinstance(result.error, NetworkError)

    def test_success_resets_count(self):
        script = [transient(), transient(), ok(), transient(), transient()]
        scheduler, engine = make_scheduler(script, max_failures=2)

        result = scheduler.run()

        assert result.status == RunStatus.STOPPED
        assert result.iterations == 6
        assert result.failure_state.health == HealthState.HEALTHY

    def test_terminal_error_is_immediately_fatal(self):
        scheduler, engine = make_scheduler([fatal(), ok()], max_failures=-1)

        result = scheduler.run()

        assert result.status == RunStatus.FATAL
        assert result.iterations == 1
        assert isinstance(result.error, AuthError)

    def test_unlimited_failures(self):
        scheduler, engine = make_scheduler([transient()] * 20, max_failures=-1)

        result = scheduler.run()

        assert result.status == RunStatus.STOPPED
        assert result.iterations == 21


class TestOneShot:
    """Test one-shot mode."""

    def test_success(self):
        scheduler, engine = make_scheduler([ok(), ok()], one_time=True)

        result = scheduler.run()

        assert result.status == RunStatus.SUCCEEDED
        assert result.iterations == 1
        assert len(engine.deadlines) == 1

    def test_transient_failure(self):
        scheduler, engine = make_scheduler([transient()], one_time=True)

        result = scheduler.run()

        assert result.status == RunStatus.FAILED
        assert result.iterations == 1

    def test_terminal_failure(self):
        scheduler, engine = make_scheduler([fatal()], one_time=True)

        assert scheduler.run().status == RunStatus.FATAL

    def test_waits_for_hooks(self):
        record = HookRecord(hook_name="h", identifier=HASH, worktree_path=Path("/w"))
        dispatcher = MagicMock()
        dispatcher.wait.return_value = True
        scheduler, engine = make_scheduler(
            [ok(hook_records=(record,))],
            one_time=True,
            dispatcher=dispatcher,
            hook_wait_timeout=12,
        )

        result = scheduler.run()

        assert result.status == RunStatus.SUCCEEDED
        dispatcher.wait.assert_called_once_with((record,), timeout=12)

    def test_hook_failure_does_not_fail_run(self):
        record = HookRecord(hook_name="h", identifier=HASH, worktree_path=Path("/w"))
        dispatcher = MagicMock()
        dispatcher.wait.return_value = False
        scheduler, engine = make_scheduler(
            [ok(hook_records=(record,))], one_time=True, dispatcher=dispatcher
        )

        assert scheduler.run().status == RunStatus.SUCCEEDED


class TestHookPriming:
    """Hooks fire for unchanged content until the first success."""

    def test_notify_unchanged_until_first_success(self):
        scheduler, engine = make_scheduler(
            [transient(), ok(changed=False), ok(changed=False)], max_failures=2
        )

        scheduler.run()

        assert engine.notify_flags[:3] == [True, True, False]
        assert not any(engine.notify_flags[2:])


class TestShutdown:
    """Test stop requests."""

    def test_stop_before_run(self):
        scheduler, engine = make_scheduler([ok()])
        scheduler.request_stop()

        result = scheduler.run()

        assert result.status == RunStatus.STOPPED
        assert result.iterations == 0

    def test_shutdown_during_iteration(self):
        scheduler, engine = make_scheduler([ok(), ShutdownRequested("signal")])

        result = scheduler.run()

        assert result.status == RunStatus.STOPPED
        assert result.iterations == 1
        assert result.last_outcome.succeeded

    def test_one_time_interrupted_mid_sync_fails(self):
        scheduler, engine = make_scheduler([ShutdownRequested("signal")], one_time=True)

        result = scheduler.run()

        assert result.status == RunStatus.FAILED
        assert result.iterations == 0
        assert result.last_outcome is None

    def test_one_time_stopped_before_start_fails(self):
        scheduler, engine = make_scheduler([ok()], one_time=True)
        scheduler.request_stop()

        result = scheduler.run()

        assert result.status == RunStatus.FAILED
        assert engine.deadlines == []

    def test_stop_interrupts_period_wait(self):
        scheduler, engine = make_scheduler([ok(), ok()], period=60)
        timer = threading.Timer(0.2, scheduler.request_stop)

        started = time.monotonic()
        timer.start()
        try:
            result = scheduler.run()
        finally:
            timer.cancel()

        assert result.status == RunStatus.STOPPED
        assert result.iterations == 1
        assert time.monotonic() - started < 10

    def test_deadline_carries_timeout_and_cancellation(self):
        scheduler, engine = make_scheduler([ok()], timeout=45)

        scheduler.run()

        deadline = engine.deadlines[0]
        assert deadline.timeout == 45
        assert deadline.cancelled


class TestValidation:
    def test_period_must_be_positive(self):
        with pytest.raises(ValueError):
            make_scheduler([], period=0)


class TestMetrics:
    """Every recorded iteration is counted by status."""

    def test_outcomes_counted_by_status(self):
        metrics = SyncMetrics()
        scheduler, engine = make_scheduler(
            [ok(), ok(changed=False), transient()], max_failures=2, metrics=metrics
        )

        scheduler.run()

        sample = metrics.registry.get_sample_value
        assert sample("git_sync_count_total", {"status": "success"}) == 1
        # the fake engine reports one more unchanged sync when its script runs out
        assert sample("git_sync_count_total", {"status": "noop"}) == 2
        assert sample("git_sync_count_total", {"status": "error"}) == 1
        assert sample("git_sync_duration_seconds_count", {"status": "error"}) == 1

    def test_exposition_names(self):
        metrics = SyncMetrics()
        metrics.observe(ok())

        text = metrics.render().decode()

        assert 'git_sync_count_total{status="success"} 1.0' in text
        assert "git_sync_duration_seconds_sum" in text
