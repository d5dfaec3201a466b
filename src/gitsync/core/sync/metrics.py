"""
Prometheus metrics for the sync loop.

Each SyncMetrics owns its own CollectorRegistry so several runtimes (or
test cases) in one process never collide on metric names.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Summary, generate_latest

from gitsync.core.sync.models import IterationOutcome


class SyncMetrics:
    """
    Sync counters and durations, partitioned by status.

    Status is ``success`` when a new worktree was published, ``noop`` when
    the reference had not moved and ``error`` for any failed iteration.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.sync_count = Counter(
            "git_sync_count",
            "How many git syncs completed, partitioned by status",
            ["status"],
            registry=self.registry,
        )
        self.sync_duration = Summary(
            "git_sync_duration_seconds",
            "Summary of git sync durations",
            ["status"],
            registry=self.registry,
        )

    @staticmethod
    def status_of(outcome: IterationOutcome) -> str:
        if not outcome.succeeded:
            return "error"
        return "success" if outcome.changed else "noop"

    def observe(self, outcome: IterationOutcome) -> None:
        status = self.status_of(outcome)
        self.sync_count.labels(status=status).inc()
        self.sync_duration.labels(status=status).observe(outcome.duration_seconds)

    def render(self) -> bytes:
        """Current values in the Prometheus text exposition format."""
        return generate_latest(self.registry)
