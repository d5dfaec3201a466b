"""
Core sync package.

Provides the sync loop, separated from CLI concerns.

Modules:
    models: IterationOutcome and RunResult.
    engine: One sync iteration (resolve, fetch, materialize, publish, notify).
    scheduler: Periodic loop, failure threshold and one-shot mode.
    interrupt: SIGINT/SIGTERM handling for clean shutdown.
    runtime: Builds every collaborator from a SyncConfig.
"""

from gitsync.core.sync.engine import SyncEngine
from gitsync.core.sync.interrupt import InterruptHandler
from gitsync.core.sync.models import IterationOutcome, OutcomeKind, RunResult, RunStatus
from gitsync.core.sync.runtime import SyncRuntime, build_runtime
from gitsync.core.sync.scheduler import SyncScheduler

__all__ = [
    "InterruptHandler",
    "IterationOutcome",
    "OutcomeKind",
    "RunResult",
    "RunStatus",
    "SyncEngine",
    "SyncRuntime",
    "SyncScheduler",
    "build_runtime",
]
