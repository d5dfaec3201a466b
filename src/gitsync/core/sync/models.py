"""
Sync loop outcome models.

- IterationOutcome: result of one pass of the sync engine
- RunResult: final outcome of a scheduler run (one-shot or continuous)

Usage:
    >>> outcome = IterationOutcome.success("e3b0c442...", changed=True)
    >>> outcome.kind
    <OutcomeKind.SUCCESS: 'success'>
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from gitsync.core.failures import FailureState
from gitsync.core.hooks.models import HookRecord


class OutcomeKind(str, Enum):
    """Classification of one sync iteration."""

    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    FATAL = "fatal"


@dataclass(frozen=True)
class IterationOutcome:
    """
    Result of one sync iteration.

    Attributes:
        kind: success, transient failure or fatal
        identifier: Commit the reference resolved to (success only)
        changed: Whether a new worktree was published
        error: Failure cause (failures only)
        duration_seconds: Wall-clock duration of the iteration
        hook_records: Hook deliveries started by this iteration
    """

    kind: OutcomeKind
    identifier: str | None = None
    changed: bool = False
    error: BaseException | None = None
    duration_seconds: float = 0.0
    hook_records: tuple[HookRecord, ...] = field(default=(), compare=False)

    @classmethod
    def success(
        cls,
        identifier: str,
        changed: bool,
        *,
        duration_seconds: float = 0.0,
        hook_records: tuple[HookRecord, ...] = (),
    ) -> IterationOutcome:
        return cls(
            kind=OutcomeKind.SUCCESS,
            identifier=identifier,
            changed=changed,
            duration_seconds=duration_seconds,
            hook_records=hook_records,
        )

    @classmethod
    def transient(cls, error: BaseException, *, duration_seconds: float = 0.0) -> IterationOutcome:
        return cls(kind=OutcomeKind.TRANSIENT_FAILURE, error=error, duration_seconds=duration_seconds)

    @classmethod
    def fatal(cls, error: BaseException, *, duration_seconds: float = 0.0) -> IterationOutcome:
        return cls(kind=OutcomeKind.FATAL, error=error, duration_seconds=duration_seconds)

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


class RunStatus(str, Enum):
    """How a scheduler run ended."""

    SUCCEEDED = "succeeded"  # one-shot iteration succeeded
    FAILED = "failed"  # one-shot iteration failed (not fatal)
    FATAL = "fatal"  # failure threshold exceeded or terminal error
    STOPPED = "stopped"  # shutdown requested


@dataclass
class RunResult:
    """
    Final outcome of a scheduler run.

    Attributes:
        status: How the run ended
        iterations: Iterations performed
        last_outcome: Outcome of the final iteration, if any ran
        failure_state: Failure tracker state at exit
    """

    status: RunStatus
    iterations: int = 0
    last_outcome: IterationOutcome | None = None
    failure_state: FailureState | None = None

    @property
    def error(self) -> BaseException | None:
        return self.last_outcome.error if self.last_outcome else None
