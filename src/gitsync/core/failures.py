"""
Consecutive-failure tracking for the sync loop.

The FailureTracker implements a small state machine:

    Healthy --failure--> Degraded(1) --failure--> Degraded(2) ... --> Fatal

Any success returns to Healthy. Once the count of consecutive failures
exceeds ``max_failures`` the tracker is Fatal and stays there; the process
is expected to exit. The first iteration is counted like every other one.
Terminal errors skip the count and escalate immediately.

Example:
    >>> tracker = FailureTracker(max_failures=2)
    >>> tracker.record_failure(NetworkError("down")).health
    <HealthState.DEGRADED: 'degraded'>
    >>> tracker.record_failure(NetworkError("down")).health
    <HealthState.DEGRADED: 'degraded'>
    >>> tracker.record_failure(NetworkError("down")).health
    <HealthState.FATAL: 'fatal'>
"""

from dataclasses import dataclass
from enum import Enum


class HealthState(str, Enum):
    """Health of the sync loop."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FATAL = "fatal"


@dataclass(frozen=True)
class FailureState:
    """
    Snapshot of the tracker after an outcome was recorded.

    Attributes:
        health: Current health state
        consecutive_failures: Failures since the last success
        max_failures: Configured threshold (-1 means never escalate)
        last_error: Most recent failure, if any
    """

    health: HealthState
    consecutive_failures: int
    max_failures: int
    last_error: BaseException | None = None

    @property
    def is_fatal(self) -> bool:
        return self.health == HealthState.FATAL


class FailureTracker:
    """
    Counts consecutive failed iterations and decides when they become fatal.

    Owned by the scheduler; only mutated from the loop thread.
    """

    def __init__(self, max_failures: int = 0) -> None:
        """
        Initialize the tracker.

        Args:
            max_failures: Consecutive failures tolerated (-1 disables escalation)

        Raises:
            ValueError: If max_failures < -1
        """
        if max_failures < -1:
            raise ValueError(f"max_failures must be >= -1, got {max_failures}")
        self.max_failures = max_failures
        self._consecutive = 0
        self._health = HealthState.HEALTHY
        self._last_error: BaseException | None = None

    def state(self) -> FailureState:
        return FailureState(
            health=self._health,
            consecutive_failures=self._consecutive,
            max_failures=self.max_failures,
            last_error=self._last_error,
        )

    def record_success(self) -> FailureState:
        """Reset to Healthy."""
        self._require_not_fatal()
        self._consecutive = 0
        self._health = HealthState.HEALTHY
        self._last_error = None
        return self.state()

    def record_failure(self, error: BaseException) -> FailureState:
        """
        Count one transient failure.

        Args:
            error: The failure cause

        Returns:
            New state; Fatal once the count exceeds max_failures
        """
        self._require_not_fatal()
        self._consecutive += 1
        self._last_error = error
        if self.max_failures >= 0 and self._consecutive > self.max_failures:
            self._health = HealthState.FATAL
        else:
            self._health = HealthState.DEGRADED
        return self.state()

    def escalate(self, error: BaseException) -> FailureState:
        """Move straight to Fatal (terminal errors)."""
        self._consecutive += 1
        self._last_error = error
        self._health = HealthState.FATAL
        return self.state()

    def _require_not_fatal(self) -> None:
        if self._health == HealthState.FATAL:
            raise RuntimeError("Failure tracker is fatal; no further outcomes can be recorded")
