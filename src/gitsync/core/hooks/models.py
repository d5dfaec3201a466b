"""
Hook data models for gitsync.

A hook is notified after every publication of new content (and once after
the first successful sync of a process). Each notification is a HookRecord:
one per registered hook per publication, driven by exactly one delivery
worker, and observable by the rest of the process through its future.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field


class DeliveryState(str, Enum):
    """Delivery state of a HookRecord."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    ABANDONED = "abandoned"


@dataclass
class HookRecord:
    """
    One delivery of one hook for one published commit.

    Attributes:
        hook_name: Display name of the hook
        identifier: Published commit hash
        worktree_path: Published worktree directory
        state: Current delivery state
        attempts: Delivery attempts made so far
        reason: Why the record was abandoned, if it was
        created_at: When the record was created
        future: Resolves to this record once it leaves PENDING
    """

    hook_name: str
    identifier: str
    worktree_path: Path
    state: DeliveryState = DeliveryState.PENDING
    attempts: int = 0
    reason: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    future: Future[HookRecord] = field(default_factory=Future, repr=False, compare=False)

    @property
    def done(self) -> bool:
        return self.state != DeliveryState.PENDING

    def finish(self, state: DeliveryState, reason: str | None = None) -> None:
        """Move to a final state and resolve the future (first call wins)."""
        if self.done:
            return
        self.state = state
        self.reason = reason
        self.future.set_result(self)


class HookResult(BaseModel):
    """
    Result of a single delivery attempt.

    Captures the success/failure status, output, and timing information
    from one hook invocation.
    """

    success: bool = Field(description="Whether the attempt was acknowledged")
    exit_code: int | None = Field(default=None, description="Exit code of an exec hook")
    status_code: int | None = Field(default=None, description="HTTP status of a webhook")
    output: str = Field(default="", description="Captured output or response body")
    duration_seconds: float = Field(description="Attempt duration")
    timestamp: datetime = Field(default_factory=datetime.now, description="When the attempt ran")
    error_message: str | None = Field(default=None, description="Error message if it failed")

    @property
    def failed(self) -> bool:
        """Check if the attempt failed."""
        return not self.success


class Hook(Protocol):
    """An external action notified of publications."""

    @property
    def name(self) -> str: ...

    def deliver(self, record: HookRecord) -> HookResult:
        """Make one delivery attempt. Must not raise."""
        ...
