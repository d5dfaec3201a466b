"""
Error taxonomy for the synchronization engine.

Every component reports failure by raising a SyncError subclass. The class
carries its own classification:

- Transient: retried on the next scheduled iteration and counted by the
  failure tracker (network blips, lock contention, timeouts, full disks).
- Terminal: no amount of waiting fixes it (malformed reference, missing
  repository, rejected credentials). Escalates straight to fatal.

The sync engine converts these into IterationOutcome values; only the
scheduler decides whether to retry or terminate.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for synchronization failures."""

    terminal: bool = False

    def __init__(self, message: str, *, command: list[str] | None = None, stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr

    @property
    def transient(self) -> bool:
        """Whether waiting for the next iteration may fix this error."""
        return not self.terminal


class TransientError(SyncError):
    """Failure expected to clear up on a later iteration."""

    pass


class GitError(TransientError):
    """A git command failed for a reason not otherwise classified."""

    pass


class NetworkError(TransientError):
    """The remote could not be reached or dropped the connection."""

    pass


class ReferenceNotFoundError(TransientError):
    """The remote has no reference or object matching the request."""

    pass


class IterationTimeoutError(TransientError):
    """The per-iteration deadline elapsed before the iteration finished."""

    pass


class ResourceError(TransientError):
    """Local filesystem failure (disk full, permission denied, read-only)."""

    pass


class WorktreeError(TransientError):
    """A worktree could not be materialized, validated or removed."""

    pass


class PublicationError(TransientError):
    """The publication pointer could not be swapped."""

    pass


class StoreLockedError(TransientError):
    """Another gitsync process is changing the worktrees under the same root."""

    pass


class TerminalError(SyncError):
    """Failure that requires a configuration change to resolve."""

    terminal = True


class InvalidReferenceError(TerminalError):
    """The reference expression is syntactically invalid."""

    pass


class AuthError(TerminalError):
    """Credentials could not be obtained or were rejected by the remote."""

    pass


class RepositoryNotFoundError(TerminalError):
    """The remote repository does not exist."""

    pass


class ShutdownRequested(Exception):
    """Raised inside an iteration once the process has been asked to stop."""

    pass


__all__ = [
    "AuthError",
    "GitError",
    "InvalidReferenceError",
    "IterationTimeoutError",
    "NetworkError",
    "PublicationError",
    "ReferenceNotFoundError",
    "RepositoryNotFoundError",
    "ResourceError",
    "ShutdownRequested",
    "StoreLockedError",
    "SyncError",
    "TerminalError",
    "TransientError",
    "WorktreeError",
]
