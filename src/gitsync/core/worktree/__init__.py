"""
Worktree store for content-addressed checkouts.

Provides WorktreeStore for materializing commits into worktrees under
<root>/.worktrees, reserving them, and garbage-collecting stale ones, plus
the StoreLock that serializes those changes across processes.
"""

from .lock import StoreLock
from .manager import Worktree, WorktreeStore

__all__ = ["StoreLock", "Worktree", "WorktreeStore"]
