"""
gitsync - keep a directory in sync with a remote git reference

Runs as an unattended sidecar: resolves a branch, tag or commit on a remote,
materializes it into a worktree and atomically republishes a symlink to it.
"""

__version__ = "0.1.0"

from gitsync.core.config.models import SyncConfig, SyncTarget

__all__ = ["SyncConfig", "SyncTarget", "__version__"]
