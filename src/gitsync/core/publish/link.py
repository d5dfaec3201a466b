"""
Publication point backed by a symbolic link.

Readers follow ``<root>/<link>``, a relative symlink into ``.worktrees/``.
Retargeting never edits a directory in place: a new link is created next to
the old one and renamed over it, and rename is atomic on POSIX filesystems.
A reader therefore resolves either the previous worktree or the new one.

Example:
    >>> point = PublicationPoint(Path("/git"), "app")
    >>> previous = point.retarget(worktree)
    >>> point.current_target()
    'e3b0c44298fc1c149afbf4c8996fb92427ae41e4'
"""

import logging
import os
from pathlib import Path

from gitsync.core.errors import PublicationError
from gitsync.core.store.adapter import is_full_identifier
from gitsync.core.worktree.manager import Worktree

logger = logging.getLogger(__name__)


class PublicationPoint:
    """
    The single pointer external readers dereference.

    Attributes:
        root: Sync root directory
        link_name: Name of the link directly under root
    """

    def __init__(self, root: Path, link_name: str):
        if not link_name or "/" in link_name or link_name in (".", ".."):
            raise ValueError(f"Link name must be a bare name, got {link_name!r}")
        self.root = Path(root).absolute()
        self.link_name = link_name

    @property
    def link_path(self) -> Path:
        return self.root / self.link_name

    @property
    def _tmp_path(self) -> Path:
        return self.root / f".{self.link_name}.tmp"

    def current_path(self) -> Path | None:
        """
        Directory the link currently points at.

        Returns:
            Absolute path of the published worktree, or None before the
            first publication
        """
        try:
            target = os.readlink(self.link_path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PublicationError(f"Cannot read publication link {self.link_path}: {e}") from e
        return Path(os.path.normpath(self.root / target))

    def current_target(self) -> str | None:
        """Identifier of the published worktree, or None if nothing is published."""
        path = self.current_path()
        if path is None:
            return None
        identifier = path.name.split("-", 1)[0]
        return identifier if is_full_identifier(identifier) else None

    def retarget(self, worktree: Worktree) -> Path | None:
        """
        Atomically point the link at ``worktree``.

        Args:
            worktree: Fully materialized worktree to publish

        Returns:
            Path of the previously published worktree, if any

        Raises:
            PublicationError: If the link could not be swapped; the previous
                publication is left untouched
        """
        previous = self.current_path()
        relative = os.path.relpath(worktree.path, self.root)
        tmp = self._tmp_path

        try:
            # Leftover from an interrupted swap
            if tmp.is_symlink() or tmp.exists():
                tmp.unlink()
            os.symlink(relative, tmp)
            os.replace(tmp, self.link_path)
        except OSError as e:
            raise PublicationError(
                f"Failed to publish {worktree.identifier} at {self.link_path}: {e}"
            ) from e

        logger.info(f"Published {worktree.identifier} at {self.link_path} -> {relative}")
        return previous
