"""
Worktree store implementation.

This module provides the WorktreeStore class for materializing commits into
content-addressed git worktrees, reference-counting them while they are in
use, and garbage-collecting superseded ones.

Layout under the sync root:

    <root>/.git/                  bare object store
    <root>/.worktrees/<hash>/     one worktree per commit

Directories are named after the commit they hold, so an interrupted
materialization leaves behind a directory that is never published and that
the next materialize() of the same commit, or the next collect(), removes.
No separate crash-recovery pass is needed.
"""

import builtins
import logging
import os
import shutil
import stat
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from gitsync.core.config.models import RetentionConfig, SubmodulePolicy
from gitsync.core.deadline import Deadline
from gitsync.core.errors import GitError, SyncError, WorktreeError
from gitsync.core.store.adapter import ContentStore, classify_os_error, is_full_identifier

logger = logging.getLogger(__name__)


@dataclass
class Worktree:
    """
    A complete on-disk checkout of one commit.

    Attributes:
        path: Absolute path to the worktree directory
        identifier: Commit hash the worktree was materialized from
        created_at: When the worktree was created
        in_use: Whether the worktree is currently reserved
    """

    path: Path
    identifier: str
    created_at: datetime
    in_use: bool = False

    @property
    def name(self) -> str:
        return self.path.name


class WorktreeStore:
    """
    Manages the pool of content-addressed worktrees under a sync root.

    Example:
        >>> store = WorktreeStore(content_store)
        >>> worktree = store.materialize(identifier)
        >>> store.reserve(worktree)
        >>> removed = store.collect()
    """

    DIRNAME = ".worktrees"

    def __init__(
        self,
        content_store: ContentStore,
        submodules: SubmodulePolicy = SubmodulePolicy.OFF,
        retention: RetentionConfig | None = None,
        permissions: int | None = None,
    ):
        """
        Initialize the worktree store.

        Args:
            content_store: Object store the worktrees are checked out from
            submodules: Submodule policy applied after checkout
            retention: Garbage collection policy (defaults keep nothing stale)
            permissions: Mode applied recursively to every new worktree
        """
        self.content_store = content_store
        self.submodules = submodules
        self.retention = retention or RetentionConfig()
        self.permissions = permissions
        self.worktree_base = content_store.root / self.DIRNAME
        self._refcounts: dict[Path, int] = {}

    def path_for(self, identifier: str) -> Path:
        """Deterministic directory for a commit."""
        return self.worktree_base / identifier

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve(self, worktree: Worktree) -> None:
        """Protect a worktree from garbage collection (reference counted)."""
        self._acquire(worktree.path)
        worktree.in_use = True

    def release(self, worktree: Worktree) -> None:
        """
        Drop one reservation on a worktree.

        Raises:
            WorktreeError: If the worktree is not reserved
        """
        self._release(worktree.path)
        worktree.in_use = self.is_reserved(worktree.path)

    def is_reserved(self, path: Path) -> bool:
        return self._refcounts.get(path, 0) > 0

    def _acquire(self, path: Path) -> None:
        self._refcounts[path] = self._refcounts.get(path, 0) + 1

    def _release(self, path: Path) -> None:
        count = self._refcounts.get(path, 0)
        if count <= 0:
            raise WorktreeError(f"Worktree is not reserved: {path}")
        if count == 1:
            del self._refcounts[path]
        else:
            self._refcounts[path] = count - 1

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def materialize(self, identifier: str, deadline: Deadline | None = None) -> Worktree:
        """
        Produce a worktree whose contents exactly equal commit ``identifier``.

        An existing intact worktree for the commit is reused after a cheap
        validation. A damaged one is rebuilt; if the damaged one is reserved
        (e.g. currently published) the rebuild goes to a fresh directory so
        the reserved tree is never modified in place.

        Args:
            identifier: Full commit hash (must already be in the object store)
            deadline: Iteration deadline

        Returns:
            The materialized Worktree

        Raises:
            ValueError: If identifier is not a full object name
            WorktreeError: If checkout or validation fails
        """
        if not is_full_identifier(identifier):
            raise ValueError(f"materialize requires a full object name, got {identifier!r}")

        path = self.path_for(identifier)

        if path.exists():
            if self.is_intact(path, identifier, deadline):
                logger.debug("Reusing intact worktree %s", path)
                return self._describe(path, identifier)
            if self.is_reserved(path):
                path = self.worktree_base / f"{identifier}-{time.time_ns()}"
                logger.warning("Reserved worktree for %s is damaged, rebuilding at %s",
                               identifier, path)
            else:
                logger.warning("Removing incomplete worktree %s", path)
                self._remove(path, deadline)

        try:
            self.worktree_base.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise classify_os_error(e, f"create {self.worktree_base}") from e

        # Held until the checkout is verified so collect() never races it
        self._acquire(path)
        try:
            self.content_store.git(
                "worktree", "add", "--detach", "--force", str(path), identifier,
                deadline=deadline,
            )
            self._update_submodules(path, deadline)
            if self.permissions is not None:
                self._apply_permissions(path, deadline)
            if not self.is_intact(path, identifier, deadline):
                raise WorktreeError(f"Worktree {path} does not match {identifier} after checkout")
        except BaseException:
            self._discard(path)
            raise
        finally:
            self._release(path)

        logger.info("Materialized %s at %s", identifier, path)
        return self._describe(path, identifier)

    def _update_submodules(self, path: Path, deadline: Deadline | None) -> None:
        if self.submodules == SubmodulePolicy.OFF or not (path / ".gitmodules").exists():
            return

        args = ["update", "--init"]
        if self.submodules == SubmodulePolicy.RECURSIVE:
            args.append("--recursive")
        else:
            args.extend(["--depth", "1"])
        self.content_store.git("submodule", *args, deadline=deadline, cwd=path, network=True)
        logger.debug("Updated submodules in %s (%s)", path, self.submodules.value)

    def _apply_permissions(self, path: Path, deadline: Deadline | None) -> None:
        # mode changes must not read as local modifications in is_intact()
        self.content_store.git("config", "core.fileMode", "false", deadline=deadline)
        try:
            # children first so a directory mode without x cannot lock us out
            for entry in reversed([path, *path.rglob("*")]):
                if not entry.is_symlink():
                    entry.chmod(self.permissions)
        except OSError as e:
            raise classify_os_error(e, f"change permissions of {path}") from e
        logger.debug("Applied mode %o to %s", self.permissions, path)

    def is_intact(self, path: Path, identifier: str, deadline: Deadline | None = None) -> bool:
        """
        Check that a worktree is complete and checked out at ``identifier``.

        Intact means HEAD names the commit and no tracked file differs from
        it (an interrupted checkout shows up as missing files).
        """
        if not (path / ".git").is_file():
            return False
        try:
            head = self.content_store.git("rev_parse", "HEAD", deadline=deadline, cwd=path)
            if head.strip() != identifier:
                return False
            status = self.content_store.git(
                "status", "--porcelain", "--untracked-files=no", deadline=deadline, cwd=path
            )
        except GitError as e:
            logger.debug("Worktree %s failed validation: %s", path, e)
            return False
        return status.strip() == ""

    def _describe(self, path: Path, identifier: str) -> Worktree:
        try:
            created = datetime.fromtimestamp((path / ".git").stat().st_mtime)
        except OSError:
            created = datetime.now()
        return Worktree(
            path=path,
            identifier=identifier,
            created_at=created,
            in_use=self.is_reserved(path),
        )

    def find(self, path: Path) -> Worktree | None:
        """Describe the worktree at ``path``, or None if it is not one of ours."""
        return next((w for w in self.list() if w.path == path), None)

    def adopt(self, path: Path) -> Worktree | None:
        """
        Describe a published directory even if git no longer lists it.

        Readers may still be inside a directory under the worktree base whose
        registration was lost, so it is treated as a worktree of the commit
        its name carries. Directories outside the base are not ours.
        """
        worktree = self.find(path)
        if worktree is not None:
            return worktree
        if path.parent != self.worktree_base or not path.is_dir():
            return None
        identifier = path.name.split("-", 1)[0]
        logger.warning("Published directory %s is not a registered worktree", path)
        return self._describe(path, identifier if is_full_identifier(identifier) else "")

    # ------------------------------------------------------------------
    # Listing and garbage collection
    # ------------------------------------------------------------------

    def list(self) -> list[Worktree]:
        """
        List worktrees registered with the object store under this root.

        Returns:
            List of Worktree objects

        Raises:
            WorktreeError: If listing worktrees fails
        """
        try:
            output = self.content_store.git("worktree", "list", "--porcelain")
        except SyncError as e:
            raise WorktreeError(f"Failed to list worktrees: {e}") from e

        worktrees: list[Worktree] = []
        current: dict[str, str | bool] = {}

        for line in output.splitlines() + [""]:
            line = line.strip()
            if not line:
                if current:
                    worktree = self._parse_worktree(current)
                    if worktree is not None:
                        worktrees.append(worktree)
                    current = {}
                continue

            if line.startswith("worktree "):
                current["path"] = line[len("worktree ") :]
            elif line.startswith("HEAD "):
                current["commit"] = line[len("HEAD ") :]
            elif line == "bare":
                current["is_bare"] = True

        return worktrees

    def _parse_worktree(self, data: dict[str, str | bool]) -> Worktree | None:
        """Parse a porcelain entry, skipping the bare store and foreign paths."""
        if data.get("is_bare"):
            return None
        path = Path(str(data.get("path", "")))
        if path.parent.resolve() != self.worktree_base.resolve() or not path.exists():
            return None
        return self._describe(self.worktree_base / path.name, str(data.get("commit", "")))

    def collect(self, deadline: Deadline | None = None) -> builtins.list[Path]:
        """
        Remove stale worktrees according to the retention policy.

        Reserved worktrees are never touched. Of the rest, the keep_count
        newest and any younger than min_age_seconds survive. Entries under
        the worktree directory that are not registered worktrees (leftovers
        of an interrupted checkout) are always removed.

        Args:
            deadline: Iteration deadline

        Returns:
            List of removed paths
        """
        if not self.worktree_base.exists():
            return []

        registered = {w.path: w for w in self.list()}
        stale = sorted(
            (w for path, w in registered.items() if not self.is_reserved(path)),
            key=lambda w: w.created_at,
            reverse=True,
        )

        now = datetime.now()
        keep: set[Path] = set()
        for index, worktree in enumerate(stale):
            age = (now - worktree.created_at).total_seconds()
            if index < self.retention.keep_count or age < self.retention.min_age_seconds:
                keep.add(worktree.path)

        removed: list[Path] = []
        for entry in sorted(self.worktree_base.iterdir()):
            if self.is_reserved(entry) or entry in keep:
                continue
            if entry not in registered:
                logger.info("Removing orphaned entry %s", entry)
            else:
                logger.info("Removing stale worktree %s", entry)
            self._delete(entry)
            removed.append(entry)

        if removed:
            self.prune(deadline)
        return removed

    def prune(self, deadline: Deadline | None = None) -> None:
        """
        Prune stale worktree administrative data.

        Equivalent to 'git worktree prune'.
        """
        self.content_store.git("worktree", "prune", deadline=deadline)

    def _remove(self, path: Path, deadline: Deadline | None) -> None:
        self._delete(path)
        self.prune(deadline)

    def _delete(self, path: Path) -> None:
        try:
            if path.is_dir() and not path.is_symlink():
                if self.permissions is not None:
                    self._restore_owner_access(path)
                shutil.rmtree(path)
            else:
                path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise classify_os_error(e, f"remove {path}") from e

    @staticmethod
    def _restore_owner_access(path: Path) -> None:
        """Make directories removable again after a restrictive mode was applied."""
        path.chmod(path.stat().st_mode | stat.S_IRWXU)
        for dirpath, dirnames, _ in os.walk(path):
            for name in dirnames:
                child = Path(dirpath) / name
                if not child.is_symlink():
                    child.chmod(child.stat().st_mode | stat.S_IRWXU)

    def _discard(self, path: Path) -> None:
        """Best-effort cleanup of a failed materialization."""
        try:
            self._delete(path)
            self.prune()
        except SyncError as e:
            logger.warning("Could not clean up %s, collect() will retry: %s", path, e)
