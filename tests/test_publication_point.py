"""
Tests for PublicationPoint.

Tests symlink publication, atomic retargeting and failure behaviour.
"""

import os
import threading
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from gitsync.core.errors import PublicationError
from gitsync.core.publish import PublicationPoint
from gitsync.core.worktree import Worktree

A = "a" * 40
B = "b" * 40


def make_worktree(root: Path, name: str, marker: str) -> Worktree:
    path = root / ".worktrees" / name
    path.mkdir(parents=True)
    (path / "marker").write_text(marker)
    return Worktree(path=path, identifier=name.split("-")[0], created_at=datetime.now())


@pytest.fixture
def point(sync_root):
    sync_root.mkdir()
    return PublicationPoint(sync_root, "app")


class TestRetarget:
    """Test retarget()."""

    def test_nothing_published_initially(self, point):
        assert point.current_path() is None
        assert point.current_target() is None

    def test_first_publication(self, point, sync_root):
        worktree = make_worktree(sync_root, A, "a")

        previous = point.retarget(worktree)

        assert previous is None
        assert os.readlink(sync_root / "app") == os.path.join(".worktrees", A)
        assert (sync_root / "app" / "marker").read_text() == "a"
        assert point.current_path() == worktree.path
        assert point.current_target() == A

    def test_returns_previous_target(self, point, sync_root):
        first = make_worktree(sync_root, A, "a")
        second = make_worktree(sync_root, B, "b")
        point.retarget(first)

        previous = point.retarget(second)

        assert previous == first.path
        assert point.current_target() == B
        assert (sync_root / "app" / "marker").read_text() == "b"

    def test_rebuilt_worktree_reports_identifier(self, point, sync_root):
        point.retarget(make_worktree(sync_root, f"{A}-12345", "a"))

        assert point.current_target() == A

    def test_stale_temporary_link_is_replaced(self, point, sync_root):
        os.symlink("nowhere", sync_root / ".app.tmp")

        point.retarget(make_worktree(sync_root, A, "a"))

        assert point.current_target() == A
        assert not (sync_root / ".app.tmp").is_symlink()

    def test_failed_swap_keeps_previous_publication(self, point, sync_root):
        point.retarget(make_worktree(sync_root, A, "a"))
        second = make_worktree(sync_root, B, "b")

        with patch("gitsync.core.publish.link.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(PublicationError):
                point.retarget(second)

        assert point.current_target() == A
        assert (sync_root / "app" / "marker").read_text() == "a"

    def test_foreign_link_target_has_no_identifier(self, point, sync_root):
        (sync_root / "elsewhere").mkdir()
        os.symlink("elsewhere", sync_root / "app")

        assert point.current_path() == sync_root / "elsewhere"
        assert point.current_target() is None

    @pytest.mark.parametrize("name", ["", "a/b", ".", ".."])
    def test_invalid_link_name(self, sync_root, name):
        with pytest.raises(ValueError):
            PublicationPoint(sync_root, name)


class TestConcurrentReaders:
    """Readers never observe a missing or partial publication."""

    def test_reader_sees_old_or_new(self, point, sync_root):
        first = make_worktree(sync_root, A, "a")
        second = make_worktree(sync_root, B, "b")
        point.retarget(first)

        seen = set()
        errors = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                try:
                    seen.add((sync_root / "app" / "marker").read_text())
                except OSError as e:
                    errors.append(e)

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for i in range(200):
                point.retarget(second if i % 2 == 0 else first)
        finally:
            done.set()
            thread.join(timeout=5)

        assert errors == []
        assert seen <= {"a", "b"}
