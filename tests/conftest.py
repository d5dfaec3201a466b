"""
Pytest configuration and shared fixtures.

Provides a real upstream git repository (used as the remote through a
file:// URL), a sync root, and isolation from the user's environment and
git configuration.
"""

import os
import subprocess
from pathlib import Path

import pytest

from gitsync.core.store import ContentStore
from gitsync.core.worktree import WorktreeStore

# ==============================================================================
# Environment Isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep GITSYNC_* variables, user config and git identity out of tests."""
    for name in list(os.environ):
        if name.startswith("GITSYNC_"):
            monkeypatch.delenv(name)

    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


# ==============================================================================
# Git Fixtures
# ==============================================================================


def git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


class Upstream:
    """A local git repository standing in for the remote."""

    def __init__(self, path: Path):
        self.path = path
        path.mkdir(parents=True)
        git(path, "init")
        git(path, "symbolic-ref", "HEAD", "refs/heads/main")
        git(path, "config", "uploadpack.allowAnySHA1InWant", "true")
        git(path, "config", "commit.gpgsign", "false")

    @property
    def url(self) -> str:
        return self.path.as_uri()

    def commit(self, files: dict[str, str], message: str = "update") -> str:
        """Write files, commit them, and return the new commit hash."""
        for name, content in files.items():
            target = self.path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
            git(self.path, "add", name)
        git(self.path, "commit", "-m", message)
        return self.head()

    def head(self, ref: str = "HEAD") -> str:
        return git(self.path, "rev-parse", ref)

    def tag(self, name: str, annotated: bool = False) -> None:
        if annotated:
            git(self.path, "tag", "-a", name, "-m", f"release {name}")
        else:
            git(self.path, "tag", name)

    def branch(self, name: str) -> None:
        git(self.path, "branch", name)


@pytest.fixture
def upstream(tmp_path):
    """Provide an upstream repository with one commit on main."""
    repo = Upstream(tmp_path / "upstream")
    repo.commit({"README.md": "# App\n", "src/app.txt": "v1\n"}, "initial")
    return repo


@pytest.fixture
def sync_root(tmp_path):
    """Provide the (not yet existing) sync root directory."""
    return tmp_path / "root"


@pytest.fixture
def content_store(sync_root, upstream):
    """Provide a ContentStore pointed at the upstream repository."""
    return ContentStore(sync_root, upstream.url)


@pytest.fixture
def worktree_store(content_store):
    """Provide a WorktreeStore with submodules disabled."""
    content_store.ensure_initialized()
    return WorktreeStore(content_store)


@pytest.fixture
def fetched(content_store, upstream):
    """Fetch upstream HEAD into the content store and return its hash."""
    identifier = content_store.resolve("HEAD")
    content_store.fetch(identifier)
    return identifier
