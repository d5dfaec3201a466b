"""
Content store adapter backed by git.

The remote repository is treated as an opaque content-addressed store with
three verbs:

- ``resolve(ref)``: ask the remote which commit a reference names
  (``git ls-remote``, no content download)
- ``fetch(identifier, depth)``: retrieve exactly the content reachable from
  an already-resolved commit (``git fetch origin <hash>``)
- ``is_present(identifier)``: check the local object store
  (``git cat-file -e``)

Resolution and retrieval are deliberately separate: fetch is parameterized
by the exact identifier resolve returned, so a reference moving on the
remote between the two steps cannot change what gets materialized. The
fetch either yields precisely that commit or fails.

The local object store is a bare repository at ``<root>/.git``.
"""

from __future__ import annotations

import errno
import logging
import re
import shutil
from pathlib import Path
from typing import Any

from git import Git, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from git.exc import GitCommandNotFound

from gitsync.core.deadline import Deadline
from gitsync.core.errors import (
    AuthError,
    GitError,
    InvalidReferenceError,
    IterationTimeoutError,
    NetworkError,
    ReferenceNotFoundError,
    RepositoryNotFoundError,
    ResourceError,
    SyncError,
)
from gitsync.core.store.credentials import (
    CredentialResolver,
    build_git_environment,
    no_credentials,
)

logger = logging.getLogger(__name__)

# Full SHA-1 or SHA-256 object names. Abbreviations are never identifiers.
FULL_IDENTIFIER_PATTERN = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")

# Characters and sequences git refuses in reference names (git-check-ref-format)
_INVALID_REF_PATTERN = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]|\.\.|@\{|//|/\.|\.lock(?:/|$)")

_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "permission denied (publickey",
    "http basic: access denied",
    "terminal prompts disabled",
)

_MISSING_REPO_MARKERS = (
    "repository not found",
    "does not appear to be a git repository",
    "repository does not exist",
)

_MISSING_REF_MARKERS = (
    "couldn't find remote ref",
    "no such remote ref",
    "not our ref",
    "unadvertised object",
)

_NETWORK_MARKERS = (
    "could not resolve host",
    "connection timed out",
    "connection refused",
    "connection reset",
    "unable to access",
    "early eof",
    "the remote end hung up",
    "could not read from remote repository",
    "operation timed out",
    "rpc failed",
)

_RESOURCE_ERRNOS = {errno.ENOSPC, errno.EACCES, errno.EPERM, errno.EROFS, errno.EDQUOT}


def is_full_identifier(value: str) -> bool:
    """Whether ``value`` is a complete, lowercase object name."""
    return bool(FULL_IDENTIFIER_PATTERN.match(value))


def validate_reference(ref: str) -> None:
    """
    Reject reference expressions git would never accept.

    Args:
        ref: Reference expression (branch, tag, HEAD, refs/...)

    Raises:
        InvalidReferenceError: If the expression is malformed
    """
    if (
        not ref
        or ref.startswith(("/", "-", "."))
        or ref.endswith(("/", "."))
        or _INVALID_REF_PATTERN.search(ref)
    ):
        raise InvalidReferenceError(f"Invalid reference: {ref!r}")


def classify_git_error(error: GitCommandError, action: str) -> SyncError:
    """
    Map a failed git command onto the error taxonomy.

    Args:
        error: The GitCommandError raised by GitPython
        action: Short description of what was attempted

    Returns:
        The SyncError subclass instance to raise
    """
    stderr = str(error.stderr or "").strip()
    lowered = stderr.lower()
    command = [str(part) for part in error.command] if isinstance(error.command, list) else None
    message = f"Failed to {action}: {stderr or error}"

    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthError(message, command=command, stderr=stderr)
    if any(marker in lowered for marker in _MISSING_REPO_MARKERS):
        return RepositoryNotFoundError(message, command=command, stderr=stderr)
    if any(marker in lowered for marker in _MISSING_REF_MARKERS):
        return ReferenceNotFoundError(message, command=command, stderr=stderr)
    if any(marker in lowered for marker in _NETWORK_MARKERS):
        return NetworkError(message, command=command, stderr=stderr)
    return GitError(message, command=command, stderr=stderr)


def classify_os_error(error: OSError, action: str) -> SyncError:
    """Map a local filesystem failure onto the error taxonomy."""
    if error.errno in _RESOURCE_ERRNOS:
        return ResourceError(f"Failed to {action}: {error}")
    return GitError(f"Failed to {action}: {error}")


def use_git_executable(command: str) -> str:
    """
    Run every later git command through ``command``.

    The command is looked up on PATH and GitPython is refreshed to it, so
    the setting applies process-wide.

    Returns:
        Absolute path of the executable

    Raises:
        GitError: If the command is missing or is not a working git
    """
    path = shutil.which(command)
    if path is None:
        raise GitError(f"git executable {command!r} not found on PATH")
    try:
        Git.refresh(path)
    except GitCommandNotFound as e:
        raise GitError(f"{path} is not a usable git executable: {e}") from e
    except GitCommandError as e:
        # refresh() keeps a command that runs but fails; go back to the default
        Git.refresh()
        raise GitError(f"{path} is not a usable git executable: {e}") from e
    logger.debug("Using git executable %s", path)
    return path


class ContentStore:
    """
    Adapter between the sync engine and a remote git repository.

    Example:
        >>> store = ContentStore(Path("/git"), "https://github.com/example/app.git")
        >>> identifier = store.resolve("main")
        >>> if not store.is_present(identifier):
        ...     store.fetch(identifier, depth=1)
    """

    REMOTE = "origin"

    def __init__(
        self,
        root: Path,
        repo_url: str,
        credentials: CredentialResolver | None = None,
        cookie_file: Path | None = None,
    ):
        """
        Initialize the content store.

        Args:
            root: Sync root directory; the object store lives in root/.git
            repo_url: Remote repository location
            credentials: Credential resolver (anonymous when omitted)
            cookie_file: Cookie file for HTTP remotes
        """
        self.root = Path(root).absolute()
        self.repo_url = repo_url
        self._credentials = credentials or no_credentials
        self.cookie_file = cookie_file
        self._repo: Repo | None = None

    @property
    def git_dir(self) -> Path:
        return self.root / ".git"

    @property
    def repo(self) -> Repo:
        """The local object store, created on first use."""
        return self.ensure_initialized()

    def ensure_initialized(self) -> Repo:
        """
        Create or open the local object store and point origin at the remote.

        Returns:
            The bare Repo at root/.git

        Raises:
            ResourceError: If the directory cannot be created
            GitError: If the existing store is unusable
        """
        if self._repo is not None:
            return self._repo

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            if self.git_dir.exists():
                repo = Repo(self.git_dir)
            else:
                logger.info("Initializing object store at %s", self.git_dir)
                repo = Repo.init(self.git_dir, bare=True, mkdir=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise GitError(f"Object store at {self.git_dir} is not a git repository") from e
        except OSError as e:
            raise classify_os_error(e, f"initialize {self.git_dir}") from e

        try:
            self._configure_remote(repo)
        except GitCommandError as e:
            raise classify_git_error(e, "configure remote") from e

        self._repo = repo
        return repo

    def _configure_remote(self, repo: Repo) -> None:
        """Register the remote, correcting its URL if the configuration changed."""
        if self.REMOTE not in [remote.name for remote in repo.remotes]:
            repo.create_remote(self.REMOTE, self.repo_url)
            return

        remote = repo.remote(self.REMOTE)
        if remote.url != self.repo_url:
            logger.info("Remote URL changed from %s to %s", remote.url, self.repo_url)
            remote.set_url(self.repo_url)

    def git(
        self,
        verb: str,
        *args: str,
        deadline: Deadline | None = None,
        cwd: Path | None = None,
        network: bool = False,
    ) -> str:
        """
        Run a git command against the object store (or inside a worktree).

        Args:
            verb: GitPython method name (e.g. "ls_remote", "worktree")
            args: Command arguments
            deadline: Iteration deadline bounding the command
            cwd: Run in this directory instead of the object store
            network: Whether the command talks to the remote (adds credentials)

        Returns:
            Command stdout

        Raises:
            IterationTimeoutError: If the deadline expired
            ShutdownRequested: If shutdown was requested before the command
            SyncError: Classified failure of the command
        """
        repo = self.ensure_initialized()
        if deadline is not None:
            deadline.check(f"git {verb}")

        kwargs: dict[str, Any] = {}
        if network:
            kwargs["env"] = build_git_environment(
                self._credentials(self.repo_url), cookie_file=self.cookie_file
            )
        else:
            kwargs["env"] = {"GIT_TERMINAL_PROMPT": "0"}
        if deadline is not None and (remaining := deadline.remaining()) is not None:
            kwargs["kill_after_timeout"] = max(remaining, 0.001)

        runner = Git(str(cwd)) if cwd is not None else repo.git
        logger.debug("Running git %s %s", verb, " ".join(args))
        try:
            return str(getattr(runner, verb)(*args, **kwargs))
        except GitCommandError as e:
            if deadline is not None and deadline.expired:
                raise IterationTimeoutError(
                    f"git {verb} did not finish within the sync timeout",
                    stderr=str(e.stderr or ""),
                ) from e
            raise classify_git_error(e, f"run git {verb}") from e
        except OSError as e:
            raise classify_os_error(e, f"run git {verb}") from e

    def resolve(self, ref: str, deadline: Deadline | None = None) -> str:
        """
        Resolve a reference to the commit it currently names on the remote.

        A full-length object name resolves to itself without network I/O.

        Args:
            ref: Branch, tag, HEAD, refs/... or a full commit hash
            deadline: Iteration deadline

        Returns:
            Full commit hash

        Raises:
            InvalidReferenceError: If ref is malformed
            ReferenceNotFoundError: If the remote has no such reference
            AuthError, RepositoryNotFoundError, NetworkError: Remote failures
        """
        if is_full_identifier(ref):
            return ref
        validate_reference(ref)

        # the peeled pattern makes the remote advertise what annotated tags point at
        output = self.git(
            "ls_remote", self.REMOTE, ref, f"{ref}^{{}}", deadline=deadline, network=True
        )
        refs: dict[str, str] = {}
        for line in output.splitlines():
            parts = line.strip().split("\t", 1)
            if len(parts) == 2:
                refs[parts[1]] = parts[0]

        for candidate in (ref, f"refs/heads/{ref}", f"refs/tags/{ref}"):
            # Annotated tags: the peeled entry names the commit
            peeled = refs.get(f"{candidate}^{{}}")
            if peeled:
                return peeled
            if candidate in refs:
                return refs[candidate]

        raise ReferenceNotFoundError(f"Reference {ref!r} not found on {self.repo_url}")

    def fetch(self, identifier: str, depth: int = 0, deadline: Deadline | None = None) -> None:
        """
        Fetch exactly the content reachable from ``identifier``.

        Args:
            identifier: Full commit hash returned by resolve()
            depth: History depth (0 fetches everything)
            deadline: Iteration deadline

        Raises:
            ValueError: If identifier is not a full object name
            ReferenceNotFoundError: If the remote does not have that commit
            NetworkError, AuthError: Remote failures
        """
        if not is_full_identifier(identifier):
            raise ValueError(f"fetch requires a full object name, got {identifier!r}")

        args = ["--no-tags"]
        if depth > 0:
            args.extend(["--depth", str(depth)])
        args.extend([self.REMOTE, identifier])

        logger.info("Fetching %s (depth=%s)", identifier, depth or "full")
        self.git("fetch", *args, deadline=deadline, network=True)

        if not self.is_present(identifier, deadline=deadline):
            raise ReferenceNotFoundError(f"Fetch completed but {identifier} is not present")

    def is_present(self, identifier: str, deadline: Deadline | None = None) -> bool:
        """Whether the commit is already in the local object store."""
        try:
            self.git("cat_file", "-e", f"{identifier}^{{commit}}", deadline=deadline)
        except GitError:
            return False
        return True
