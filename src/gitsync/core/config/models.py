"""
Configuration data models for gitsync.

These models define the structure of gitsync.json and
~/.config/gitsync/config.json files, with validation and type safety via
Pydantic. The core receives a fully validated SyncConfig and never parses
flags or environment variables itself.
"""

import random
import shutil
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, FilePath, field_validator, model_validator


class SubmodulePolicy(str, Enum):
    """How submodules are handled when a worktree is materialized."""

    OFF = "off"
    SHALLOW = "shallow"
    RECURSIVE = "recursive"


class SyncTarget(BaseModel):
    """
    The single remote reference this process keeps in sync.

    Immutable for the lifetime of the process.
    """
    model_config = ConfigDict(frozen=True)

    repo: str = Field(
        min_length=1,
        description="Remote repository location (URL or local path)"
    )
    ref: str = Field(
        default="HEAD",
        min_length=1,
        description="Branch, tag, or full commit hash to sync"
    )
    depth: int = Field(
        default=1,
        ge=0,
        description="Fetch depth (0 fetches full history)"
    )
    submodules: SubmodulePolicy = Field(
        default=SubmodulePolicy.RECURSIVE,
        description="Submodule policy: off, shallow, or recursive"
    )
    auth: Optional[str] = Field(
        default=None,
        description="Name of the auth profile used for this remote"
    )


class AuthConfig(BaseModel):
    """
    Credentials profile for talking to the remote.

    Either HTTP credentials (username/password) or an SSH key, never both.
    """
    username: Optional[str] = Field(default=None, description="HTTP username")
    password: Optional[str] = Field(default=None, description="HTTP password or token")
    password_file: Optional[Path] = Field(
        default=None,
        description="File holding the HTTP password (read on every use)"
    )
    ssh_key_file: Optional[Path] = Field(default=None, description="SSH private key")
    ssh_known_hosts_file: Optional[Path] = Field(
        default=None,
        description="known_hosts file (host key checking is disabled when unset)"
    )

    @model_validator(mode="after")
    def check_exclusive(self) -> "AuthConfig":
        """Reject profiles mixing SSH and HTTP credentials."""
        http = self.username is not None or self.password is not None or self.password_file
        if http and self.ssh_key_file is not None:
            raise ValueError("SSH key and HTTP credentials cannot be used together")
        if self.password is not None and self.password_file is not None:
            raise ValueError("password and password_file are mutually exclusive")
        return self


class ExecHookConfig(BaseModel):
    """A local command run inside the newly published worktree."""
    type: Literal["exec"] = "exec"
    name: Optional[str] = Field(default=None, description="Name used in logs")
    command: str = Field(min_length=1, description="Executable to run")
    args: list[str] = Field(default_factory=list, description="Command arguments")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout per attempt")

    @property
    def display_name(self) -> str:
        return self.name or f"exechook:{Path(self.command).name}"


class WebhookConfig(BaseModel):
    """An HTTP callback sent after each publication."""
    type: Literal["webhook"] = "webhook"
    name: Optional[str] = Field(default=None, description="Name used in logs")
    url: str = Field(min_length=1, description="URL to call")
    method: str = Field(default="POST", description="HTTP method")
    success_status: int = Field(
        default=200,
        description="Status code meaning success (-1 accepts any response)"
    )
    timeout_seconds: float = Field(default=1.0, gt=0, description="Timeout per attempt")

    @field_validator("success_status")
    @classmethod
    def check_status(cls, v: int) -> int:
        """Accept -1 or a valid HTTP status code."""
        if v != -1 and not 100 <= v <= 599:
            raise ValueError(f"success_status must be -1 or 100-599, got {v}")
        return v

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.upper()

    @property
    def display_name(self) -> str:
        return self.name or f"webhook:{self.url}"


HookSpec = Annotated[Union[ExecHookConfig, WebhookConfig], Field(discriminator="type")]


class HookRetryConfig(BaseModel):
    """
    Bounded retry policy for hook delivery.

    Delays grow exponentially: backoff_seconds * multiplier ** attempt,
    capped at max_backoff_seconds, with ±jitter_ratio random variance.
    """
    max_attempts: int = Field(default=5, ge=1, description="Attempts before giving up")
    backoff_seconds: float = Field(default=3.0, gt=0, description="Delay before first retry")
    multiplier: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    max_backoff_seconds: float = Field(default=60.0, gt=0, description="Upper bound on delay")
    jitter_ratio: float = Field(default=0.2, ge=0.0, le=1.0, description="Random variance")

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate the delay before retry number ``attempt`` (0-indexed).

        Args:
            attempt: Retry attempt number

        Returns:
            Delay in seconds before next retry
        """
        delay = min(self.backoff_seconds * (self.multiplier**attempt), self.max_backoff_seconds)
        if self.jitter_ratio:
            variance = delay * self.jitter_ratio
            delay = delay + random.uniform(-variance, variance)
        return max(0.0, delay)


class RetentionConfig(BaseModel):
    """
    Garbage collection policy for superseded worktrees.

    A worktree that is neither published nor reserved is removed unless it
    is one of the keep_count newest or younger than min_age_seconds.
    """
    keep_count: int = Field(default=0, ge=0, description="Stale worktrees to keep")
    min_age_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Minimum age before a stale worktree may be removed"
    )


def default_link_name(repo: str) -> str:
    """
    Derive a publication link name from the repository location.

    Example:
        >>> default_link_name("https://github.com/example/project.git")
        'project'
    """
    leaf = repo.rstrip("/").replace(":", "/").split("/")[-1]
    if leaf.endswith(".git"):
        leaf = leaf[: -len(".git")]
    return leaf or "repo"


def split_bind_address(bind: str) -> tuple[str, int]:
    """
    Split a "host:port" bind address. An empty host listens everywhere.

    Example:
        >>> split_bind_address(":2020")
        ('0.0.0.0', 2020)
    """
    host, sep, port = bind.rpartition(":")
    if not sep or not port.isdigit() or int(port) > 65535:
        raise ValueError(f"bind address must be host:port, got {bind!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


class SyncConfig(BaseModel):
    """
    Complete runtime configuration for one gitsync process.

    Example:
        >>> config = SyncConfig(target=SyncTarget(repo="https://example.com/app.git"))
        >>> config.link_name
        'app'
    """
    model_config = ConfigDict(extra="ignore")

    target: SyncTarget
    root: Path = Field(
        default_factory=lambda: Path.home() / "git",
        description="Directory holding the object store, worktrees and link"
    )
    link: Optional[str] = Field(
        default=None,
        description="Name of the publication link under root (defaults to repo leaf)"
    )
    period_seconds: float = Field(default=10.0, gt=0, description="Seconds between syncs")
    timeout_seconds: float = Field(default=120.0, gt=0, description="Max seconds per sync")
    max_failures: int = Field(
        default=0,
        ge=-1,
        description="Consecutive failures tolerated before exiting (-1: never exit)"
    )
    one_time: bool = Field(default=False, description="Exit after the first sync")
    hooks: list[HookSpec] = Field(default_factory=list, description="Hooks to notify")
    hook_retry: HookRetryConfig = Field(default_factory=HookRetryConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    auth_profiles: dict[str, AuthConfig] = Field(default_factory=dict)
    git_executable: str = Field(default="git", description="git command to run (searched on PATH)")
    cookie_file: Optional[FilePath] = Field(
        default=None,
        description="Cookie file handed to git as http.cookiefile"
    )
    change_permissions: Optional[int] = Field(
        default=None,
        description="Mode applied recursively to each new worktree (octal string or int)"
    )
    http_bind: Optional[str] = Field(
        default=None,
        description="host:port for the HTTP endpoint (disabled when unset)"
    )
    http_metrics: bool = Field(default=True, description="Serve /metrics on the HTTP endpoint")

    @field_validator("link")
    @classmethod
    def check_link(cls, v: Optional[str]) -> Optional[str]:
        """The link must be a bare name directly under root."""
        if v is not None and ("/" in v or v in ("", ".", "..") or v.startswith(".")):
            raise ValueError(f"link must be a bare name, got {v!r}")
        return v

    @field_validator("git_executable")
    @classmethod
    def check_git_executable(cls, v: str) -> str:
        if shutil.which(v) is None:
            raise ValueError(f"git executable {v!r} not found")
        return v

    @field_validator("change_permissions", mode="before")
    @classmethod
    def parse_permissions(cls, v: object) -> object:
        """Read strings such as "0775" or "0o775" as octal."""
        if isinstance(v, str):
            try:
                return int(v.removeprefix("0o"), 8)
            except ValueError:
                raise ValueError(f"change_permissions must be an octal mode, got {v!r}") from None
        return v

    @field_validator("change_permissions")
    @classmethod
    def check_permissions(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= 0o7777:
            raise ValueError(f"change_permissions out of range: {oct(v)}")
        return v

    @field_validator("http_bind")
    @classmethod
    def check_http_bind(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            split_bind_address(v)
        return v

    @model_validator(mode="after")
    def check_auth_profile(self) -> "SyncConfig":
        """The target's auth profile must be defined."""
        if self.target.auth is not None and self.target.auth not in self.auth_profiles:
            raise ValueError(f"Unknown auth profile: {self.target.auth}")
        return self

    @property
    def link_name(self) -> str:
        return self.link or default_link_name(self.target.repo)

    @property
    def http_address(self) -> Optional[tuple[str, int]]:
        if self.http_bind is None:
            return None
        return split_bind_address(self.http_bind)

    @property
    def auth(self) -> Optional[AuthConfig]:
        if self.target.auth is None:
            return None
        return self.auth_profiles[self.target.auth]
