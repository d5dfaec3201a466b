"""
Credential boundary for the content store.

The content store never knows where credentials come from. It receives a
CredentialResolver: a callable that, given the repository location, returns
GitCredentials or raises AuthError. This module provides the resolver
protocol plus factories for the common cases (static HTTP credentials and
SSH keys), and turns credentials into the environment handed to git.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from gitsync.core.config.models import AuthConfig
from gitsync.core.errors import AuthError

# Inline credential helper. Secrets travel through the environment, never argv.
_CREDENTIAL_HELPER = (
    '!f() { echo "username=${GITSYNC_GIT_USERNAME}"; '
    'echo "password=${GITSYNC_GIT_PASSWORD}"; }; f'
)


@dataclass(frozen=True)
class GitCredentials:
    """
    Credentials for one remote.

    Attributes:
        username: HTTP username, if any
        password: HTTP password or token, if any
        env: Extra environment for git (e.g. GIT_SSH_COMMAND)
    """

    username: str | None = None
    password: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def has_http_credentials(self) -> bool:
        return self.username is not None or self.password is not None


CredentialResolver = Callable[[str], GitCredentials]


def no_credentials(repo_url: str) -> GitCredentials:
    """Resolver for anonymous access."""
    return GitCredentials()


def static_credentials(
    username: str | None,
    password: str | None = None,
    password_file: Path | None = None,
) -> CredentialResolver:
    """
    Build a resolver returning fixed HTTP credentials.

    When ``password_file`` is given it is re-read on every call, so rotated
    secrets mounted into the container are picked up without a restart.

    Args:
        username: HTTP username
        password: Inline password or token
        password_file: File holding the password

    Returns:
        CredentialResolver
    """

    def resolve(repo_url: str) -> GitCredentials:
        secret = password
        if password_file is not None:
            try:
                secret = Path(password_file).read_text().strip()
            except OSError as e:
                raise AuthError(f"Cannot read password file {password_file}: {e}") from e
        return GitCredentials(username=username, password=secret)

    return resolve


def ssh_credentials(key_file: Path, known_hosts_file: Path | None = None) -> CredentialResolver:
    """
    Build a resolver that points git's ssh at a private key.

    Args:
        key_file: SSH private key
        known_hosts_file: known_hosts to verify the host against; when None,
            host key checking is disabled

    Returns:
        CredentialResolver
    """

    def resolve(repo_url: str) -> GitCredentials:
        if not Path(key_file).exists():
            raise AuthError(f"SSH key not found: {key_file}")
        if known_hosts_file is None:
            options = "-o UserKnownHostsFile=/dev/null -o StrictHostKeyChecking=no"
        else:
            if not Path(known_hosts_file).exists():
                raise AuthError(f"SSH known_hosts file not found: {known_hosts_file}")
            options = f"-o UserKnownHostsFile={known_hosts_file}"
        return GitCredentials(env={"GIT_SSH_COMMAND": f"ssh -q {options} -i {key_file}"})

    return resolve


def resolver_for(auth: AuthConfig | None) -> CredentialResolver:
    """
    Build the resolver described by an auth profile.

    Args:
        auth: Auth profile, or None for anonymous access

    Returns:
        CredentialResolver
    """
    if auth is None:
        return no_credentials
    if auth.ssh_key_file is not None:
        return ssh_credentials(auth.ssh_key_file, auth.ssh_known_hosts_file)
    if auth.username is not None or auth.password is not None or auth.password_file is not None:
        return static_credentials(auth.username, auth.password, auth.password_file)
    return no_credentials


def build_git_environment(
    credentials: GitCredentials, cookie_file: Path | None = None
) -> dict[str, str]:
    """
    Translate credentials into environment variables for a git process.

    HTTP credentials are served by an inline credential helper installed
    through GIT_CONFIG_COUNT; the helper list is reset first so no global
    helper can answer instead. A cookie file is passed the same way as
    http.cookiefile, leaving the user's global config untouched.

    Args:
        credentials: Resolved credentials
        cookie_file: Cookie file for HTTP remotes

    Returns:
        Environment overrides (merged over os.environ by the caller)
    """
    env = dict(credentials.env)
    env["GIT_TERMINAL_PROMPT"] = "0"
    settings: list[tuple[str, str]] = []
    if credentials.has_http_credentials:
        env["GITSYNC_GIT_USERNAME"] = credentials.username or ""
        env["GITSYNC_GIT_PASSWORD"] = credentials.password or ""
        settings.append(("credential.helper", ""))
        settings.append(("credential.helper", _CREDENTIAL_HELPER))
    if cookie_file is not None:
        settings.append(("http.cookiefile", str(cookie_file)))

    if settings:
        env["GIT_CONFIG_COUNT"] = str(len(settings))
        for index, (key, value) in enumerate(settings):
            env[f"GIT_CONFIG_KEY_{index}"] = key
            env[f"GIT_CONFIG_VALUE_{index}"] = value
    return env
