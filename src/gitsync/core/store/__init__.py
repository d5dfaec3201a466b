"""
Content store: the remote repository seen as a content-addressed store.

Provides the ContentStore adapter (resolve, fetch, is_present) and the
credential boundary it receives credentials through.
"""

from .adapter import (
    ContentStore,
    classify_git_error,
    classify_os_error,
    is_full_identifier,
    use_git_executable,
    validate_reference,
)
from .credentials import (
    CredentialResolver,
    GitCredentials,
    build_git_environment,
    no_credentials,
    resolver_for,
    ssh_credentials,
    static_credentials,
)

__all__ = [
    "ContentStore",
    "CredentialResolver",
    "GitCredentials",
    "build_git_environment",
    "classify_git_error",
    "classify_os_error",
    "is_full_identifier",
    "no_credentials",
    "resolver_for",
    "ssh_credentials",
    "static_credentials",
    "use_git_executable",
    "validate_reference",
]
