"""
.env support for GITSYNC_* settings.

Sidecar deployments usually configure gitsync purely through the
environment. Two optional .env files can supply defaults for it:

    ~/.config/gitsync/.env     user defaults
    ./.env                     project defaults (beats user defaults)

A variable already present in the process environment (set by the
container runtime or the shell) always wins over both files. Only
GITSYNC_* keys are taken from the files; anything else in them is ignored
so a shared project .env cannot leak unrelated variables into git or hook
subprocesses.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from dotenv import dotenv_values

from .loader import get_xdg_config_home

logger = logging.getLogger(__name__)

ENV_PREFIX = "GITSYNC_"


def read_env_file(path: Path) -> dict[str, str]:
    """
    Read the GITSYNC_* entries of one .env file.

    Returns:
        Mapping of variable name to value; empty if the file does not exist
    """
    if not path.is_file():
        return {}
    entries = {
        key: value
        for key, value in dotenv_values(path).items()
        if key is not None and value is not None and key.startswith(ENV_PREFIX)
    }
    logger.debug("Read %d setting(s) from %s", len(entries), path)
    return entries


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> set[str]:
    """
    Export GITSYNC_* settings from user and project .env files.

    Args:
        project_dir: Directory holding the project .env (defaults to cwd)
        user_env_paths: User .env files (defaults to the XDG location)
        project_env_paths: Project .env files (defaults to project_dir/.env)

    Returns:
        Names of the variables that were set
    """
    if user_env_paths is None:
        user_env_paths = [get_xdg_config_home() / "gitsync" / ".env"]
    if project_env_paths is None:
        project_env_paths = [(project_dir or Path.cwd()) / ".env"]

    layered: dict[str, str] = {}
    for path in [*user_env_paths, *project_env_paths]:
        layered.update(read_env_file(Path(path)))

    exported = {key for key in layered if key not in os.environ}
    for key in exported:
        os.environ[key] = layered[key]
    return exported
