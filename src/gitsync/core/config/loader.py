"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars < explicit overrides

Explicit overrides are the values passed on the command line.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

from .models import SyncConfig

logger = logging.getLogger(__name__)

# Profile name used for credentials supplied through GITSYNC_* variables
ENV_AUTH_PROFILE = "env"


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """
    Get path to user configuration file.

    Returns:
        Path to ~/.config/gitsync/config.json (or XDG equivalent)
    """
    return get_xdg_config_home() / "gitsync" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Working directory to search from (defaults to current directory)

    Returns:
        Path to gitsync.json in that directory
    """
    if cwd is None:
        cwd = Path.cwd()
    return cwd / "gitsync.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`.
    Nested dicts are merged, not replaced. Lists are replaced.

    Example:
        >>> base = {"a": 1, "b": {"x": 10, "y": 20}}
        >>> override = {"b": {"y": 30, "z": 40}, "c": 3}
        >>> deep_merge(base, override)
        {'a': 1, 'b': {'x': 10, 'y': 30, 'z': 40}, 'c': 3}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            logger.warning("Ignoring config at %s: top level is not an object", path)
            return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def _parse_bool(value: str) -> bool:
    return value.lower() not in ("false", "0", "no", "")


# env var -> (path into the config dict, converter)
_ENV_FIELDS: dict[str, tuple[tuple[str, ...], Callable[[str], Any]]] = {
    "GITSYNC_REPO": (("target", "repo"), str),
    "GITSYNC_REF": (("target", "ref"), str),
    "GITSYNC_DEPTH": (("target", "depth"), int),
    "GITSYNC_SUBMODULES": (("target", "submodules"), str),
    "GITSYNC_ROOT": (("root",), str),
    "GITSYNC_LINK": (("link",), str),
    "GITSYNC_PERIOD": (("period_seconds",), float),
    "GITSYNC_SYNC_TIMEOUT": (("timeout_seconds",), float),
    "GITSYNC_MAX_FAILURES": (("max_failures",), int),
    "GITSYNC_ONE_TIME": (("one_time",), _parse_bool),
    "GITSYNC_GIT": (("git_executable",), str),
    "GITSYNC_COOKIE_FILE": (("cookie_file",), str),
    "GITSYNC_CHANGE_PERMISSIONS": (("change_permissions",), str),
    "GITSYNC_HTTP_BIND": (("http_bind",), str),
    "GITSYNC_HTTP_METRICS": (("http_metrics",), _parse_bool),
}

_ENV_AUTH_FIELDS = {
    "GITSYNC_USERNAME": "username",
    "GITSYNC_PASSWORD": "password",
    "GITSYNC_PASSWORD_FILE": "password_file",
    "GITSYNC_SSH_KEY_FILE": "ssh_key_file",
    "GITSYNC_SSH_KNOWN_HOSTS_FILE": "ssh_known_hosts_file",
}


def _set_path(config: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = config
    for key in path[:-1]:
        node = node.setdefault(key, {})
    node[path[-1]] = value


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars override all config files. Invalid values are reported and
    ignored.

    Supported env vars:
        GITSYNC_REPO, GITSYNC_REF, GITSYNC_DEPTH, GITSYNC_SUBMODULES,
        GITSYNC_ROOT, GITSYNC_LINK, GITSYNC_PERIOD, GITSYNC_SYNC_TIMEOUT,
        GITSYNC_MAX_FAILURES, GITSYNC_ONE_TIME, GITSYNC_GIT, GITSYNC_COOKIE_FILE,
        GITSYNC_CHANGE_PERMISSIONS, GITSYNC_HTTP_BIND, GITSYNC_HTTP_METRICS - scalar settings
        GITSYNC_USERNAME, GITSYNC_PASSWORD, GITSYNC_PASSWORD_FILE,
        GITSYNC_SSH_KEY_FILE, GITSYNC_SSH_KNOWN_HOSTS_FILE - the "env" auth profile
        GITSYNC_EXECHOOK_COMMAND - adds an exec hook
        GITSYNC_WEBHOOK_URL - adds a webhook

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        Configuration dictionary with env var overrides applied
    """
    result = deep_merge({}, config_dict)

    for env_name, (path, convert) in _ENV_FIELDS.items():
        raw = os.environ.get(env_name)
        if not raw:
            continue
        try:
            _set_path(result, path, convert(raw))
        except ValueError:
            logger.warning("Invalid %s value '%s', ignoring", env_name, raw)

    auth = {
        field: os.environ[env_name]
        for env_name, field in _ENV_AUTH_FIELDS.items()
        if os.environ.get(env_name)
    }
    if auth:
        _set_path(result, ("auth_profiles", ENV_AUTH_PROFILE), auth)
        target = result.setdefault("target", {})
        target.setdefault("auth", ENV_AUTH_PROFILE)

    hooks = list(result.get("hooks", []))
    if command := os.environ.get("GITSYNC_EXECHOOK_COMMAND"):
        hooks.append({"type": "exec", "command": command})
    if url := os.environ.get("GITSYNC_WEBHOOK_URL"):
        hooks.append({"type": "webhook", "url": url})
    if hooks:
        result["hooks"] = hooks

    return result


def get_default_config() -> dict[str, Any]:
    """
    Get hardcoded default configuration.

    Only values that are not model defaults live here.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "target": {"ref": "HEAD"},
    }


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    project_dir: Path | None = None,
) -> SyncConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Explicit overrides (command line)
        2. Environment variables (GITSYNC_*)
        3. Project config (config_path, or gitsync.json in project_dir)
        4. User config (~/.config/gitsync/config.json)
        5. Hardcoded defaults

    Args:
        config_path: Explicit config file (replaces the project config lookup)
        overrides: Nested dict of values that win over everything else
        project_dir: Directory searched for gitsync.json (defaults to cwd)

    Returns:
        Validated SyncConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation

    Example:
        >>> config = load_config(overrides={"target": {"repo": "/srv/app.git"}})
        >>> config.target.ref
        'HEAD'
    """
    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    project_config_path = config_path or get_project_config_path(project_dir)
    if project_config := load_json_file(project_config_path):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    if overrides:
        merged = deep_merge(merged, overrides)

    return SyncConfig(**merged)
