"""
Shared option handling for gitsync commands.

Command-line values are the top layer of the configuration chain; this
module turns them into the nested override dict load_config() expects and
reports validation failures as user errors.
"""

from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from gitsync.cli.errors import ExitCode, print_config_error
from gitsync.core.config import SyncConfig, load_config


def build_overrides(**values: Any) -> dict[str, Any]:
    """
    Build config overrides from command-line values.

    Options left unset (None) are omitted so lower layers still apply.

    Example:
        >>> build_overrides(repo="/srv/app.git", ref=None, period=5.0)
        {'target': {'repo': '/srv/app.git'}, 'period_seconds': 5.0}
    """
    target_keys = {"repo": "repo", "ref": "ref", "depth": "depth", "submodules": "submodules"}
    top_keys = {
        "root": "root",
        "link": "link",
        "period": "period_seconds",
        "sync_timeout": "timeout_seconds",
        "max_failures": "max_failures",
        "one_time": "one_time",
        "change_permissions": "change_permissions",
        "cookie_file": "cookie_file",
        "git": "git_executable",
        "http_bind": "http_bind",
        "http_metrics": "http_metrics",
    }

    overrides: dict[str, Any] = {}
    for name, value in values.items():
        if value is None:
            continue
        if name in target_keys:
            overrides.setdefault("target", {})[target_keys[name]] = value
        elif name in top_keys:
            overrides[top_keys[name]] = str(value) if isinstance(value, Path) else value
        else:
            raise ValueError(f"Unknown option: {name}")
    return overrides


def load_cli_config(
    config_path: Path | None,
    overrides: dict[str, Any],
    hooks: list[dict[str, Any]] | None = None,
) -> SyncConfig:
    """
    Load configuration, exiting with USER_ERROR if it is invalid.

    Args:
        config_path: Explicit config file (--config)
        overrides: Command-line overrides
        hooks: Hooks added on the command line (appended to configured ones)

    Returns:
        Validated SyncConfig
    """
    if config_path is not None and not config_path.exists():
        print_config_error(f"Config file not found: {config_path}")
        raise typer.Exit(ExitCode.USER_ERROR)

    try:
        config = load_config(config_path=config_path, overrides=overrides)
        if hooks:
            data = config.model_dump()
            data["hooks"] = data["hooks"] + hooks
            config = SyncConfig.model_validate(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        print_config_error(details)
        raise typer.Exit(ExitCode.USER_ERROR)
    return config
