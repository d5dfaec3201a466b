"""
gitsync CLI - Run command.

Keep a symlink under --root pointing at a worktree of the remote reference,
re-syncing every --period seconds until stopped.
"""

import logging
import threading
from pathlib import Path
from typing import Annotated, Optional

import typer

from gitsync.cli.errors import ExitCode, exit_code_for, print_error
from gitsync.cli.options import build_overrides, load_cli_config
from gitsync.core.config import SubmodulePolicy
from gitsync.core.errors import SyncError
from gitsync.core.sync import InterruptHandler, build_runtime

logger = logging.getLogger(__name__)


def run(
    repo: Annotated[
        Optional[str], typer.Option("--repo", help="Remote repository URL or path")
    ] = None,
    ref: Annotated[
        Optional[str], typer.Option("--ref", help="Branch, tag or full commit hash (default HEAD)")
    ] = None,
    root: Annotated[
        Optional[Path], typer.Option("--root", help="Directory holding the checkout")
    ] = None,
    link: Annotated[
        Optional[str], typer.Option("--link", help="Name of the published symlink under --root")
    ] = None,
    depth: Annotated[
        Optional[int], typer.Option("--depth", min=0, help="Fetch depth, 0 for full history")
    ] = None,
    submodules: Annotated[
        Optional[SubmodulePolicy], typer.Option("--submodules", help="Submodule handling")
    ] = None,
    period: Annotated[
        Optional[float], typer.Option("--period", help="Seconds between syncs")
    ] = None,
    sync_timeout: Annotated[
        Optional[float], typer.Option("--sync-timeout", help="Maximum seconds per sync")
    ] = None,
    max_failures: Annotated[
        Optional[int],
        typer.Option("--max-failures", help="Consecutive failures tolerated (-1: unlimited)"),
    ] = None,
    one_time: Annotated[
        Optional[bool], typer.Option("--one-time/--continuous", help="Exit after one sync")
    ] = None,
    exechook_command: Annotated[
        Optional[str],
        typer.Option("--exechook-command", help="Command to run in each new worktree"),
    ] = None,
    webhook_url: Annotated[
        Optional[str], typer.Option("--webhook-url", help="URL to notify of each new hash")
    ] = None,
    change_permissions: Annotated[
        Optional[str],
        typer.Option("--change-permissions", help="Octal mode applied to each new worktree"),
    ] = None,
    cookie_file: Annotated[
        Optional[Path], typer.Option("--cookie-file", help="Cookie file for HTTP remotes")
    ] = None,
    git: Annotated[
        Optional[str], typer.Option("--git", help="git command to run (searched on PATH)")
    ] = None,
    http_bind: Annotated[
        Optional[str], typer.Option("--http-bind", help="host:port for the HTTP endpoint")
    ] = None,
    http_metrics: Annotated[
        Optional[bool],
        typer.Option("--http-metrics/--no-http-metrics", help="Serve /metrics over HTTP"),
    ] = None,
    config: Annotated[
        Optional[Path], typer.Option("--config", "-c", help="Path to a gitsync.json file")
    ] = None,
) -> None:
    """
    Sync a remote git reference into a local directory.

    Examples:
        gitsync run --repo https://github.com/example/app.git --root /git
        gitsync run --repo /srv/app.git --ref v1.2.0 --one-time
        gitsync run --repo /srv/app.git --http-bind :2020
        GITSYNC_REPO=https://github.com/example/app.git gitsync
    """
    overrides = build_overrides(
        repo=repo,
        ref=ref,
        root=root,
        link=link,
        depth=depth,
        submodules=submodules.value if submodules is not None else None,
        period=period,
        sync_timeout=sync_timeout,
        max_failures=max_failures,
        one_time=one_time,
        change_permissions=change_permissions,
        cookie_file=cookie_file,
        git=git,
        http_bind=http_bind,
        http_metrics=http_metrics,
    )
    hooks = []
    if exechook_command:
        hooks.append({"type": "exec", "command": exechook_command})
    if webhook_url:
        hooks.append({"type": "webhook", "url": webhook_url})

    sync_config = load_cli_config(config, overrides, hooks)
    logger.info(
        f"Syncing {sync_config.target.repo} ({sync_config.target.ref}) into "
        f"{sync_config.root / sync_config.link_name}"
    )

    stop_event = threading.Event()
    try:
        runtime = build_runtime(sync_config, stop_event=stop_event)
        with InterruptHandler() as interrupt:
            interrupt.on_interrupt(runtime.scheduler.request_stop)
            result = runtime.run()
    except SyncError as e:
        print_error(f"Cannot start sync: {e}", reason=e.stderr or None)
        raise typer.Exit(ExitCode.FATAL)

    code = exit_code_for(result)
    if code != ExitCode.SUCCESS:
        print_error(
            f"Sync {result.status.value} after {result.iterations} iteration(s)",
            reason=str(result.error) if result.error else None,
        )
    raise typer.Exit(code)
