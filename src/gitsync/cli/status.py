"""
gitsync CLI - Status and collect commands.

Inspect the published hash and the worktrees under --root, or run garbage
collection once without syncing.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from gitsync.cli.errors import ExitCode, print_error
from gitsync.cli.options import build_overrides, load_cli_config
from gitsync.core.config import SyncConfig
from gitsync.core.errors import StoreLockedError, SyncError
from gitsync.core.publish import PublicationPoint
from gitsync.core.store import ContentStore
from gitsync.core.worktree import StoreLock, WorktreeStore

console = Console()

RepoOption = Annotated[Optional[str], typer.Option("--repo", help="Remote repository URL or path")]
RootOption = Annotated[Optional[Path], typer.Option("--root", help="Directory holding the checkout")]
LinkOption = Annotated[Optional[str], typer.Option("--link", help="Name of the published symlink")]
ConfigOption = Annotated[
    Optional[Path], typer.Option("--config", "-c", help="Path to a gitsync.json file")
]


def _open(config: SyncConfig) -> tuple[WorktreeStore, PublicationPoint] | None:
    """Open the stores under root, or None if nothing was synced there yet."""
    content_store = ContentStore(config.root, config.target.repo)
    if not content_store.git_dir.exists():
        console.print(f"[yellow]Nothing synced under {config.root} yet[/yellow]")
        return None
    worktrees = WorktreeStore(
        content_store,
        submodules=config.target.submodules,
        retention=config.retention,
    )
    return worktrees, PublicationPoint(config.root, config.link_name)


def status(
    repo: RepoOption = None,
    root: RootOption = None,
    link: LinkOption = None,
    config: ConfigOption = None,
) -> None:
    """
    Show the published hash and all worktrees.

    Examples:
        gitsync status --repo https://github.com/example/app.git --root /git
    """
    sync_config = load_cli_config(config, build_overrides(repo=repo, root=root, link=link))
    opened = _open(sync_config)
    if opened is None:
        raise typer.Exit(ExitCode.SUCCESS)
    worktrees, publication = opened

    try:
        published = publication.current_path()
        entries = worktrees.list()
    except SyncError as e:
        print_error(f"Cannot read sync state: {e}")
        raise typer.Exit(ExitCode.FATAL)

    console.print(f"[bold]Link:[/bold] {publication.link_path}")
    console.print(f"[bold]Published:[/bold] {publication.current_target() or '[dim]nothing[/dim]'}")

    if not entries:
        console.print("[yellow]No worktrees found[/yellow]")
        return

    table = Table(title="Worktrees")
    table.add_column("Commit", style="cyan")
    table.add_column("Path", style="blue")
    table.add_column("Created", style="dim")
    table.add_column("Published", style="green")
    for worktree in sorted(entries, key=lambda w: w.created_at, reverse=True):
        table.add_row(
            worktree.identifier,
            str(worktree.path),
            worktree.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            "✓" if worktree.path == published else "",
        )
    console.print(table)


def collect(
    repo: RepoOption = None,
    root: RootOption = None,
    link: LinkOption = None,
    config: ConfigOption = None,
) -> None:
    """
    Remove stale worktrees now, keeping the published one.

    Examples:
        gitsync collect --repo https://github.com/example/app.git --root /git
    """
    sync_config = load_cli_config(config, build_overrides(repo=repo, root=root, link=link))
    opened = _open(sync_config)
    if opened is None:
        raise typer.Exit(ExitCode.SUCCESS)
    worktrees, publication = opened

    lock = StoreLock(worktrees.content_store.git_dir)
    try:
        with lock.hold(blocking=False):
            published_path = publication.current_path()
            published = worktrees.adopt(published_path) if published_path else None
            if published is not None:
                worktrees.reserve(published)
            removed = worktrees.collect()
    except StoreLockedError:
        print_error(
            f"A sync is in progress under {sync_config.root}",
            solution="Retry once it finishes; the running sync collects stale worktrees itself",
        )
        raise typer.Exit(ExitCode.SYNC_FAILED)
    except SyncError as e:
        print_error(f"Garbage collection failed: {e}")
        raise typer.Exit(ExitCode.FATAL)

    if not removed:
        console.print("[dim]Nothing to remove[/dim]")
        return
    for path in removed:
        console.print(f"[green]✓[/green] Removed {path}")
