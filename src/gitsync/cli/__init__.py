"""
gitsync CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys
from typing import Annotated

import typer
from rich.console import Console

from gitsync import __version__
from gitsync.cli import run, status
from gitsync.cli.argv import preprocess_argv
from gitsync.core.config.env import load_layered_env

app = typer.Typer(
    name="gitsync",
    help="Keep a local directory in sync with a remote git reference",
    no_args_is_help=False,
    invoke_without_command=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for all commands.

    Args:
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    debug: Annotated[
        bool, typer.Option("--debug", "-v", help="Enable debug output with detailed logging")
    ] = False,
) -> None:
    """
    gitsync - sync a remote git reference into a local directory.

    Resolves a branch, tag or commit on the remote, checks it out into a
    worktree under --root and atomically repoints a symlink at it. Readers
    following the symlink always see one complete checkout.

    Quick Start:
        gitsync run --repo https://github.com/example/app.git --root /git
        ls /git/app                  # the synced checkout

    Settings can also come from GITSYNC_* variables, .env files and
    gitsync.json. Running gitsync without a subcommand is the same as
    `gitsync run`.
    """
    # Precedence: OS env > project .env > user .env
    load_layered_env()
    setup_logging(debug)

    ctx.obj = {"debug": debug}

    if ctx.invoked_subcommand is None:
        run.run()


app.command(name="run")(run.run)
app.command(name="status")(status.status)
app.command(name="collect")(status.collect)


@app.command()
def version() -> None:
    """Show gitsync version and exit."""
    console.print(f"gitsync version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """
    Main CLI entry point.

    The argv preprocessor normalizes common patterns before Typer parses
    them (e.g. ``gitsync --version``, ``gitsync run --debug``).
    """
    sys.argv[1:] = preprocess_argv(sys.argv[1:])
    app()


__all__ = ["app", "cli_main"]
