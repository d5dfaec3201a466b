"""
Standardized error handling and exit codes for the gitsync CLI.

Orchestrators (Kubernetes, systemd) restart or alert on the exit status,
so every way the process can end maps to a stable code.
"""

from enum import IntEnum

from rich.console import Console

from gitsync.core.sync.models import RunResult, RunStatus

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Standard exit codes for gitsync."""

    SUCCESS = 0
    """Sync succeeded (one-shot) or clean shutdown (continuous)."""

    SYNC_FAILED = 1
    """One-shot sync failed with a retryable error."""

    USER_ERROR = 2
    """Invalid configuration or command line (actionable by user)."""

    FATAL = 3
    """Failure threshold exceeded or non-retryable sync error."""

    SIGINT = 130
    """Terminated by a second SIGINT/SIGTERM - Unix standard."""


def exit_code_for(result: RunResult) -> ExitCode:
    """Map how a scheduler run ended to the process exit status."""
    if result.status == RunStatus.FATAL:
        return ExitCode.FATAL
    if result.status == RunStatus.FAILED:
        return ExitCode.SYNC_FAILED
    return ExitCode.SUCCESS


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "No repository configured",
        ...     reason="gitsync needs a remote to sync from",
        ...     solution="gitsync run --repo https://github.com/example/app.git",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{reason}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_config_error(details: str) -> None:
    """Print error when configuration fails validation."""
    print_error(
        "Invalid configuration",
        reason=details,
        solution="gitsync run --help  # or check GITSYNC_* variables and gitsync.json",
    )
