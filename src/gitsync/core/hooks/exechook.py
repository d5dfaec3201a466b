"""
Exec hook: run a local command after each publication.

The command runs with the published worktree as its working directory and
receives the publication through environment variables:

- GITSYNC_HASH: published commit hash
- GITSYNC_WORKTREE: absolute path of the published worktree
- GITSYNC_LINK: path of the publication link readers follow

A non-zero exit status, a timeout, or a failure to start the command is a
failed attempt and is retried by the dispatcher.

Example hook script:
    #!/bin/sh
    echo "now serving $GITSYNC_HASH"
    nginx -s reload
"""

import logging
import os
import subprocess
import time
from datetime import datetime
from pathlib import Path

from gitsync.core.config.models import ExecHookConfig
from gitsync.core.hooks.models import HookRecord, HookResult

logger = logging.getLogger(__name__)

# Captured output kept on the result
MAX_OUTPUT_CHARS = 4096


class ExecHook:
    """
    Hook that executes a command in the published worktree.

    Example:
        >>> hook = ExecHook(ExecHookConfig(command="./reload.sh"), Path("/git/app"))
        >>> result = hook.deliver(record)
        >>> result.exit_code
        0
    """

    def __init__(self, config: ExecHookConfig, link_path: Path):
        """
        Initialize the exec hook.

        Args:
            config: Command, arguments and timeout
            link_path: Publication link passed to the command as GITSYNC_LINK
        """
        self.config = config
        self.link_path = link_path

    @property
    def name(self) -> str:
        return self.config.display_name

    def deliver(self, record: HookRecord) -> HookResult:
        """
        Run the command once.

        Args:
            record: The delivery being attempted

        Returns:
            HookResult with execution details
        """
        env = self._build_environment(record)
        command = [self.config.command, *self.config.args]

        start_time = time.time()
        try:
            result = subprocess.run(
                command,
                cwd=str(record.worktree_path),
                env=env,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_seconds,
            )

            duration = time.time() - start_time
            output = (result.stdout + result.stderr)[-MAX_OUTPUT_CHARS:]
            logger.debug(f"{self.name} exited {result.returncode}: {output.strip()}")

            return HookResult(
                success=result.returncode == 0,
                exit_code=result.returncode,
                output=output,
                duration_seconds=duration,
                timestamp=datetime.now(),
                error_message=(
                    None
                    if result.returncode == 0
                    else f"exit code {result.returncode}: {result.stderr.strip()}"
                ),
            )

        except subprocess.TimeoutExpired:
            return HookResult(
                success=False,
                exit_code=-1,
                duration_seconds=time.time() - start_time,
                timestamp=datetime.now(),
                error_message=f"timed out after {self.config.timeout_seconds}s",
            )

        except OSError as e:
            return HookResult(
                success=False,
                exit_code=-1,
                duration_seconds=time.time() - start_time,
                timestamp=datetime.now(),
                error_message=f"failed to execute {self.config.command}: {e}",
            )

    def _build_environment(self, record: HookRecord) -> dict[str, str]:
        """Current process environment plus the publication variables."""
        env = os.environ.copy()
        env["GITSYNC_HASH"] = record.identifier
        env["GITSYNC_WORKTREE"] = str(record.worktree_path)
        env["GITSYNC_LINK"] = str(self.link_path)
        return env
