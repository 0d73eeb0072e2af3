"""Command runner for executing host commands.

This module provides the base command execution functionality used by
all specialized command modules (systemctl, ufw, PostgreSQL client tools).
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from loguru import logger

from .types import CommandResult


class CommandRunner:
    """Low-level command executor with consistent result handling.

    Every command module uses this runner for actual execution so tests can
    swap in a single mock.
    """

    def __init__(self, cwd: Path | None = None, timeout: int | None = None) -> None:
        """Initialize the command runner.

        Args:
            cwd: Working directory for commands (defaults to the current one)
            timeout: Default timeout in seconds (None waits forever)
        """
        self.cwd = cwd
        self.timeout = timeout

    def run(
        self,
        cmd: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
        capture_output: bool = True,
        check: bool = False,
        timeout: int | None = None,
    ) -> CommandResult:
        """Execute a command and return a structured result.

        Args:
            cmd: Command and arguments as a sequence
            env: Extra environment variables merged over os.environ
            input_text: Text passed on stdin
            capture_output: Whether to capture stdout/stderr
            check: Whether to raise exception on non-zero exit code
            timeout: Override the runner's default timeout

        Returns:
            CommandResult with success status, output, and return code

        Raises:
            subprocess.CalledProcessError: If check=True and command fails
        """
        full_env = None
        if env:
            full_env = {k: v for k, v in {**os.environ, **env}.items() if v is not None}

        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                list(cmd),
                cwd=self.cwd,
                env=full_env,
                input=input_text,
                capture_output=capture_output,
                text=True,
                check=check,
                timeout=timeout or self.timeout,
            )
        except FileNotFoundError:
            return CommandResult(
                success=False,
                stderr=f"command not found: {cmd[0]}",
                returncode=127,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(
                success=False,
                stderr=f"command timed out after {e.timeout}s: {cmd[0]}",
                returncode=124,
            )

        return CommandResult(
            success=result.returncode == 0,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            returncode=result.returncode,
        )
