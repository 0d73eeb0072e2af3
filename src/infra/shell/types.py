"""Data types for shell command results."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CommandResult:
    """Result of a command execution."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    @property
    def output(self) -> str:
        """Combined, stripped output for error details."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


__all__ = ["CommandResult"]
