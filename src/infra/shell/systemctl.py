"""systemd service management commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


class SystemctlCommands:
    """Service lifecycle operations via ``systemctl``."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def is_active(self, service: str) -> bool:
        """Check whether a unit is active."""
        return self._runner.run(["systemctl", "is-active", "--quiet", service]).success

    def reload(self, service: str) -> CommandResult:
        """Send the unit its reload signal (SIGHUP for PostgreSQL/PgBouncer)."""
        return self._runner.run(["systemctl", "reload", service])

    def restart(self, service: str) -> CommandResult:
        return self._runner.run(["systemctl", "restart", service])

    def reload_or_restart(self, service: str) -> CommandResult:
        """Reload a unit, falling back to a restart if the reload fails."""
        result = self.reload(service)
        if result.success:
            return result
        return self.restart(service)

    def enable(self, service: str) -> CommandResult:
        return self._runner.run(["systemctl", "enable", service])

    def status(self, service: str) -> str:
        """Return the human-readable status block for a unit."""
        result = self._runner.run(["systemctl", "status", service, "--no-pager", "-l"])
        return result.output
