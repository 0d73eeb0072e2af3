"""UFW firewall commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


class UfwCommands:
    """Thin wrappers around the ``ufw`` binary.

    Rules are read back with ``ufw show added``, which lists every added rule
    as the command that created it, whether or not the firewall is enabled.
    """

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def show_added(self) -> list[str]:
        """Return the added rules as ``ufw ...`` command lines."""
        result = self._runner.run(["ufw", "show", "added"])
        if not result.success:
            return []
        return [
            line.strip()
            for line in result.stdout.splitlines()
            if line.strip().startswith("ufw ")
        ]

    def allow_from(
        self, source: str, port: int, proto: str = "tcp", comment: str | None = None
    ) -> CommandResult:
        cmd = ["ufw", "allow", "from", source, "to", "any", "port", str(port), "proto", proto]
        if comment:
            cmd += ["comment", comment]
        return self._runner.run(cmd)

    def allow_port(
        self, port: int, proto: str = "tcp", comment: str | None = None
    ) -> CommandResult:
        cmd = ["ufw", "allow", f"{port}/{proto}"]
        if comment:
            cmd += ["comment", comment]
        return self._runner.run(cmd)

    def allow_in_on(self, interface: str) -> CommandResult:
        return self._runner.run(["ufw", "allow", "in", "on", interface])

    def default(self, policy: str, direction: str) -> CommandResult:
        return self._runner.run(["ufw", "default", policy, direction])

    def enable(self) -> CommandResult:
        return self._runner.run(["ufw", "--force", "enable"])
