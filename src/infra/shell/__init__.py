"""Host command abstractions used by the provisioning engine.

This package wraps every external binary the engine drives:

- systemctl: service reload/restart/state
- ufw: firewall rules
- postgres: pg_isready, pg_dump, pg_dumpall, pg_restore, psql
- aws: backup offload to S3
- openssl: self-signed bootstrap certificate

Usage:
    from src.infra.shell import ShellCommands

    commands = ShellCommands()
    if not commands.systemctl.is_active("postgresql"):
        commands.systemctl.restart("postgresql")
"""

from pathlib import Path

from .aws import AwsCommands
from .openssl import OpenSSLCommands
from .postgres import ClientTarget, PostgresTools
from .runner import CommandRunner
from .systemctl import SystemctlCommands
from .types import CommandResult
from .ufw import UfwCommands


class ShellCommands:
    """Unified interface for all host command operations.

    Attributes:
        systemctl: Service management commands
        ufw: Firewall commands
        postgres: PostgreSQL client tools
        aws: Object storage commands
        openssl: Certificate commands
    """

    def __init__(self, cwd: Path | None = None, runner: CommandRunner | None = None) -> None:
        """Initialize the shell commands executor.

        Args:
            cwd: Working directory for commands
            runner: Pre-built runner (tests inject a mock here)
        """
        self._runner = runner or CommandRunner(cwd)

        self.systemctl = SystemctlCommands(self._runner)
        self.ufw = UfwCommands(self._runner)
        self.postgres = PostgresTools(self._runner)
        self.aws = AwsCommands(self._runner)
        self.openssl = OpenSSLCommands(self._runner)

    @property
    def runner(self) -> CommandRunner:
        return self._runner


__all__ = [
    "ShellCommands",
    "CommandResult",
    "CommandRunner",
    "ClientTarget",
    "SystemctlCommands",
    "UfwCommands",
    "PostgresTools",
    "AwsCommands",
    "OpenSSLCommands",
]
