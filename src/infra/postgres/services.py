"""Reload and restart of the PostgreSQL and PgBouncer services."""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from src.cli.shared.console import console
from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.errors import ProvisioningError
from src.infra.shell import ClientTarget, ShellCommands


class ServiceManager:
    """Applies configuration changes to the running services."""

    def __init__(
        self,
        commands: ShellCommands,
        target: ClientTarget,
        *,
        ready_timeout: int = DEFAULT_CONSTANTS.READY_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._commands = commands
        self._target = target
        self._ready_timeout = ready_timeout
        self._sleep = sleep
        self._console = console

    def reload_postgres(self) -> None:
        """Reload PostgreSQL, restarting it if the reload is refused.

        Raises:
            ProvisioningError: If neither reload nor restart succeeds
        """
        service = DEFAULT_CONSTANTS.POSTGRES_SERVICE
        result = self._commands.systemctl.reload_or_restart(service)
        if not result.success:
            raise ProvisioningError(
                f"Failed to reload or restart {service}",
                self._commands.systemctl.status(service) or result.output,
            )
        logger.info(f"{service} reloaded")

    def reload_pgbouncer(self) -> None:
        service = DEFAULT_CONSTANTS.PGBOUNCER_SERVICE
        result = self._commands.systemctl.reload_or_restart(service)
        if not result.success:
            raise ProvisioningError(
                f"Failed to reload or restart {service}",
                self._commands.systemctl.status(service) or result.output,
            )
        logger.info(f"{service} reloaded")

    def wait_until_ready(self) -> bool:
        """Poll pg_isready until it succeeds or the timeout passes."""
        deadline = time.monotonic() + self._ready_timeout
        while True:
            if self._commands.postgres.is_ready(self._target):
                return True
            if time.monotonic() >= deadline:
                return False
            self._sleep(1)

    def restart(self) -> None:
        """Restart PostgreSQL, wait for it, then restart PgBouncer if it runs.

        Raises:
            ProvisioningError: If PostgreSQL does not come back
        """
        self.restart_postgres()
        if self._commands.systemctl.is_active(DEFAULT_CONSTANTS.PGBOUNCER_SERVICE):
            self.restart_pgbouncer()

    def restart_postgres(self) -> None:
        pg = DEFAULT_CONSTANTS.POSTGRES_SERVICE
        self._console.info(f"Restarting {pg}...")
        result = self._commands.systemctl.restart(pg)
        if not result.success or not self.wait_until_ready():
            raise ProvisioningError(
                f"{pg} failed to start",
                self._commands.systemctl.status(pg) or result.output,
            )
        self._console.ok(f"{pg} restarted and accepting connections")

    def restart_pgbouncer(self) -> None:
        bouncer = DEFAULT_CONSTANTS.PGBOUNCER_SERVICE
        self._console.info(f"Restarting {bouncer}...")
        result = self._commands.systemctl.restart(bouncer)
        if not result.success:
            raise ProvisioningError(
                f"{bouncer} failed to restart",
                self._commands.systemctl.status(bouncer) or result.output,
            )
        self._console.ok(f"{bouncer} restarted")
