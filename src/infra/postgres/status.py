"""PostgreSQL host status report."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import psycopg2
from rich.table import Table

from src.cli.shared.console import console
from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.shell import ClientTarget, ShellCommands

from .connection import PostgresConnection

CONNECTIONS_SQL = """
SELECT count(*) FILTER (WHERE state = 'active') AS active,
       count(*) AS total,
       current_setting('max_connections')::int AS max
FROM pg_stat_activity
"""

SIZES_SQL = """
SELECT datname AS database, pg_size_pretty(pg_database_size(datname)) AS size
FROM pg_database
WHERE datistemplate = false
ORDER BY pg_database_size(datname) DESC
"""

LONG_RUNNING_SQL = """
SELECT pid, now() - query_start AS duration, state, left(query, 80) AS query
FROM pg_stat_activity
WHERE (now() - query_start) > interval '1 minute'
  AND state != 'idle'
ORDER BY duration DESC
"""


@dataclass
class HostStatus:
    services: dict[str, bool] = field(default_factory=dict)
    accepting_connections: bool = False
    connections: dict[str, Any] | None = None
    sizes: list[dict[str, Any]] = field(default_factory=list)
    long_running: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None


class StatusReporter:
    """Collects and prints service, connection and database status."""

    def __init__(self, connection: PostgresConnection, commands: ShellCommands) -> None:
        self._connection = connection
        self._settings = connection.settings
        self._commands = commands
        self._console = console

    def collect(self) -> HostStatus:
        status = HostStatus()
        for service in (DEFAULT_CONSTANTS.POSTGRES_SERVICE, DEFAULT_CONSTANTS.PGBOUNCER_SERVICE):
            status.services[service] = self._commands.systemctl.is_active(service)

        s = self._settings
        status.accepting_connections = self._commands.postgres.is_ready(
            ClientTarget(s.host, s.port, s.superuser)
        )
        if not status.accepting_connections:
            return status

        try:
            rows = self._connection.execute(CONNECTIONS_SQL)
            status.connections = rows[0] if rows else None
            status.sizes = self._connection.execute(SIZES_SQL)
            status.long_running = self._connection.execute(LONG_RUNNING_SQL)
        except psycopg2.Error as e:
            status.error = str(e).strip()
        finally:
            self._connection.close()
        return status

    def render(self, status: HostStatus) -> None:
        self._console.print_banner(
            "PostgreSQL Status Report", f"{self._settings.host}:{self._settings.port}"
        )

        services = Table(title="Services")
        services.add_column("Service", style="cyan")
        services.add_column("State")
        for name, active in status.services.items():
            services.add_row(name, "[green]active[/green]" if active else "[red]inactive[/red]")
        self._console.print(services)

        if status.accepting_connections:
            self._console.ok("PostgreSQL is accepting connections")
        else:
            self._console.error("PostgreSQL is NOT accepting connections")
            return

        if status.error:
            self._console.warn(f"Could not query statistics: {status.error}")
            return

        if status.connections:
            c = status.connections
            self._console.info(
                f"Connections: {c['active']} active / {c['total']} total / {c['max']} max"
            )

        sizes = Table(title="Database Sizes")
        sizes.add_column("Database", style="cyan")
        sizes.add_column("Size", justify="right")
        for row in status.sizes:
            sizes.add_row(row["database"], row["size"])
        self._console.print(sizes)

        if not status.long_running:
            self._console.info("No queries running longer than 1 minute")
            return
        long_running = Table(title="Long Running Queries (>1 minute)")
        long_running.add_column("PID", justify="right")
        long_running.add_column("Duration")
        long_running.add_column("State")
        long_running.add_column("Query")
        for row in status.long_running:
            long_running.add_row(
                str(row["pid"]), str(row["duration"]), str(row["state"]), str(row["query"])
            )
        self._console.print(long_running)
