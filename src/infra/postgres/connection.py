"""PostgreSQL connection management.

Provides the superuser connection settings and a psycopg2 connection wrapper
used by the credential provisioner, backups and status reporting.
"""

from typing import Any, Literal, Self

import psycopg2
import psycopg2.extensions
import psycopg2.extras
from pydantic import BaseModel

from src.cli.shared.secrets import get_password
from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.state.record import ConfigRecord


class DbSettings(BaseModel):
    """Connection settings for administrative operations on the local cluster.

    Built from the configuration record. The superuser password is never
    persisted; it comes from ``POSTGRES_PASSWORD`` or an interactive prompt.
    """

    host: str = "localhost"
    port: int = 5432
    superuser: str = DEFAULT_CONSTANTS.SUPERUSER
    superuser_password: str | None = None
    maintenance_db: str = DEFAULT_CONSTANTS.MAINTENANCE_DB

    def ensure_superuser_password(self) -> Self:
        """Ensure superuser password is set.

        Raises:
            typer.Exit: If no password is available and none was entered
        """
        if not self.superuser_password:
            self.superuser_password = get_password(
                f"Postgres superuser ({self.superuser}) password: ",
                "POSTGRES_PASSWORD",
                confirm=False,
            )
        return self

    @classmethod
    def from_record(cls, record: ConfigRecord, superuser_password: str | None = None) -> "DbSettings":
        """Load settings from the configuration record.

        Args:
            record: Current configuration record
            superuser_password: Optional superuser password override

        Returns:
            DbSettings pointing at the local cluster
        """
        return cls(port=record.port, superuser_password=superuser_password)


class PostgresConnection:
    """PostgreSQL connection manager.

    Uses psycopg2 for database operations. Always connects as the superuser
    over TCP to the local cluster.
    """

    def __init__(
        self,
        settings: DbSettings,
        ssl_mode: Literal["disable", "prefer", "require"] = "prefer",
    ):
        """PostgreSQL connection manager.

        Args:
            settings: Database settings
            ssl_mode: libpq sslmode; the local cluster may not have SSL enabled
        """
        self._settings = settings
        self._ssl_mode = ssl_mode
        self._conn: Any | None = None
        self._current_database: str | None = None  # Track connected database

    def get_dsn(self, database: str | None = None) -> dict[str, Any]:
        """Get connection parameters for psycopg2.connect().

        Args:
            database: Override database name

        Returns:
            Dict of connection parameters
        """
        if not self._settings.superuser_password:
            self._settings.ensure_superuser_password()

        return {
            "host": self._settings.host,
            "port": self._settings.port,
            "dbname": database or self._settings.maintenance_db,
            "user": self._settings.superuser,
            "password": self._settings.superuser_password or "",
            "sslmode": self._ssl_mode,
            "connect_timeout": 5,
        }

    def ensure_connected(self, database: str | None = None) -> Any:
        """Ensure a connection exists, creating one if needed.

        Args:
            database: Override database name

        Returns:
            Active connection
        """
        target_db = database or self._settings.maintenance_db
        # Reconnect if connection is closed or we need a different database
        if (
            self._conn is None
            or self._conn.closed
            or self._current_database != target_db
        ):
            self.close()  # Close existing connection if any
            self._conn = psycopg2.connect(**self.get_dsn(database))
            self._current_database = target_db
        return self._conn

    def close(self) -> None:
        """Close the current connection if open."""
        if self._conn and not self._conn.closed:
            self._conn.close()
        self._conn = None
        self._current_database = None

    def execute(
        self,
        sql: Any,
        params: tuple[Any, ...] | None = None,
        database: str | None = None,
    ) -> list[dict[str, Any]]:
        """Execute SQL and return results as list of dicts.

        Reuses the persistent connection. Use within a context manager or
        call close() when done to properly cleanup.
        """
        conn = self.ensure_connected(database)
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            if cur.description:
                return [dict(row) for row in cur.fetchall()]
            conn.commit()
            return []

    def execute_script(
        self,
        sql: Any,
        params: tuple[Any, ...] | None = None,
        database: str | None = None,
    ) -> None:
        """Execute a statement with autocommit.

        Needed for statements that cannot run inside a transaction block
        (CREATE DATABASE). Accepts plain strings and psycopg2.sql objects.
        """
        conn = self.ensure_connected(database)
        # Must commit/rollback any pending transaction before changing autocommit
        if conn.status != psycopg2.extensions.STATUS_READY:
            conn.rollback()
        old_autocommit = conn.autocommit
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                cur.execute(sql, params)
        finally:
            conn.autocommit = old_autocommit

    def scalar(
        self,
        sql: Any,
        params: tuple[Any, ...] | None = None,
        database: str | None = None,
    ) -> Any:
        """Execute SQL and return single scalar value.

        Reuses the persistent connection. Use within a context manager or
        call close() when done to properly cleanup.
        """
        result = self.execute(sql, params, database)
        if result and result[0]:
            return list(result[0].values())[0]
        return None

    @property
    def settings(self) -> DbSettings:
        """Get the database settings."""
        return self._settings

    def __enter__(self) -> "PostgresConnection":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
