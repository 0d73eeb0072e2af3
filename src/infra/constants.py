"""Provisioning constants and host paths.

This module centralizes all magic strings, paths, and default values used
throughout the provisioning engine.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from src.utils.paths import get_host_root


@dataclass(frozen=True)
class ProvisionConstants:
    """Constants for PostgreSQL host provisioning.

    All attributes are class-level and immutable.
    """

    TOOL_NAME: str = "pg-provision"
    TOOL_VERSION: str = "1.1.0"
    DEFAULT_PG_VERSION: str = "17"

    # systemd units
    POSTGRES_SERVICE: str = "postgresql"
    PGBOUNCER_SERVICE: str = "pgbouncer"

    # OS accounts
    POSTGRES_OS_USER: str = "postgres"
    SUPERUSER: str = "postgres"
    MAINTENANCE_DB: str = "postgres"

    # Authentication
    AUTH_METHOD: str = "scram-sha-256"
    SCRAM_ITERATIONS: int = 4096

    # Settings a reload does not apply; changing them needs a service restart
    POSTGRES_RESTART_SETTINGS: frozenset[str] = frozenset(
        {
            "listen_addresses",
            "port",
            "max_connections",
            "shared_buffers",
            "wal_buffers",
            "autovacuum_max_workers",
            "logging_collector",
            "wal_level",
            "max_wal_senders",
            "max_replication_slots",
            "hot_standby",
            "archive_mode",
        }
    )
    PGBOUNCER_RESTART_SETTINGS: frozenset[str] = frozenset({"listen_addr", "listen_port"})

    # Firewall rule labels
    POSTGRES_RULE_LABEL: str = "PostgreSQL"
    PGBOUNCER_RULE_LABEL: str = "PgBouncer"
    SSH_RULE_LABEL: str = "SSH"

    # Timeouts (seconds)
    READY_TIMEOUT: int = 30
    COMMAND_TIMEOUT: int = 3600

    # Remote backup prefix under the bucket
    REMOTE_BACKUP_PREFIX: str = "postgresql-backups"

    # Managed backup artifact names: <unit>_<YYYYmmdd>_<HHMMSS>.<ext>
    ARTIFACT_PATTERN: re.Pattern[str] = re.compile(
        r"^(?P<unit>.+)_(?P<stamp>\d{8}_\d{6})\.(?P<ext>[A-Za-z0-9.]+)$"
    )
    ARTIFACT_TIMESTAMP_FORMAT: str = "%Y%m%d_%H%M%S"

    # Role and database identifiers accepted by the credential provisioner
    IDENTIFIER_PATTERN: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

    # Cron expressions per backup schedule
    CRON_SCHEDULES: tuple[tuple[str, str], ...] = (
        ("hourly", "0 * * * *"),
        ("daily", "0 2 * * *"),
        ("weekly", "0 2 * * 0"),
    )

    def cron_for(self, schedule: str) -> str:
        """Return the cron expression for a backup schedule (daily if unknown)."""
        return dict(self.CRON_SCHEDULES).get(schedule, "0 2 * * *")


class ProvisionPaths:
    """Path resolver for every file and directory the engine touches.

    All absolute host paths are joined under ``root`` so the engine can run
    against a scratch tree (``PG_PROVISION_ROOT``) as well as ``/``.
    """

    def __init__(self, root: Path | None = None, pg_version: str | None = None) -> None:
        """Initialize provisioning paths.

        Args:
            root: Host root directory (defaults to PG_PROVISION_ROOT or /)
            pg_version: PostgreSQL major version for the config directory
        """
        self._root = Path(root) if root is not None else get_host_root()
        self._pg_version = pg_version or DEFAULT_CONSTANTS.DEFAULT_PG_VERSION

    def _host(self, absolute: str) -> Path:
        return self._root / absolute.lstrip("/")

    def for_version(self, pg_version: str) -> ProvisionPaths:
        """Return paths for another PostgreSQL major version, same root."""
        return ProvisionPaths(self._root, pg_version)

    @property
    def root(self) -> Path:
        """Get the host root."""
        return self._root

    @property
    def pg_version(self) -> str:
        return self._pg_version

    @property
    def state_file(self) -> Path:
        """Get path to the persisted configuration record."""
        return self._host("/etc/postgresql-setup.state")

    @property
    def lock_file(self) -> Path:
        """Get path to the advisory lock shared by configure and backup."""
        return self._host("/run/pg-provision.lock")

    @property
    def log_dir(self) -> Path:
        return self._host("/var/log/postgresql-setup")

    @property
    def pg_conf_dir(self) -> Path:
        """Get path to the PostgreSQL cluster configuration directory."""
        return self._host(f"/etc/postgresql/{self._pg_version}/main")

    @property
    def pg_conf(self) -> Path:
        return self.pg_conf_dir / "postgresql.conf"

    @property
    def pg_hba(self) -> Path:
        return self.pg_conf_dir / "pg_hba.conf"

    @property
    def ssl_dir(self) -> Path:
        return self._host("/etc/ssl/postgresql")

    @property
    def pgbouncer_ini(self) -> Path:
        return self._host("/etc/pgbouncer/pgbouncer.ini")

    @property
    def pgbouncer_userlist(self) -> Path:
        """Get path to the pooler credential store."""
        return self._host("/etc/pgbouncer/userlist.txt")

    @property
    def backup_dir(self) -> Path:
        return self._host("/var/backups/postgresql")

    @property
    def cron_file(self) -> Path:
        return self._host("/etc/cron.d/postgresql-maintenance")

    @property
    def os_release(self) -> Path:
        return self._host("/etc/os-release")

    @property
    def meminfo(self) -> Path:
        return self._host("/proc/meminfo")

    def host_path(self, absolute: str | Path) -> Path:
        """Map an absolute host path (e.g. a configured cert path) under root."""
        return self._host(str(absolute))


DEFAULT_CONSTANTS = ProvisionConstants()


def get_default_paths() -> ProvisionPaths:
    """Build paths from the current environment."""
    return ProvisionPaths(pg_version=os.environ.get("PG_PROVISION_PG_VERSION"))
