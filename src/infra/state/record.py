"""The configuration record shared by every provisioning component.

A flat, typed mapping of setting name to value. Every field has a default so
an absent field always resolves to a value, never to an error. On disk the
record is a ``KEY="value"`` file; field ``port`` is stored as ``DB_PORT``,
``allowed_ips`` as ``ALLOWED_IPS`` and so on (see ``STATE_KEYS``).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConfigRecord(BaseModel):
    """All settings of a provisioned PostgreSQL host."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    pg_version: str = "17"

    # Database
    listen_addresses: str = "0.0.0.0"
    port: int = Field(default=5432, ge=1, le=65535)
    max_connections: int = Field(default=200, ge=1)
    shared_buffers_mb: int = Field(default=256, ge=1)
    effective_cache_mb: int = Field(default=768, ge=1)
    work_mem_mb: int = Field(default=4, ge=1)
    maintenance_work_mem_mb: int = Field(default=64, ge=1)

    # Security
    allowed_ips: list[str] = Field(default_factory=lambda: ["127.0.0.1/32"])
    enable_ssl: bool = True
    ssl_cert_file: str = "/etc/ssl/postgresql/server.crt"
    ssl_key_file: str = "/etc/ssl/postgresql/server.key"
    enable_firewall: bool = True
    ssh_port: int = Field(default=22, ge=1, le=65535)

    # Backups
    enable_backups: bool = True
    backup_schedule: Literal["hourly", "daily", "weekly"] = "daily"
    backup_retention_days: int = Field(default=14, ge=0)
    backup_compression: bool = True
    remote_backup_enabled: bool = False
    s3_bucket: str = ""
    s3_region: str = "us-east-1"

    # WAL / replication
    enable_wal_archiving: bool = False
    wal_archive_destination: str = "/var/lib/postgresql/wal_archive"
    enable_replication: bool = False
    replication_slots: int = Field(default=2, ge=0)

    # Connection pooling
    enable_pgbouncer: bool = True
    pgbouncer_port: int = Field(default=6432, ge=1, le=65535)
    pgbouncer_pool_mode: Literal["session", "transaction", "statement"] = "transaction"
    pgbouncer_max_client_conn: int = Field(default=1000, ge=1)
    pgbouncer_default_pool_size: int = Field(default=25, ge=1)
    pgbouncer_auth_type: Literal["scram-sha-256", "md5"] = "scram-sha-256"

    # Logging
    log_destination: Literal["stderr", "csvlog", "syslog"] = "csvlog"
    log_min_duration: int = Field(default=1000, ge=-1)
    log_connections: bool = True
    log_disconnections: bool = True

    @field_validator("allowed_ips", mode="before")
    @classmethod
    def _split_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("listen_addresses", "pg_version", "s3_bucket", "s3_region")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    def to_state(self) -> dict[str, str]:
        """Serialize every field to its on-disk key and string value."""
        data = self.model_dump()
        return {STATE_KEYS[name]: encode_value(data[name]) for name in FIELD_ORDER}

    @classmethod
    def field_for_state_key(cls, key: str) -> str | None:
        """Map an on-disk key (any case) or a field name to a field name."""
        upper = key.strip().upper()
        if upper in FIELDS_BY_STATE_KEY:
            return FIELDS_BY_STATE_KEY[upper]
        lower = key.strip().lower()
        return lower if lower in cls.model_fields else None


def encode_value(value: Any) -> str:
    """Encode a field value the way the state file stores it."""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, list):
        return ",".join(str(item) for item in value)
    return str(value)


# Field name -> on-disk key. Names follow the original shell state file so an
# existing /etc/postgresql-setup.state keeps loading.
STATE_KEYS: dict[str, str] = {
    "pg_version": "PG_VERSION",
    "listen_addresses": "DB_LISTEN_ADDRESSES",
    "port": "DB_PORT",
    "max_connections": "DB_MAX_CONNECTIONS",
    "shared_buffers_mb": "DB_SHARED_BUFFERS",
    "effective_cache_mb": "DB_EFFECTIVE_CACHE",
    "work_mem_mb": "DB_WORK_MEM",
    "maintenance_work_mem_mb": "DB_MAINTENANCE_WORK_MEM",
    "allowed_ips": "ALLOWED_IPS",
    "enable_ssl": "ENABLE_SSL",
    "ssl_cert_file": "SSL_CERT_FILE",
    "ssl_key_file": "SSL_KEY_FILE",
    "enable_firewall": "ENABLE_FIREWALL",
    "ssh_port": "SSH_PORT",
    "enable_backups": "ENABLE_BACKUPS",
    "backup_schedule": "BACKUP_SCHEDULE",
    "backup_retention_days": "BACKUP_RETENTION_DAYS",
    "backup_compression": "BACKUP_COMPRESSION",
    "remote_backup_enabled": "REMOTE_BACKUP_ENABLED",
    "s3_bucket": "S3_BUCKET",
    "s3_region": "S3_REGION",
    "enable_wal_archiving": "ENABLE_WAL_ARCHIVING",
    "wal_archive_destination": "WAL_ARCHIVE_DESTINATION",
    "enable_replication": "ENABLE_REPLICATION",
    "replication_slots": "REPLICATION_SLOTS",
    "enable_pgbouncer": "ENABLE_PGBOUNCER",
    "pgbouncer_port": "PGBOUNCER_PORT",
    "pgbouncer_pool_mode": "PGBOUNCER_POOL_MODE",
    "pgbouncer_max_client_conn": "PGBOUNCER_MAX_CLIENT_CONN",
    "pgbouncer_default_pool_size": "PGBOUNCER_DEFAULT_POOL_SIZE",
    "pgbouncer_auth_type": "PGBOUNCER_AUTH_TYPE",
    "log_destination": "LOG_DESTINATION",
    "log_min_duration": "LOG_MIN_DURATION",
    "log_connections": "LOG_CONNECTIONS",
    "log_disconnections": "LOG_DISCONNECTIONS",
}

FIELD_ORDER: tuple[str, ...] = tuple(STATE_KEYS)
FIELDS_BY_STATE_KEY: dict[str, str] = {v: k for k, v in STATE_KEYS.items()}
