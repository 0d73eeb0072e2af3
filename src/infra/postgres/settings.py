"""postgresql.conf directives derived from the configuration record."""

from __future__ import annotations

from pathlib import Path

from src.infra.constants import ProvisionPaths
from src.infra.state.record import ConfigRecord

from .ssl import chown_postgres


def quote_conf(value: str) -> str:
    """Quote a string value for postgresql.conf (single quotes doubled)."""
    return "'" + value.replace("'", "''") + "'"


def on_off(flag: bool) -> str:
    return "on" if flag else "off"


def archive_command(destination: str) -> str:
    """The WAL archive command for a local directory or an s3:// prefix."""
    if destination.startswith("s3://"):
        prefix = destination if destination.endswith("/") else destination + "/"
        return f"aws s3 cp %p {prefix}%f"
    directory = destination.rstrip("/")
    return f"test ! -f {directory}/%f && cp %p {directory}/%f"


def postgresql_directives(record: ConfigRecord) -> list[tuple[str, str]]:
    """All postgresql.conf settings the configuration pass applies, in order."""
    directives: list[tuple[str, str]] = [
        # Connections
        ("listen_addresses", quote_conf(record.listen_addresses)),
        ("port", str(record.port)),
        ("max_connections", str(record.max_connections)),
        # Memory
        ("shared_buffers", f"{record.shared_buffers_mb}MB"),
        ("effective_cache_size", f"{record.effective_cache_mb}MB"),
        ("work_mem", f"{record.work_mem_mb}MB"),
        ("maintenance_work_mem", f"{record.maintenance_work_mem_mb}MB"),
        # WAL
        ("wal_buffers", "16MB"),
        ("min_wal_size", "1GB"),
        ("max_wal_size", "4GB"),
        ("checkpoint_completion_target", "0.9"),
        ("wal_compression", "on"),
        # Planner
        ("random_page_cost", "1.1"),
        ("effective_io_concurrency", "200"),
        # Autovacuum
        ("autovacuum", "on"),
        ("autovacuum_max_workers", "3"),
        ("autovacuum_naptime", "10s"),
        # Logging
        ("logging_collector", "on"),
        ("log_destination", quote_conf(record.log_destination)),
        ("log_directory", quote_conf("log")),
        ("log_filename", quote_conf("postgresql-%Y-%m-%d_%H%M%S.log")),
        ("log_rotation_age", "1d"),
        ("log_rotation_size", "100MB"),
        ("log_min_duration_statement", str(record.log_min_duration)),
        ("log_connections", on_off(record.log_connections)),
        ("log_disconnections", on_off(record.log_disconnections)),
        ("log_line_prefix", quote_conf("%t [%p]: [%l-1] user=%u,db=%d,app=%a,client=%h ")),
        ("log_lock_waits", "on"),
        ("log_temp_files", "0"),
        ("log_autovacuum_min_duration", "0"),
        # Statistics
        ("track_activities", "on"),
        ("track_counts", "on"),
        ("track_io_timing", "on"),
        ("track_functions", "all"),
    ]

    if record.enable_replication:
        directives += [
            ("wal_level", "replica"),
            ("max_wal_senders", "10"),
            ("max_replication_slots", str(record.replication_slots)),
            ("hot_standby", "on"),
        ]

    if record.enable_wal_archiving:
        directives += [
            ("archive_mode", "on"),
            ("archive_command", quote_conf(archive_command(record.wal_archive_destination))),
        ]

    return directives


def ssl_directives(record: ConfigRecord) -> list[tuple[str, str]]:
    if not record.enable_ssl:
        return [("ssl", "off")]
    return [
        ("ssl", "on"),
        ("ssl_cert_file", quote_conf(record.ssl_cert_file)),
        ("ssl_key_file", quote_conf(record.ssl_key_file)),
        ("ssl_prefer_server_ciphers", "on"),
        ("ssl_ciphers", quote_conf("HIGH:MEDIUM:+3DES:!aNULL")),
    ]


def prepare_wal_archive(record: ConfigRecord, paths: ProvisionPaths) -> Path | None:
    """Create the local WAL archive directory (mode 0700) when archiving locally."""
    if not record.enable_wal_archiving or record.wal_archive_destination.startswith("s3://"):
        return None
    directory = paths.host_path(record.wal_archive_destination)
    directory.mkdir(parents=True, exist_ok=True)
    directory.chmod(0o700)
    chown_postgres(directory)
    return directory
