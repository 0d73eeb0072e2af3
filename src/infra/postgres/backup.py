"""PostgreSQL backup and retention.

Dumps every non-template database in custom format, dumps the cluster
globals, writes SHA256 checksums, deletes artifacts past the retention
threshold and optionally mirrors the backup directory to S3.
"""

from __future__ import annotations

import hashlib
import socket
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Literal

import psycopg2
from loguru import logger

from src.cli.shared.console import console
from src.infra.constants import DEFAULT_CONSTANTS, ProvisionPaths
from src.infra.errors import BackupError
from src.infra.locking import advisory_lock
from src.infra.shell import ClientTarget, ShellCommands
from src.infra.state.record import ConfigRecord

from .connection import PostgresConnection

ArtifactFormat = Literal["custom", "sql"]

CHECKSUM_SUFFIX = ".sha256"


@dataclass(frozen=True)
class BackupArtifact:
    """One backup file. Never modified after it is written."""

    database: str
    timestamp: datetime
    format: ArtifactFormat
    path: Path
    remote_uri: str | None = None

    @property
    def checksum_path(self) -> Path:
        return checksum_path_for(self.path)


def checksum_path_for(path: Path) -> Path:
    return path.with_name(path.name + CHECKSUM_SUFFIX)


def sha256_file(path: Path) -> str:
    """Calculate SHA256 checksum of file."""
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def parse_artifact_name(path: Path) -> tuple[str, datetime, str] | None:
    """Split a managed file name into (unit, timestamp, extension).

    Returns None for files the manager does not own.
    """
    match = DEFAULT_CONSTANTS.ARTIFACT_PATTERN.match(path.name)
    if not match:
        return None
    try:
        stamp = datetime.strptime(match.group("stamp"), DEFAULT_CONSTANTS.ARTIFACT_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return match.group("unit"), stamp, match.group("ext")


class BackupManager:
    """Creates PostgreSQL backups and applies the retention policy.

    Artifacts:
    - ``<database>_<YYYYmmdd_HHMMSS>.dump``: custom format, one per database
    - ``globals_<YYYYmmdd_HHMMSS>.sql``: roles and tablespaces
    - ``<artifact>.sha256``: checksum file next to each artifact
    """

    def __init__(
        self,
        connection: PostgresConnection,
        commands: ShellCommands,
        record: ConfigRecord,
        paths: ProvisionPaths,
        *,
        clock: Callable[[], datetime] = datetime.now,
        hostname: str | None = None,
    ) -> None:
        self._connection = connection
        self._settings = connection.settings
        self._commands = commands
        self._record = record
        self._paths = paths
        self._clock = clock
        self._hostname = hostname or socket.gethostname()
        self._console = console

    @property
    def backup_dir(self) -> Path:
        return self._paths.backup_dir

    def run_backup(self) -> list[BackupArtifact]:
        """Back up every database, apply retention, then offload.

        Raises:
            BackupError: If a dump fails (retention does not run then)
            LockError: If a configuration pass or another backup is running
        """
        with advisory_lock(self._paths.lock_file):
            artifacts = self._create_artifacts()
            removed = self.apply_retention()
            if removed:
                self._console.info(f"Cleaned up {len(removed)} old backup file(s)")
            return self._offload(artifacts)

    def _create_artifacts(self) -> list[BackupArtifact]:
        s = self._settings.ensure_superuser_password()
        target = ClientTarget(s.host, s.port, s.superuser, s.superuser_password)
        now = self._clock()
        stamp = now.strftime(DEFAULT_CONSTANTS.ARTIFACT_TIMESTAMP_FORMAT)

        self._console.print("\n[bold]== Creating PostgreSQL Backup ==[/bold]")
        self._console.info(f"Host: {s.host}:{s.port}")
        self._console.info(f"Backup dir: {self.backup_dir}")

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            self.backup_dir.chmod(0o700)
        except OSError as e:
            raise BackupError(f"Cannot prepare backup directory {self.backup_dir}", str(e)) from e

        databases = self._list_databases()
        artifacts: list[BackupArtifact] = []
        for database in databases:
            path = self.backup_dir / f"{database}_{stamp}.dump"
            result = self._commands.postgres.dump(
                target, database, path, compress=self._record.backup_compression
            )
            if not result.success:
                path.unlink(missing_ok=True)
                raise BackupError(f"pg_dump failed for database {database!r}", result.stderr)
            artifacts.append(self._finish(BackupArtifact(database, now, "custom", path)))
            self._console.ok(f"{database}: {path.name}")

        globals_path = self.backup_dir / f"globals_{stamp}.sql"
        result = self._commands.postgres.dump_globals(target, globals_path)
        if not result.success:
            globals_path.unlink(missing_ok=True)
            raise BackupError("pg_dumpall --globals-only failed", result.stderr)
        artifacts.append(self._finish(BackupArtifact("globals", now, "sql", globals_path)))
        self._console.ok(f"globals: {globals_path.name}")
        return artifacts

    def _list_databases(self) -> list[str]:
        try:
            rows = self._connection.execute(
                "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"
            )
        except psycopg2.Error as e:
            raise BackupError("Cannot list databases to back up", str(e)) from e
        finally:
            self._connection.close()
        return [row["datname"] for row in rows]

    def _finish(self, artifact: BackupArtifact) -> BackupArtifact:
        try:
            checksum = sha256_file(artifact.path)
            artifact.checksum_path.write_text(f"{checksum}  {artifact.path.name}\n")
        except OSError as e:
            raise BackupError(f"Cannot checksum backup {artifact.path}", str(e)) from e
        logger.info(f"Backup written: {artifact.path}")
        return artifact

    def apply_retention(self, now: datetime | None = None) -> list[Path]:
        """Delete managed files whose age in whole days exceeds the threshold.

        Age comes from the timestamp in the file name. Files that do not
        follow the artifact naming scheme are never touched.
        """
        now = now or self._clock()
        threshold = self._record.backup_retention_days
        removed: list[Path] = []
        if not self.backup_dir.is_dir():
            return removed

        for path in sorted(self.backup_dir.iterdir()):
            parsed = parse_artifact_name(path)
            if parsed is None or not path.is_file():
                continue
            age_days = (now - parsed[1]).days
            if age_days > threshold:
                try:
                    path.unlink()
                except OSError as e:
                    logger.warning(f"Cannot delete expired backup {path}: {e}")
                    continue
                logger.info(f"Deleted expired backup {path.name} ({age_days} days old)")
                removed.append(path)
        return removed

    def remote_destination(self) -> str:
        bucket = self._record.s3_bucket.rstrip("/")
        if not bucket.startswith("s3://"):
            bucket = f"s3://{bucket}"
        return f"{bucket}/{DEFAULT_CONSTANTS.REMOTE_BACKUP_PREFIX}/{self._hostname}/"

    def _offload(self, artifacts: list[BackupArtifact]) -> list[BackupArtifact]:
        if not (self._record.remote_backup_enabled and self._record.s3_bucket):
            return artifacts

        destination = self.remote_destination()
        result = self._commands.aws.s3_sync(
            self.backup_dir, destination, region=self._record.s3_region or None
        )
        if not result.success:
            logger.warning(f"Remote sync to {destination} failed: {result.output}")
            self._console.warn(f"Remote sync to {destination} failed; local backups kept")
            return artifacts

        self._console.ok(f"Synced backups to {destination}")
        return [replace(a, remote_uri=destination + a.path.name) for a in artifacts]

    def list_artifacts(self) -> list[BackupArtifact]:
        """List backup artifacts in the backup directory, newest first."""
        if not self.backup_dir.is_dir():
            return []
        artifacts: list[BackupArtifact] = []
        for path in self.backup_dir.iterdir():
            parsed = parse_artifact_name(path)
            if parsed is None or path.name.endswith(CHECKSUM_SUFFIX) or not path.is_file():
                continue
            unit, stamp, ext = parsed
            fmt: ArtifactFormat = "sql" if ext.endswith("sql") else "custom"
            artifacts.append(BackupArtifact(unit, stamp, fmt, path))
        return sorted(artifacts, key=lambda a: (a.timestamp, a.path.name), reverse=True)
