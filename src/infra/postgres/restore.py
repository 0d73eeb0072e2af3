"""Restore a backup artifact into a database.

Restoring overwrites objects in the target database, so nothing runs until
the injected confirmation callback agrees.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.errors import RestoreError
from src.infra.shell import ClientTarget, ShellCommands

from .backup import ArtifactFormat, checksum_path_for, sha256_file
from .connection import DbSettings

CUSTOM_FORMAT_MAGIC = b"PGDMP"

ConfirmCallback = Callable[[str], bool]


@dataclass(frozen=True)
class RestoreResult:
    performed: bool
    artifact: Path
    database: str
    format: ArtifactFormat | None = None


def detect_format(path: Path) -> ArtifactFormat:
    """Custom-format archives start with ``PGDMP``; anything else is SQL."""
    with open(path, "rb") as f:
        return "custom" if f.read(len(CUSTOM_FORMAT_MAGIC)) == CUSTOM_FORMAT_MAGIC else "sql"


class RestoreWorkflow:
    """Validates an artifact, asks for confirmation, then applies it."""

    def __init__(
        self,
        commands: ShellCommands,
        settings: DbSettings,
        confirm: ConfirmCallback,
    ) -> None:
        """Initialize the workflow.

        Args:
            commands: Host commands (pg_restore, psql)
            settings: Superuser connection settings
            confirm: Called with a description of the restore; only a True
                return lets it proceed
        """
        self._commands = commands
        self._settings = settings
        self._confirm = confirm

    def restore(
        self,
        artifact_path: Path,
        target_database: str,
        *,
        owner: str | None = None,
    ) -> RestoreResult:
        """Restore an artifact into target_database.

        Raises:
            RestoreError: If the artifact fails validation or the restore fails
        """
        path = Path(artifact_path)
        if owner is not None and not DEFAULT_CONSTANTS.IDENTIFIER_PATTERN.match(owner):
            raise RestoreError(f"Invalid owner role name {owner!r}")

        fmt = self.validate(path)

        message = (
            f"Restore {path.name} into database '{target_database}'. "
            "Existing objects in the target will be dropped and recreated."
        )
        if not self._confirm(message):
            logger.info(f"Restore of {path} into {target_database!r} cancelled")
            return RestoreResult(False, path, target_database, fmt)

        s = self._settings.ensure_superuser_password()
        target = ClientTarget(s.host, s.port, s.superuser, s.superuser_password)
        if fmt == "custom":
            result = self._commands.postgres.restore_archive(
                target, target_database, path, role=owner
            )
        else:
            result = self._commands.postgres.run_sql_file(
                target, target_database, path, role=owner
            )

        if not result.success:
            raise RestoreError(
                f"Restore of {path.name} into database '{target_database}' failed",
                f"{result.stderr.strip()}\n\nTreat '{target_database}' as unreliable and "
                "repeat the restore against a clean target database.",
            )

        logger.info(f"Restored {path} into {target_database!r}")
        return RestoreResult(True, path, target_database, fmt)

    def validate(self, path: Path) -> ArtifactFormat:
        """Check the artifact is a readable, intact backup and return its format.

        Raises:
            RestoreError: If any check fails
        """
        if not path.exists():
            raise RestoreError(f"Backup file not found: {path}")
        if not path.is_file():
            raise RestoreError(f"Backup path is not a regular file: {path}")
        if not os.access(path, os.R_OK):
            raise RestoreError(f"Backup file is not readable: {path}")
        if path.stat().st_size == 0:
            raise RestoreError(f"Backup file is empty: {path}")

        sidecar = checksum_path_for(path)
        if sidecar.exists():
            try:
                expected = sidecar.read_text(encoding="utf-8").split()[0]
            except (OSError, UnicodeDecodeError, IndexError) as e:
                raise RestoreError(f"Cannot read checksum file {sidecar}", str(e)) from e
            actual = sha256_file(path)
            if actual != expected:
                raise RestoreError(
                    f"Checksum mismatch for {path}",
                    f"expected {expected}\nactual   {actual}",
                )

        fmt = detect_format(path)
        if fmt == "custom":
            result = self._commands.postgres.list_archive(path)
            if not result.success:
                raise RestoreError(f"Backup archive is unreadable: {path}", result.stderr)
        return fmt
