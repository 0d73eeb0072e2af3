"""The cron file that schedules backups."""

from __future__ import annotations

import shutil

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.state.record import ConfigRecord

CRON_ENV_FILE = "/etc/pg-provision/backup.env"
BACKUP_LOG = "/var/log/postgresql-setup/backup.log"


def render_cron(record: ConfigRecord, executable: str | None = None) -> str:
    """Cron file content running ``pg-provision backup`` on the configured schedule.

    The job reads POSTGRES_PASSWORD from the env file, since it runs without a
    terminal to prompt on.
    """
    executable = executable or shutil.which(DEFAULT_CONSTANTS.TOOL_NAME) or (
        f"/usr/local/bin/{DEFAULT_CONSTANTS.TOOL_NAME}"
    )
    schedule = DEFAULT_CONSTANTS.cron_for(record.backup_schedule)
    return (
        "# PostgreSQL automated maintenance tasks (managed by pg-provision)\n"
        "SHELL=/bin/bash\n"
        "PATH=/usr/local/sbin:/usr/local/bin:/sbin:/bin:/usr/sbin:/usr/bin\n"
        "\n"
        f"# Backup ({record.backup_schedule})\n"
        f"{schedule} root {executable} --env-file {CRON_ENV_FILE} backup "
        f">> {BACKUP_LOG} 2>&1\n"
    )
