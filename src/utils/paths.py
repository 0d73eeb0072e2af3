import os
from pathlib import Path


def get_host_root() -> Path:
    """Get the filesystem root the provisioning engine operates on.

    Defaults to ``/``. Setting ``PG_PROVISION_ROOT`` points every host path
    (state file, PostgreSQL and PgBouncer config, backups) into another tree.
    """
    return Path(os.environ.get("PG_PROVISION_ROOT") or "/")
