"""CLI command modules.

Command Groups:
- configure: configure, show-config
- database: create-credential, status, restart
- backups: backup, list-backups, restore
"""

from .backups import backup, list_backups, restore
from .configure import configure, show_config
from .database import create_credential, restart, status

__all__ = [
    "configure",
    "show_config",
    "create_credential",
    "status",
    "restart",
    "backup",
    "list_backups",
    "restore",
]
