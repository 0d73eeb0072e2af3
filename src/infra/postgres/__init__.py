"""PostgreSQL host management infrastructure.

This module provides Python implementations of the PostgreSQL operations the
provisioning engine and the CLI need: connection management, role/database
and pooler credential provisioning, backup and retention, restore, service
reloads and status reporting.
"""

from .backup import BackupArtifact, BackupManager
from .connection import DbSettings, PostgresConnection
from .credentials import CredentialPair, CredentialProvisioner
from .pooler import UserList, pooler_hash, verify_pooler_secret
from .restore import RestoreResult, RestoreWorkflow
from .services import ServiceManager
from .status import StatusReporter

__all__ = [
    "DbSettings",
    "PostgresConnection",
    "CredentialPair",
    "CredentialProvisioner",
    "UserList",
    "pooler_hash",
    "verify_pooler_secret",
    "BackupArtifact",
    "BackupManager",
    "RestoreResult",
    "RestoreWorkflow",
    "ServiceManager",
    "StatusReporter",
]
