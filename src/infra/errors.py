"""Typed failures raised by the provisioning engine.

Lower-level components raise these with enough context (file, key, rule,
database) for an operator to fix the problem and re-run. The CLI turns them
into a message panel and a non-zero exit code.
"""

from __future__ import annotations

from pathlib import Path


class ProvisioningError(Exception):
    """Raised when a provisioning operation fails."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigError(ProvisioningError):
    """Raised when caller-supplied configuration values are invalid."""


class PatchError(ProvisioningError):
    """Raised when a directive cannot be applied to a configuration file."""

    def __init__(
        self,
        path: Path,
        key: str | None,
        reason: str,
        details: str | None = None,
    ):
        self.path = Path(path)
        self.key = key
        self.reason = reason
        target = f"{key!r} in {path}" if key else str(path)
        super().__init__(f"Patch failed for {target}: {reason}", details)


class CredentialError(ProvisioningError):
    """Raised when a role/database/pooler credential cannot be provisioned."""


class BackupError(ProvisioningError):
    """Raised when a backup artifact cannot be produced."""


class RestoreError(ProvisioningError):
    """Raised when a backup artifact cannot be validated or applied."""


class LockError(ProvisioningError):
    """Raised when another provisioning operation holds the advisory lock."""


class HostError(ProvisioningError):
    """Raised for fatal host conditions (missing privilege, unsupported host)."""


class FirewallError(ProvisioningError):
    """Raised when a firewall rule cannot be applied."""
