"""Self-signed bootstrap certificate for PostgreSQL SSL."""

from __future__ import annotations

import os
import shutil
import socket
from pathlib import Path

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS, ProvisionPaths
from src.infra.errors import ProvisioningError
from src.infra.shell import OpenSSLCommands
from src.infra.state.record import ConfigRecord


def chown_postgres(*paths: Path) -> None:
    """Hand files to the postgres OS user when running as root."""
    if os.geteuid() != 0:
        return
    for path in paths:
        try:
            shutil.chown(path, DEFAULT_CONSTANTS.POSTGRES_OS_USER, DEFAULT_CONSTANTS.POSTGRES_OS_USER)
        except (LookupError, OSError) as e:
            logger.warning(f"Cannot chown {path} to postgres: {e}")


def ensure_certificate(
    record: ConfigRecord,
    paths: ProvisionPaths,
    openssl: OpenSSLCommands,
) -> bool:
    """Generate a self-signed certificate if the cert or key file is missing.

    Existing files are left alone, so operator-supplied certificates survive
    every configuration pass.

    Returns:
        True if a certificate was generated

    Raises:
        ProvisioningError: If openssl fails
    """
    if not record.enable_ssl:
        return False

    cert = paths.host_path(record.ssl_cert_file)
    key = paths.host_path(record.ssl_key_file)
    if cert.exists() and key.exists():
        logger.debug(f"SSL certificate present at {cert}")
        return False

    for directory in {cert.parent, key.parent}:
        directory.mkdir(parents=True, exist_ok=True)
    if paths.ssl_dir.exists():
        paths.ssl_dir.chmod(0o700)

    result = openssl.self_signed_certificate(cert, key, socket.getfqdn())
    if not result.success:
        raise ProvisioningError(f"Failed to generate a self-signed certificate at {cert}", result.stderr)

    key.chmod(0o600)
    cert.chmod(0o644)
    chown_postgres(paths.ssl_dir, cert, key)
    logger.info(f"Generated self-signed certificate {cert}")
    return True
