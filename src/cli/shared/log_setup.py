"""Loguru sinks for CLI runs."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger

LOG_FILE_NAME = "setup.log"


def configure_logging(log_dir: Path, *, verbose: bool = False) -> Path | None:
    """Send engine logs to stderr and, when writable, to a rotating file.

    Args:
        log_dir: Directory for the log file
        verbose: Log DEBUG to stderr instead of WARNING

    Returns:
        Path of the log file, or None if the directory is not writable
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "WARNING",
        format="<level>{level: <8}</level> | {message}",
    )

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        return None
    if not os.access(log_dir, os.W_OK):
        return None

    log_file = log_dir / LOG_FILE_NAME
    logger.add(
        log_file,
        level="DEBUG",
        rotation="10 MB",
        retention="14 days",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
    )
    return log_file
