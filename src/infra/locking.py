"""Advisory lock shared by the reconciliation pass and the backup run."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout
from loguru import logger

from src.infra.errors import LockError


@contextmanager
def advisory_lock(path: Path) -> Iterator[Path]:
    """Hold an exclusive lock on path for the block, without waiting.

    Raises:
        LockError: If another process holds the lock or the lock file
            cannot be opened
    """
    path = Path(path)
    lock = FileLock(str(path), timeout=0)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        lock.acquire()
    except Timeout as e:
        raise LockError(
            f"Another pg-provision operation holds {path}",
            "Wait for the running configure or backup to finish and retry.",
        ) from e
    except OSError as e:
        raise LockError(f"Cannot open lock file {path}", str(e)) from e

    logger.debug(f"Acquired lock {path}")
    try:
        yield path
    finally:
        lock.release()
        logger.debug(f"Released lock {path}")
