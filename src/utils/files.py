"""Crash-safe file helpers shared by the state store and the patchers."""

from __future__ import annotations

import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def atomic_write_text(path: Path, text: str, mode: int | None = None) -> None:
    """Write text to path so readers see either the old or the new file.

    The content goes to a temp file in the same directory, is fsynced and
    then renamed over the target. ``mode`` defaults to the existing file's
    permission bits, or 0o644 for a new file. An existing file's owner and
    group carry over to the replacement, so daemons that read it as their
    own user keep access.
    """
    path = Path(path)
    current = path.stat() if path.exists() else None
    if mode is None:
        mode = current.st_mode & 0o7777 if current else 0o644

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            if current is not None and (current.st_uid, current.st_gid) != (
                os.geteuid(),
                os.getegid(),
            ):
                os.fchown(f.fileno(), current.st_uid, current.st_gid)
            os.fchmod(f.fileno(), mode)
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def backup_copy(path: Path, now: datetime | None = None) -> Path:
    """Copy path to ``<path>.backup.<YYYYmmdd_HHMMSS>`` and return the copy."""
    stamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
    target = path.with_name(f"{path.name}.backup.{stamp}")
    shutil.copy2(path, target)
    return target
