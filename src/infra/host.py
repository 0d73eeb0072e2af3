"""Host checks and memory-based tuning suggestions."""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

from src.infra.errors import HostError

SUPPORTED_DISTRIBUTIONS = ("ubuntu", "debian")


def require_root() -> None:
    """Raise HostError unless running with effective UID 0."""
    if os.geteuid() != 0:
        raise HostError(
            "This command must be run as root",
            "Re-run with sudo; it edits files under /etc and manages system services.",
        )


def read_os_release(path: Path) -> dict[str, str]:
    """Parse an os-release file into a dict."""
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip() and not key.startswith("#"):
            values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def check_os(path: Path) -> str | None:
    """Return the distribution ID, warning on anything but Ubuntu/Debian.

    Returns None if the os-release file cannot be read.
    """
    try:
        release = read_os_release(path)
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return None

    distro = release.get("ID", "").lower()
    if distro not in SUPPORTED_DISTRIBUTIONS:
        logger.warning(
            f"Detected OS {release.get('PRETTY_NAME') or distro or 'unknown'}; "
            "only Ubuntu and Debian are supported"
        )
    return distro


def total_memory_mb(meminfo: Path) -> int:
    """Read MemTotal from a /proc/meminfo style file.

    Raises:
        HostError: If the file is unreadable or has no MemTotal line
    """
    try:
        text = meminfo.read_text(encoding="utf-8")
    except OSError as e:
        raise HostError(f"Cannot read {meminfo}", str(e)) from e

    for line in text.splitlines():
        if line.startswith("MemTotal:"):
            parts = line.split()
            if len(parts) >= 2 and parts[1].isdigit():
                return int(parts[1]) // 1024
    raise HostError(f"No MemTotal entry in {meminfo}")


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def memory_suggestions(total_mb: int, max_connections: int) -> dict[str, int]:
    """Derive memory settings from total RAM.

    shared buffers = 1/4 RAM (256-8192 MB), effective cache = 3/4 RAM,
    work mem = RAM / connections / 2 (4-128 MB), maintenance = RAM / 16 (min 64 MB).
    """
    return {
        "shared_buffers_mb": _clamp(total_mb // 4, 256, 8192),
        "effective_cache_mb": max(1, total_mb * 3 // 4),
        "work_mem_mb": _clamp(total_mb // max(1, max_connections) // 2, 4, 128),
        "maintenance_work_mem_mb": max(64, total_mb // 16),
    }
