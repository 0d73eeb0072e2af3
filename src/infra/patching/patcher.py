"""Idempotent upserts of ``key = value`` directives into configuration files."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from pathlib import Path

from loguru import logger

from src.infra.errors import PatchError
from src.utils.files import atomic_write_text, backup_copy

from .line_model import KEY_RE, ConfigDocument

_FORBIDDEN_CHARS = ("\n", "\r", "\x00")

Directives = Mapping[str, str] | Iterable[tuple[str, str]]


class DirectivePatcher:
    """Applies directives to line-oriented configuration files.

    Each upsert is read-modify-write on the target file: calling it twice with
    the same arguments leaves the file byte-identical, calling it with a new
    value replaces the old one. The first mutation of a file by a patcher
    instance is preceded by a timestamped backup copy of the original.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._backed_up: dict[Path, Path] = {}

    @property
    def backups(self) -> dict[Path, Path]:
        """Original file -> backup copy, for every file this patcher changed."""
        return dict(self._backed_up)

    def upsert(self, path: Path, key: str, value: str, section: str | None = None) -> bool:
        """Ensure ``path`` holds exactly one active line setting key to value.

        Args:
            path: Target configuration file (must exist)
            key: Directive name
            value: Directive value, already formatted for the file
            section: INI section to scope the directive to

        Returns:
            True if the file changed

        Raises:
            PatchError: On a missing/unreadable/unwritable file or a value
                that cannot be encoded on a single line
        """
        path = Path(path)
        self._validate(path, key, value)
        document, original = self._read(path, key)

        document.upsert(key, value, section)
        rendered = document.render()
        if rendered == original:
            logger.debug(f"{path}: {key} already {value}")
            return False

        self._backup_once(path, key)
        try:
            atomic_write_text(path, rendered)
        except OSError as e:
            raise PatchError(path, key, f"cannot write file: {e}") from e

        where = f" [{section}]" if section else ""
        logger.info(f"{path}{where}: {key} = {value}")
        return True

    def upsert_many(
        self, path: Path, directives: Directives, section: str | None = None
    ) -> list[str]:
        """Apply directives in order, one write per directive.

        A failure stops at the failing directive; earlier ones stay applied.

        Returns:
            Keys whose lines changed
        """
        items = directives.items() if isinstance(directives, Mapping) else directives
        changed: list[str] = []
        for key, value in items:
            if self.upsert(path, key, value, section):
                changed.append(key)
        return changed

    def read_directive(self, path: Path, key: str, section: str | None = None) -> str | None:
        """Return the active value for key, or None."""
        document, _ = self._read(Path(path), key)
        return document.get(key, section)

    def _validate(self, path: Path, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise PatchError(path, key, f"value must be a string, got {type(value).__name__}")
        if not KEY_RE.match(key):
            raise PatchError(path, key, "invalid directive name")
        if any(ch in value for ch in _FORBIDDEN_CHARS) or any(
            ch in key for ch in _FORBIDDEN_CHARS
        ):
            raise PatchError(path, key, "invalid value encoding (line break or NUL)")

    def _read(self, path: Path, key: str | None) -> tuple[ConfigDocument, str]:
        if not path.is_file():
            raise PatchError(path, key, "file does not exist")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PatchError(path, key, f"cannot read file: {e}") from e
        return ConfigDocument.parse(text), text

    def _backup_once(self, path: Path, key: str | None) -> None:
        if path in self._backed_up:
            return
        try:
            self._backed_up[path] = backup_copy(path, self._clock())
        except OSError as e:
            raise PatchError(path, key, f"cannot create backup copy: {e}") from e
        logger.debug(f"Backed up {path} to {self._backed_up[path]}")
