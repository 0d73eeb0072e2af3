"""Persistence of the configuration record between runs.

``load`` / ``merge`` / ``save`` are the only places the state file is read or
written. Everything else receives the record as an explicit value.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.errors import ConfigError
from src.utils.files import atomic_write_text

from .record import FIELD_ORDER, ConfigRecord

STATE_FILE_MODE = 0o600

_ESCAPES = {"\\": "\\\\", '"': '\\"', "$": "\\$", "`": "\\`"}


def _quote(value: str) -> str:
    return '"' + "".join(_ESCAPES.get(ch, ch) for ch in value) + '"'


def _unquote(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        quote = raw[0]
        body = raw[1:-1]
        if quote == "'":
            return body
        out: list[str] = []
        chars = iter(body)
        for ch in chars:
            if ch == "\\":
                out.append(next(chars, ""))
            else:
                out.append(ch)
        return "".join(out)
    return raw


class StateStore:
    """Loads, merges and persists the ConfigRecord."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        """Whether a previous run left a state file."""
        return self._path.is_file()

    def load(self) -> ConfigRecord:
        """Read the persisted record, filling missing fields from defaults.

        Content problems never raise: unreadable files yield defaults, bad
        lines and invalid values are skipped with a warning.
        """
        if not self._path.exists():
            logger.info(f"No state file at {self._path}; using defaults")
            return ConfigRecord()

        try:
            text = self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read state file {self._path}: {e}; using defaults")
            return ConfigRecord()

        values = self._parse(text)
        record = self._validate_lenient(values)
        logger.info(f"Loaded previous configuration from {self._path}")
        return record

    def merge(self, base: ConfigRecord, overrides: Mapping[str, Any]) -> ConfigRecord:
        """Apply caller-supplied overrides on top of a loaded record.

        Keys may be field names (``port``) or state keys (``DB_PORT``). Only
        the supplied keys change.

        Raises:
            ConfigError: If a key is unknown or a value fails validation
        """
        updates: dict[str, Any] = {}
        for key, value in overrides.items():
            field = ConfigRecord.field_for_state_key(key)
            if field is None:
                raise ConfigError(f"Unknown configuration key: {key}")
            updates[field] = value

        if not updates:
            return base.model_copy(deep=True)

        try:
            return ConfigRecord.model_validate({**base.model_dump(), **updates})
        except ValidationError as e:
            raise ConfigError("Invalid configuration override", details=str(e)) from e

    def save(self, record: ConfigRecord) -> None:
        """Write the full record atomically with owner-only permissions."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        lines = [
            "# PostgreSQL Setup State File",
            f"# Generated: {datetime.now().isoformat(timespec='seconds')}",
            f"# Version: {DEFAULT_CONSTANTS.TOOL_VERSION}",
            "",
        ]
        lines += [f"{key}={_quote(value)}" for key, value in record.to_state().items()]
        lines += ["", f"SETUP_DATE={_quote(datetime.now().isoformat(timespec='seconds'))}"]
        lines.append('SETUP_COMPLETE="true"')

        atomic_write_text(self._path, "\n".join(lines) + "\n", mode=STATE_FILE_MODE)
        logger.info(f"Configuration saved to {self._path}")

    def _parse(self, text: str) -> dict[str, str]:
        values: dict[str, str] = {}
        for lineno, line in enumerate(text.splitlines(), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if stripped.startswith("export "):
                stripped = stripped[len("export ") :]
            key, sep, raw = stripped.partition("=")
            if not sep or not key.strip():
                logger.warning(f"{self._path}:{lineno}: ignoring malformed line")
                continue
            field = ConfigRecord.field_for_state_key(key)
            if field is None:
                logger.debug(f"{self._path}:{lineno}: ignoring unknown key {key.strip()}")
                continue
            values[field] = _unquote(raw)
        return values

    def _validate_lenient(self, values: dict[str, Any]) -> ConfigRecord:
        """Validate, dropping fields that fail back to their defaults."""
        remaining = dict(values)
        for _ in range(len(FIELD_ORDER) + 1):
            try:
                return ConfigRecord.model_validate(remaining)
            except ValidationError as e:
                bad = {err["loc"][0] for err in e.errors() if err["loc"]}
                bad &= set(remaining)
                if not bad:
                    break
                for field in sorted(bad):
                    logger.warning(
                        f"Invalid value {remaining[field]!r} for {field} in "
                        f"{self._path}; using default"
                    )
                    remaining.pop(field)
        logger.warning(f"Could not validate {self._path}; using defaults")
        return ConfigRecord()
