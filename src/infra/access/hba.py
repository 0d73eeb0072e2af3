"""pg_hba.conf as an authentication-rule artifact.

The file is parsed into rule lines and free text; rules the reconciler adds
are appended below a marker comment, missing baseline rules are inserted
ahead of the first existing rule so they win under first-match semantics.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from src.infra.errors import PatchError
from src.utils.files import atomic_write_text, backup_copy

CONNECTION_TYPES = ("local", "host", "hostssl", "hostnossl", "hostgssenc", "hostnogssenc")

MANAGED_MARKER = "# Remote connections (managed by pg-provision)"
BASELINE_MARKER = "# Local access baseline (managed by pg-provision)"


def normalize_address(address: str | None) -> str | None:
    """Canonical form of an address column (``10.0.0.5`` -> ``10.0.0.5/32``)."""
    if address is None:
        return None
    try:
        return str(ipaddress.ip_network(address, strict=False))
    except ValueError:
        return address.lower()


@dataclass(frozen=True)
class AuthRule:
    """One pg_hba.conf record."""

    conn_type: str
    database: str
    user: str
    address: str | None
    method: str
    options: tuple[str, ...] = field(default=(), compare=False)

    def equivalent(self, other: AuthRule) -> bool:
        return (
            self.conn_type == other.conn_type
            and self.database == other.database
            and self.user == other.user
            and normalize_address(self.address) == normalize_address(other.address)
            and self.method == other.method
        )

    def render(self) -> str:
        address = self.address or ""
        line = f"{self.conn_type:<8}{self.database:<16}{self.user:<16}{address:<24}{self.method}"
        if self.options:
            line += " " + " ".join(self.options)
        return line.rstrip()

    @classmethod
    def parse(cls, raw: str) -> AuthRule | None:
        """Parse a record line; comments, includes and junk return None."""
        text = raw.split("#", 1)[0].strip()
        if not text:
            return None
        fields = text.split()
        conn_type = fields[0]
        if conn_type not in CONNECTION_TYPES:
            return None

        if conn_type == "local":
            if len(fields) < 4:
                return None
            return cls(conn_type, fields[1], fields[2], None, fields[3], tuple(fields[4:]))

        if len(fields) < 5:
            return None
        address, rest = fields[3], fields[4:]
        # "address mask" form
        if len(rest) >= 2 and "/" not in address and _is_ip(rest[0]):
            try:
                network = ipaddress.ip_network(f"{address}/{rest[0]}", strict=False)
                address, rest = str(network), rest[1:]
            except ValueError:
                pass
        return cls(conn_type, fields[1], fields[2], address, rest[0], tuple(rest[1:]))


def _is_ip(text: str) -> bool:
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


@dataclass
class _HbaLine:
    raw: str
    rule: AuthRule | None


class HbaFile:
    """Authentication-rule artifact backed by a pg_hba.conf file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lines: list[_HbaLine] | None = None
        self._original = ""
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    def rules(self) -> list[AuthRule]:
        return [line.rule for line in self._load() if line.rule is not None]

    def has_rule(self, rule: AuthRule) -> bool:
        return any(existing.equivalent(rule) for existing in self.rules())

    def ensure_baseline(self, rules: list[AuthRule]) -> list[AuthRule]:
        """Insert missing baseline rules ahead of the first existing rule."""
        lines = self._load()
        missing = [rule for rule in rules if not self.has_rule(rule)]
        if not missing:
            return []

        first_rule = next(
            (i for i, line in enumerate(lines) if line.rule is not None), len(lines)
        )
        block = [_HbaLine(BASELINE_MARKER, None)]
        block += [_HbaLine(rule.render(), rule) for rule in missing]
        block.append(_HbaLine("", None))
        lines[first_rule:first_rule] = block
        self._dirty = True
        return missing

    def add_rule(self, rule: AuthRule) -> None:
        """Append a rule below the managed marker."""
        lines = self._load()
        if not any(line.raw == MANAGED_MARKER for line in lines):
            if lines and lines[-1].raw.strip():
                lines.append(_HbaLine("", None))
            lines.append(_HbaLine(MANAGED_MARKER, None))
        lines.append(_HbaLine(rule.render(), rule))
        self._dirty = True

    def render(self) -> str:
        return "\n".join(line.raw for line in self._load()) + "\n"

    def flush(self) -> bool:
        """Write pending changes (backup first). Returns True if written."""
        if not self._dirty:
            return False
        rendered = self.render()
        try:
            backup_copy(self._path)
            atomic_write_text(self._path, rendered, mode=0o640)
        except OSError as e:
            raise PatchError(self._path, None, f"cannot write authentication rules: {e}") from e
        logger.info(f"Updated authentication rules in {self._path}")
        self._original = rendered
        self._dirty = False
        return True

    def _load(self) -> list[_HbaLine]:
        if self._lines is None:
            if not self._path.is_file():
                raise PatchError(self._path, None, "file does not exist")
            try:
                self._original = self._path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise PatchError(self._path, None, f"cannot read file: {e}") from e
            self._lines = [_HbaLine(raw, AuthRule.parse(raw)) for raw in self._original.splitlines()]
        return self._lines
