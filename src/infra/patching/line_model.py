"""Structured line model for ``key = value`` configuration files.

A file is parsed into blank, comment, section and directive lines, edited as
a list and serialized back. Lines that are not edited keep their exact
original text, so an untouched file renders byte-identical.

Handles ``postgresql.conf`` style files and INI files with ``[section]``
headers (``pgbouncer.ini``). A commented directive is a comment whose text
parses as a directive, e.g. ``#port = 5432  # (change requires restart)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_DIRECTIVE_RE = re.compile(
    r"^(?P<indent>\s*)(?P<hash>[#;]\s*)?"
    r"(?P<key>[A-Za-z_*][A-Za-z0-9_.*\-]*)\s*=\s*(?P<rest>.*)$"
)
_SECTION_RE = re.compile(r"^\s*\[(?P<name>[^\]]+)\]\s*$")

KEY_RE = re.compile(r"^[A-Za-z_*][A-Za-z0-9_.*\-]*$")


@dataclass
class BlankLine:
    raw: str = ""

    def render(self) -> str:
        return self.raw


@dataclass
class CommentLine:
    raw: str

    def render(self) -> str:
        return self.raw


@dataclass
class SectionLine:
    name: str
    raw: str | None = None

    def render(self) -> str:
        return self.raw if self.raw is not None else f"[{self.name}]"


@dataclass
class DirectiveLine:
    key: str
    value: str
    commented: bool = False
    trailing_comment: str = ""
    raw: str | None = field(default=None, compare=False)

    def matches(self, key: str) -> bool:
        return self.key.lower() == key.lower()

    def render(self) -> str:
        if self.raw is not None:
            return self.raw
        prefix = "#" if self.commented else ""
        return f"{prefix}{self.key} = {self.value}{self.trailing_comment}"


Line = BlankLine | CommentLine | SectionLine | DirectiveLine


def split_value(rest: str) -> tuple[str, str]:
    """Split the text after ``=`` into value and trailing comment.

    A ``#`` inside single quotes is part of the value.
    """
    in_quote = False
    for i, ch in enumerate(rest):
        if ch == "'":
            in_quote = not in_quote
        elif ch == "#" and not in_quote:
            value = rest[:i].rstrip()
            return value, rest[len(value) :]
    value = rest.rstrip()
    return value, ""


def parse_line(raw: str) -> Line:
    if not raw.strip():
        return BlankLine(raw)

    section = _SECTION_RE.match(raw)
    if section:
        return SectionLine(section.group("name").strip(), raw)

    match = _DIRECTIVE_RE.match(raw)
    if match:
        value, trailing = split_value(match.group("rest"))
        return DirectiveLine(
            key=match.group("key"),
            value=value,
            commented=match.group("hash") is not None,
            trailing_comment=trailing,
            raw=raw,
        )

    return CommentLine(raw)


class ConfigDocument:
    """An editable, order-preserving view of a configuration file."""

    def __init__(self, lines: list[Line]) -> None:
        self.lines = lines

    @classmethod
    def parse(cls, text: str) -> ConfigDocument:
        return cls([parse_line(raw) for raw in text.splitlines()])

    def render(self) -> str:
        if not self.lines:
            return ""
        return "\n".join(line.render() for line in self.lines) + "\n"

    def _section_bounds(self, section: str | None) -> tuple[int, int] | None:
        """Return the [start, end) line range of a section.

        ``None`` addresses the lines before the first section header.
        """
        headers = [
            (i, line.name)
            for i, line in enumerate(self.lines)
            if isinstance(line, SectionLine)
        ]
        if section is None:
            end = headers[0][0] if headers else len(self.lines)
            return 0, end
        for n, (i, name) in enumerate(headers):
            if name.lower() == section.lower():
                end = headers[n + 1][0] if n + 1 < len(headers) else len(self.lines)
                return i + 1, end
        return None

    def get(self, key: str, section: str | None = None) -> str | None:
        """Return the value of the first active directive for key."""
        bounds = self._section_bounds(section)
        if bounds is None:
            return None
        for line in self.lines[bounds[0] : bounds[1]]:
            if isinstance(line, DirectiveLine) and not line.commented and line.matches(key):
                return line.value
        return None

    def upsert(self, key: str, value: str, section: str | None = None) -> None:
        """Make the section hold exactly one active ``key = value`` line.

        The first active occurrence is rewritten in place and later active
        duplicates are removed. Without an active occurrence the first
        commented-out directive for the key is superseded in place; failing
        that a new line is added at the end of the section (or file).
        """
        bounds = self._section_bounds(section)
        if bounds is None:
            self._append_section(section or "", key, value)
            return

        start, end = bounds
        active = [
            i
            for i in range(start, end)
            if isinstance(self.lines[i], DirectiveLine)
            and not self.lines[i].commented  # type: ignore[union-attr]
            and self.lines[i].matches(key)  # type: ignore[union-attr]
        ]

        if active:
            first = self.lines[active[0]]
            assert isinstance(first, DirectiveLine)
            if first.value != value:
                self.lines[active[0]] = DirectiveLine(
                    key=first.key, value=value, trailing_comment=first.trailing_comment
                )
            for i in reversed(active[1:]):
                del self.lines[i]
            return

        for i in range(start, end):
            line = self.lines[i]
            if isinstance(line, DirectiveLine) and line.commented and line.matches(key):
                self.lines[i] = DirectiveLine(
                    key=key, value=value, trailing_comment=line.trailing_comment
                )
                return

        insert_at = end
        while insert_at > start and isinstance(self.lines[insert_at - 1], BlankLine):
            insert_at -= 1
        self.lines.insert(insert_at, DirectiveLine(key=key, value=value))

    def _append_section(self, section: str, key: str, value: str) -> None:
        if self.lines and not isinstance(self.lines[-1], BlankLine):
            self.lines.append(BlankLine())
        self.lines.append(SectionLine(section))
        self.lines.append(DirectiveLine(key=key, value=value))
