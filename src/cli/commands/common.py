"""Helpers shared by the command modules."""

from __future__ import annotations

from rich.table import Table

from src.cli.context import CLIContext
from src.infra.errors import ConfigError
from src.infra.host import require_root
from src.infra.postgres import DbSettings, PostgresConnection
from src.infra.state import ConfigRecord


def parse_set_options(pairs: list[str] | None) -> dict[str, str]:
    """Parse repeated ``--set KEY=VALUE`` options.

    Raises:
        ConfigError: On a pair without ``=`` or an unknown key
    """
    overrides: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"Invalid --set value {pair!r}", "Expected KEY=VALUE")
        field = ConfigRecord.field_for_state_key(key)
        if field is None:
            raise ConfigError(f"Unknown configuration key: {key.strip()}")
        overrides[field] = value.strip()
    return overrides


def require_host_access(context: CLIContext) -> None:
    """Root is only required when operating on the real filesystem root."""
    if str(context.paths.root) == "/":
        require_root()


def open_connection(record: ConfigRecord) -> PostgresConnection:
    return PostgresConnection(DbSettings.from_record(record))


def record_table(record: ConfigRecord, title: str = "Configuration") -> Table:
    table = Table(title=title)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in record.to_state().items():
        table.add_row(key, value)
    return table
