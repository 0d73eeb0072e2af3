"""CLI context and dependency container."""

from __future__ import annotations

from dataclasses import dataclass

import click
import typer

from src.cli.shared.console import CLIConsole, console
from src.infra.constants import ProvisionConstants, ProvisionPaths, get_default_paths
from src.infra.shell import ShellCommands
from src.infra.state import StateStore


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    commands: ShellCommands
    constants: ProvisionConstants
    paths: ProvisionPaths
    store: StateStore


def build_cli_context() -> CLIContext:
    """Build a fresh CLIContext."""
    constants = ProvisionConstants()
    paths = get_default_paths()

    return CLIContext(
        console=console,
        commands=ShellCommands(),
        constants=constants,
        paths=paths,
        store=StateStore(paths.state_file),
    )


def get_cli_context(ctx: typer.Context | None = None) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context()
