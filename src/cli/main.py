"""Main CLI application module.

This module provides the main entry point for the pg-provision CLI, which
provisions a PostgreSQL host: engine and pooler configuration, access
control, credentials and the backup lifecycle.
"""

from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from src.cli.context import build_cli_context
from src.cli.shared.log_setup import configure_logging

from .commands import (
    backup,
    configure,
    create_credential,
    list_backups,
    restart,
    restore,
    show_config,
    status,
)

# Create the main CLI application
app = typer.Typer(
    help="🐘 pg-provision - PostgreSQL host provisioning tool",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logs"),
    ] = False,
    env_file: Annotated[
        Path | None,
        typer.Option(
            "--env-file",
            help="Load environment variables (e.g. POSTGRES_PASSWORD) from this file",
        ),
    ] = None,
) -> None:
    """Set up environment, logging and the command context."""
    if env_file is not None:
        load_dotenv(env_file, override=True)
    else:
        load_dotenv()

    context = build_cli_context()
    configure_logging(context.paths.log_dir, verbose=verbose)
    ctx.obj = context


# Configuration
app.command("configure")(configure)
app.command("show-config")(show_config)

# Database
app.command("create-credential")(create_credential)
app.command("status")(status)
app.command("restart")(restart)

# Backups
app.command("backup")(backup)
app.command("list-backups")(list_backups)
app.command("restore")(restore)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
