"""Backup commands: run, list and restore backups."""

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from src.cli.commands.common import open_connection, require_host_access
from src.cli.context import get_cli_context
from src.cli.shared.console import with_error_handling
from src.infra.postgres import BackupArtifact, BackupManager, RestoreWorkflow
from src.infra.postgres.connection import DbSettings


def _artifact_table(artifacts: list[BackupArtifact], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Database", style="cyan")
    table.add_column("Created")
    table.add_column("Format")
    table.add_column("File")
    for artifact in artifacts:
        table.add_row(
            artifact.database,
            artifact.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            artifact.format,
            str(artifact.path),
        )
    return table


@with_error_handling
def backup(ctx: typer.Context) -> None:
    """Back up every database and the cluster globals, then apply retention."""
    context = get_cli_context(ctx)
    require_host_access(context)
    record = context.store.load()

    with open_connection(record) as connection:
        artifacts = BackupManager(
            connection, context.commands, record, context.paths
        ).run_backup()

    context.console.print(_artifact_table(artifacts, "Backup Artifacts"))
    context.console.ok(f"Backup completed: {len(artifacts)} artifact(s)")


@with_error_handling
def list_backups(ctx: typer.Context) -> None:
    """List backups in the backup directory, newest first."""
    context = get_cli_context(ctx)
    record = context.store.load()
    with open_connection(record) as connection:
        artifacts = BackupManager(
            connection, context.commands, record, context.paths
        ).list_artifacts()

    if not artifacts:
        context.console.info(f"No backups in {context.paths.backup_dir}")
        return
    context.console.print(_artifact_table(artifacts, f"Backups in {context.paths.backup_dir}"))


@with_error_handling
def restore(
    ctx: typer.Context,
    artifact: Annotated[
        Path,
        typer.Argument(help="Backup file (.dump or .sql)"),
    ],
    database: Annotated[str, typer.Argument(help="Target database")],
    owner: Annotated[
        str | None,
        typer.Option("--owner", help="Role that should own restored objects"),
    ] = None,
) -> None:
    """Restore a backup into a database after confirmation.

    Objects in the target database are dropped and recreated.
    """
    context = get_cli_context(ctx)
    console = context.console
    require_host_access(context)
    record = context.store.load()

    def confirm(message: str) -> bool:
        return console.confirm_restore(artifact, database, message)

    result = RestoreWorkflow(
        context.commands, DbSettings.from_record(record), confirm
    ).restore(artifact, database, owner=owner)

    if result.performed:
        console.ok(f"Restored {artifact.name} into '{database}'")
    else:
        console.info("Restore cancelled")
