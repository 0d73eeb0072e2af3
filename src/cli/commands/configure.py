"""Configuration commands: apply and show the configuration record."""

import socket
from pathlib import Path
from typing import Annotated, Any

import typer

from src.cli.commands.common import parse_set_options, record_table, require_host_access
from src.cli.context import get_cli_context
from src.cli.shared.console import with_error_handling
from src.infra.host import check_os, memory_suggestions, total_memory_mb
from src.infra.provision import ReconciliationPass


@with_error_handling
def configure(
    ctx: typer.Context,
    set_values: Annotated[
        list[str] | None,
        typer.Option(
            "--set",
            "-s",
            help="Override a setting, e.g. --set DB_PORT=5433 (repeatable)",
        ),
    ] = None,
    allowed_ips: Annotated[
        str | None,
        typer.Option(
            "--allowed-ips",
            help="Comma-separated IPs/CIDRs allowed to connect",
        ),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="PostgreSQL port"),
    ] = None,
    enable_pgbouncer: Annotated[
        bool | None,
        typer.Option(
            "--enable-pgbouncer/--disable-pgbouncer",
            help="Manage the PgBouncer connection pooler",
        ),
    ] = None,
    auto_tune: Annotated[
        bool,
        typer.Option(
            "--auto-tune",
            help="Derive memory settings from total system memory",
        ),
    ] = False,
    reload: Annotated[
        bool,
        typer.Option(
            "--reload/--no-reload",
            help="Reload services after patching",
        ),
    ] = True,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt"),
    ] = False,
) -> None:
    """Apply the configuration record to this host.

    Loads the previous record, applies overrides, patches postgresql.conf,
    pg_hba.conf, the firewall and pgbouncer.ini, reloads services and saves
    the record. Safe to re-run.
    """
    context = get_cli_context(ctx)
    console = context.console
    require_host_access(context)
    distro = check_os(context.paths.os_release)

    console.print_banner(
        "PostgreSQL Host Configuration", f"{socket.gethostname()} ({distro or 'unknown OS'})"
    )
    if context.store.exists():
        console.info(f"Loading previous configuration from {context.store.path}")
    record = context.store.load()

    overrides: dict[str, Any] = parse_set_options(set_values)
    if allowed_ips is not None:
        overrides["allowed_ips"] = allowed_ips
    if port is not None:
        overrides["port"] = port
    if enable_pgbouncer is not None:
        overrides["enable_pgbouncer"] = enable_pgbouncer

    record = context.store.merge(record, overrides)

    if auto_tune:
        total_mb = total_memory_mb(context.paths.meminfo)
        console.info(f"System memory: {total_mb}MB")
        suggestions = memory_suggestions(total_mb, record.max_connections)
        # Explicit overrides win over suggestions
        tuned = {k: v for k, v in suggestions.items() if k not in overrides}
        record = context.store.merge(record, tuned)

    console.print(record_table(record, "Configuration to apply"))
    paths = context.paths.for_version(record.pg_version)
    targets: list[Path | str] = [paths.pg_conf, paths.pg_hba]
    if record.enable_firewall:
        targets.append("ufw rules")
    if record.enable_pgbouncer:
        targets += [paths.pgbouncer_ini, paths.pgbouncer_userlist]
    if record.enable_backups:
        targets.append(paths.cron_file)
    targets.append(context.store.path)
    if not console.confirm_changes(targets, assume_yes=yes):
        console.info("Configuration cancelled")
        raise typer.Exit(0)

    report = ReconciliationPass(
        context.store,
        context.paths,
        context.commands,
        reload_services=reload,
    ).run(record)

    console.print_pass_report(report)


@with_error_handling
def show_config(ctx: typer.Context) -> None:
    """Print the persisted configuration record."""
    context = get_cli_context(ctx)
    if not context.store.exists():
        context.console.warn(f"No state file at {context.store.path}; showing defaults")
    context.console.print(record_table(context.store.load()))
