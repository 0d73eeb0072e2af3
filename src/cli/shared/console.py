"""Operator-facing output for pg-provision.

Engine code logs through loguru; this module is what the operator reads:
step banners, change summaries, the confirmation gates in front of
configuration passes and restores, and the error panel every command ends
with when a provisioning step fails.
"""

from collections.abc import Callable, Sequence
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console, ConsoleRenderable
from rich.panel import Panel
from rich.table import Table

from src.infra.errors import PatchError, ProvisioningError

if TYPE_CHECKING:
    from src.infra.provision.engine import PassReport


class CLIConsole:
    """Rich console wrapper for provisioning output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def print(self, msg: ConsoleRenderable | str | None = None) -> None:
        self.console.print(msg)

    def info(self, msg: str) -> None:
        self.console.print(f"[cyan]ℹ[/cyan]  {msg}")

    def ok(self, msg: str) -> None:
        self.console.print(f"[green]✅[/green] {msg}")

    def error(self, msg: str) -> None:
        self.console.print(f"[red]❌[/red] {msg}")

    def warn(self, msg: str) -> None:
        self.console.print(f"[yellow]⚠️[/yellow]  {msg}")

    def print_banner(self, title: str, host: str | None = None) -> None:
        """Open a command's output with its title and the host it acts on."""
        body = f"[bold blue]{title}[/bold blue]"
        if host:
            body += f"\n[dim]{host}[/dim]"
        self.console.print(Panel.fit(body, border_style="blue"))

    def print_step(self, title: str) -> None:
        """Separate the steps of a configuration pass."""
        self.console.rule(f"[bold]{title}[/bold]", align="left")

    def confirm_changes(
        self,
        targets: Sequence[Path | str],
        *,
        assume_yes: bool = False,
    ) -> bool:
        """Ask before a configuration pass rewrites host files.

        Args:
            targets: Files and services the pass may change
            assume_yes: Skip the prompt (``--yes``)

        Returns:
            True if the pass may proceed
        """
        if assume_yes:
            return True
        lines = ["[bold]The following will be updated in place:[/bold]"]
        lines += [f"  • {target}" for target in targets]
        lines.append("\n[dim]Configuration files are backed up before their first change.[/dim]")
        panel = Panel("\n".join(lines), title="Apply Configuration", border_style="yellow")
        return self._ask(panel)

    def confirm_restore(self, artifact: Path, database: str, description: str) -> bool:
        """Ask before a restore replaces objects in a database."""
        table = Table.grid(padding=(0, 2))
        table.add_row("[bold]Artifact[/bold]", str(artifact))
        table.add_row("[bold]Database[/bold]", database)
        table.add_row("", description)
        table.add_row(
            "", "[yellow]Existing objects in the database are dropped and recreated.[/yellow]"
        )
        return self._ask(
            Panel(table, title="[bold red]Restore Database[/bold red]", border_style="red")
        )

    def print_pass_report(self, report: "PassReport") -> None:
        """Summarize what a configuration pass changed."""
        if not report.changed:
            self.ok("Host already matches the configuration; nothing changed")
            return

        table = Table(title="Configuration applied", show_header=False)
        table.add_column("Artifact", style="cyan")
        table.add_column("Changes")
        if report.conf_changed:
            table.add_row("postgresql.conf", ", ".join(report.conf_changed))
        if report.certificate_generated:
            table.add_row("SSL", "self-signed certificate generated")
        access = report.access
        if access.auth_added or access.baseline_added:
            rules = access.baseline_added + access.auth_added
            table.add_row("pg_hba.conf", ", ".join(r.address or r.conn_type for r in rules))
        if access.firewall_added:
            opened = [f"{r.source} → {r.port}" for r in access.firewall_added]
            table.add_row("firewall", ", ".join(opened))
        if report.pgbouncer_changed:
            table.add_row("pgbouncer.ini", ", ".join(report.pgbouncer_changed))
        if report.cron_written:
            table.add_row("backup schedule", "cron file updated")
        self.console.print(table)

    def fail(self, error: ProvisioningError, exit_code: int = 1) -> None:
        """Print a provisioning failure and exit.

        Raises:
            typer.Exit: Always
        """
        self.error(f"[bold red]{error.message}[/bold red]")
        if isinstance(error, PatchError):
            self.info(f"Earlier steps stay applied; fix {error.path} and re-run configure.")
        if error.details:
            self.console.print(Panel(error.details, title="Details", border_style="red"))
        raise typer.Exit(exit_code)

    def _ask(self, panel: Panel) -> bool:
        self.console.print(panel)
        try:
            response = self.console.input("\n[bold]Proceed?[/bold] \\[y/N]: ")
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n[dim]Cancelled.[/dim]")
            return False
        return response.strip().lower() in ("y", "yes")


def with_error_handling(func: Callable[..., None]) -> Callable[..., None]:
    """Turn provisioning failures into an error panel and a non-zero exit."""

    @wraps(func)
    def wrapper(*args: object, **kwargs: object) -> None:
        try:
            func(*args, **kwargs)
        except ProvisioningError as e:
            console.fail(e)
        except KeyboardInterrupt:
            console.print("\n[dim]Operation cancelled by user.[/dim]")
            raise typer.Exit(130) from None

    return wrapper


# Shared console instance for consistent output
console = CLIConsole()
