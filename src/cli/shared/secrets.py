"""Utility functions for handling secrets."""

import getpass
import os

import typer

from src.cli.shared.console import console


def get_password(prompt: str, env_var: str | None = None, confirm: bool = True) -> str:
    """Get password from environment or prompt user.

    Args:
        prompt: Prompt shown when the environment variable is not set
        env_var: Environment variable checked first
        confirm: Ask for the password twice when prompting
    """
    if env_var:
        password = os.environ.get(env_var)
        if password:
            console.print(f"[dim]Using password from {env_var}[/dim]")
            return password
        else:
            console.print(f"[dim]Environment variable {env_var} not set[/dim]")

    try:
        password = getpass.getpass(prompt)
        if not password:
            console.print("[red]❌ No password entered[/red]")
            raise typer.Exit(1) from None
        if confirm and getpass.getpass("Confirm password: ") != password:
            console.print("[red]❌ Passwords do not match[/red]")
            raise typer.Exit(1) from None
        return password
    except (EOFError, KeyboardInterrupt):
        console.print("\n[dim]Password input cancelled[/dim]")
        raise typer.Exit(1) from None
