"""Operator commands for per-user LLM credentials."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from src.gateway.core.exceptions import ProvisionError
from src.gateway.core.models import Credential
from src.gateway.core.services import CredentialService, KeyDeriver
from src.gateway.runtime.context import get_config

console = Console()

keys_app = typer.Typer(help="Derive, inspect and provision per-user LLM credentials")


def get_key_deriver() -> KeyDeriver:
    creds = get_config().credentials
    return KeyDeriver(
        salt=creds.key_salt,
        prefix=creds.key_prefix,
        normalization=creds.identity_normalization,
    )


def get_credential_service() -> CredentialService:
    if not get_config().credentials.is_configured:
        console.print("[red]❌ Credential service base_url is not configured[/red]")
        raise typer.Exit(code=1)
    return CredentialService()


def _credential_table(identity: str, credential: Credential) -> Table:
    table = Table(title=f"LLM credential for '{identity}'")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Alias", credential.key_alias or "")
    table.add_row("Spend", f"{credential.spend:.4f}")
    table.add_row(
        "Max budget", "" if credential.max_budget is None else f"{credential.max_budget:.2f}"
    )
    table.add_row("Budget period", credential.budget_duration or "")
    table.add_row("Budget resets at", credential.budget_reset_at or "")
    return table


@keys_app.command("derive")
def derive(
    identity: str = typer.Argument(..., help="User identity, usually an email address"),
    year: int | None = typer.Option(None, "--year", "-y", help="Calendar year (default: current UTC year)"),
) -> None:
    """Print the key id a user would be provisioned under."""
    deriver = get_key_deriver()
    normalized = deriver.normalize(identity)
    if not normalized:
        console.print("[red]❌ Identity must not be empty[/red]")
        raise typer.Exit(code=1)
    console.print(deriver.derive(normalized, year=year))


@keys_app.command("info")
def info(
    identity: str = typer.Argument(..., help="User identity, usually an email address"),
    year: int | None = typer.Option(None, "--year", "-y", help="Calendar year (default: current UTC year)"),
) -> None:
    """Show spend and budget of a user's credential without creating one."""
    deriver = get_key_deriver()
    service = get_credential_service()

    credential = asyncio.run(service.lookup(deriver.derive(identity, year=year)))
    if credential is None:
        console.print(f"[yellow]No credential found for '{identity}'[/yellow]")
        raise typer.Exit(code=1)

    console.print(_credential_table(identity, credential))


@keys_app.command("provision")
def provision(
    identity: str = typer.Argument(..., help="User identity, usually an email address"),
) -> None:
    """Look up a user's credential for the current year, creating it if missing."""
    deriver = get_key_deriver()
    service = get_credential_service()
    normalized = deriver.normalize(identity)
    if not normalized:
        console.print("[red]❌ Identity must not be empty[/red]")
        raise typer.Exit(code=1)

    try:
        credential = asyncio.run(
            service.get_or_create(deriver.derive(normalized), normalized)
        )
    except ProvisionError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"[green]✅ Credential ready for '{normalized}'[/green]")
    console.print(_credential_table(normalized, credential))
