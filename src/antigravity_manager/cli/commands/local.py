"""Local account snapshot commands."""

from datetime import UTC, datetime
from typing import Annotated

import typer
from rich import box
from rich.table import Table

from antigravity_manager.cli.helpers import console, run_with_manager
from antigravity_manager.models import LocalAccount


app = typer.Typer(name="local", help="Capture and restore local sign-ins")


def _local_table(accounts: list[LocalAccount]) -> Table:
    table = Table(box=box.ROUNDED, title="Local Accounts")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Email", no_wrap=True, min_width=20)
    table.add_column("Name")
    table.add_column("Last used")
    for account in accounts:
        table.add_row(
            account.id,
            account.email,
            account.name,
            datetime.fromtimestamp(account.last_used, tz=UTC).strftime(
                "%Y-%m-%d %H:%M UTC"
            ),
        )
    return table


@app.command(name="list")
def list_local() -> None:
    """List captured accounts, most recently used first."""
    accounts = run_with_manager(lambda m: m.list_local_accounts())
    if not accounts:
        console.print("No local accounts. Sign in to the app and run [bold]local capture[/bold].")
        return
    console.print(_local_table(accounts))


@app.command(name="capture")
def capture() -> None:
    """Save the account the application is signed in with."""
    account = run_with_manager(lambda m: m.add_account_snapshot())
    console.print(f"[green]Captured[/green] {account.email} ({account.id})")


@app.command(name="switch")
def switch_local(
    account_id: Annotated[str, typer.Argument(help="Local account id")],
) -> None:
    """Restore a captured account and restart the application."""
    account = run_with_manager(lambda m: m.switch_local_account(account_id))
    console.print(f"[green]Switched to[/green] {account.email}")


@app.command(name="remove")
def remove_local(
    account_id: Annotated[str, typer.Argument(help="Local account id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Forget a captured account and delete its backup."""
    if not yes:
        typer.confirm(f"Remove local account {account_id}?", abort=True)
    run_with_manager(lambda m: m.delete_local_account(account_id))
    console.print(f"Removed {account_id}")
