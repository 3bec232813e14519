"""Account management commands."""

from datetime import UTC, datetime
from typing import Annotated

import typer
from rich import box
from rich.table import Table

from antigravity_manager.cli.helpers import console, run_with_manager
from antigravity_manager.models import AccountStatus, CloudAccount
from antigravity_manager.rotation.quota import average_quota, format_quota_lines
from antigravity_manager.services.manager import AccountManager


app = typer.Typer(name="accounts", help="Manage cloud accounts")

_STATUS_STYLES = {
    AccountStatus.ACTIVE: "green",
    AccountStatus.RATE_LIMITED: "yellow",
    AccountStatus.EXPIRED: "red",
}


def _format_time(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=UTC).strftime("%Y-%m-%d %H:%M UTC")


def _accounts_table(accounts: list[CloudAccount]) -> Table:
    table = Table(box=box.ROUNDED, title="Cloud Accounts")
    table.add_column("", width=1)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Email", no_wrap=True, min_width=20)
    table.add_column("Status")
    table.add_column("Avg quota", justify="right")
    table.add_column("Models")
    table.add_column("Token expires")
    for account in accounts:
        style = _STATUS_STYLES.get(account.status, "white")
        table.add_row(
            "*" if account.is_active else "",
            account.id,
            account.email,
            f"[{style}]{account.status.value}[/{style}]",
            f"{average_quota(account.quota):.1f}%" if account.quota else "-",
            "\n".join(format_quota_lines(account.quota)),
            _format_time(account.token.expiry_timestamp),
        )
    return table


@app.command(name="list")
def list_accounts() -> None:
    """List stored accounts with their last known quota."""
    accounts = run_with_manager(lambda m: m.list_accounts())
    if not accounts:
        console.print("No accounts yet. Add one with [bold]accounts add <code>[/bold].")
        return
    console.print(_accounts_table(accounts))


@app.command(name="add")
def add_account(
    auth_code: Annotated[str, typer.Argument(help="OAuth authorization code")],
) -> None:
    """Add an account by exchanging an OAuth authorization code."""
    account = run_with_manager(lambda m: m.add_account(auth_code))
    console.print(f"[green]Added[/green] {account.email} ({account.id})")


@app.command(name="remove")
def remove_account(
    account_id: Annotated[str, typer.Argument(help="Account id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Remove a stored account."""
    if not yes:
        typer.confirm(f"Remove account {account_id}?", abort=True)
    run_with_manager(lambda m: m.delete_account(account_id))
    console.print(f"Removed {account_id}")


@app.command(name="refresh")
def refresh_quota(
    account_id: Annotated[str, typer.Argument(help="Account id")],
) -> None:
    """Refresh one account's token and quota now."""
    account = run_with_manager(lambda m: m.refresh_account_quota(account_id))
    console.print(_accounts_table([account]))


@app.command(name="switch")
def switch_account(
    account_id: Annotated[str, typer.Argument(help="Account id")],
) -> None:
    """Restart the application signed in as another account."""

    async def _switch(manager: AccountManager) -> str:
        result = await manager.switch_cloud_account(account_id)
        return result.account.email

    email = run_with_manager(_switch)
    console.print(f"[green]Switched to[/green] {email}")
