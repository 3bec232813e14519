"""Shared CLI plumbing."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from rich.console import Console

from antigravity_manager.config.settings import get_settings
from antigravity_manager.exceptions import ManagerError
from antigravity_manager.services.manager import AccountManager


T = TypeVar("T")

console = Console()


def run_with_manager(action: Callable[[AccountManager], Awaitable[T]]) -> T:
    """Initialize a manager, run ``action`` and shut it down.

    ManagerError is reported on the console and turned into exit code 1.
    """

    async def _run() -> T:
        manager = AccountManager(get_settings())
        await manager.init()
        try:
            return await action(manager)
        finally:
            await manager.shutdown()

    try:
        return asyncio.run(_run())
    except ManagerError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e
