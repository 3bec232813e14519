"""Command line entry point."""

from typing import Annotated

import typer
import uvicorn

from antigravity_manager import __version__
from antigravity_manager.cli.commands import accounts, local
from antigravity_manager.cli.helpers import console, run_with_manager
from antigravity_manager.config.settings import get_settings
from antigravity_manager.core.logging import setup_logging
from antigravity_manager.services.manager import AccountManager


app = typer.Typer(
    name="antigravity-manager",
    help="Multi-account credential rotation for the Antigravity app",
    no_args_is_help=True,
)
app.add_typer(accounts.app)
app.add_typer(local.app)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    settings = get_settings()
    setup_logging(
        json_logs=settings.server.json_logs,
        log_level_name="DEBUG" if verbose else settings.server.log_level,
    )


@app.command(name="version")
def version() -> None:
    """Show the installed version."""
    console.print(__version__)


@app.command(name="serve")
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
) -> None:
    """Run the API server and the quota monitor."""
    from antigravity_manager.api.app import create_app

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_config=None,
    )


@app.command(name="poll")
def poll() -> None:
    """Poll every account once and rotate if needed."""
    ran = run_with_manager(lambda m: m.force_poll_cloud_monitor())
    console.print("Poll complete" if ran else "A poll is already running")


@app.command(name="auto-switch")
def auto_switch(
    state: Annotated[
        str | None, typer.Argument(help="on or off; omit to show the current value")
    ] = None,
) -> None:
    """Show or change automatic rotation."""
    if state is None:
        enabled = run_with_manager(lambda m: m.get_auto_switch_enabled())
        console.print(f"Auto switch is {'on' if enabled else 'off'}")
        return
    if state.lower() not in ("on", "off"):
        raise typer.BadParameter("expected 'on' or 'off'")
    enabled = state.lower() == "on"

    async def _set(manager: AccountManager) -> None:
        await manager.set_auto_switch_enabled(enabled, poll_in_background=False)
        if enabled:
            await manager.force_poll_cloud_monitor()

    run_with_manager(_set)
    console.print(f"Auto switch turned {'on' if enabled else 'off'}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
