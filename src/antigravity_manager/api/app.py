"""FastAPI application factory."""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypedDict

import structlog
from fastapi import FastAPI

from antigravity_manager import __version__
from antigravity_manager.api.middleware.errors import setup_error_handlers
from antigravity_manager.api.routes import accounts, local_accounts, monitor
from antigravity_manager.config.settings import Settings, get_settings
from antigravity_manager.core.logging import setup_logging
from antigravity_manager.services.manager import AccountManager


logger = structlog.get_logger(__name__)


class LifecycleComponent(TypedDict):
    name: str
    startup: Callable[[FastAPI], Awaitable[None]] | None
    shutdown: Callable[[FastAPI], Awaitable[None]] | None


async def _start_manager(app: FastAPI) -> None:
    await app.state.manager.init()


async def _stop_manager(app: FastAPI) -> None:
    await app.state.manager.shutdown()


async def _start_monitor(app: FastAPI) -> None:
    await app.state.manager.monitor.start()


async def _stop_monitor(app: FastAPI) -> None:
    await app.state.manager.monitor.stop()


LIFECYCLE_COMPONENTS: list[LifecycleComponent] = [
    {
        "name": "Account Manager",
        "startup": _start_manager,
        "shutdown": _stop_manager,
    },
    {
        "name": "Quota Monitor",
        "startup": _start_monitor,
        "shutdown": _stop_monitor,
    },
]


def _event_name(component: LifecycleComponent, suffix: str) -> str:
    return f"{component['name'].lower().replace(' ', '_')}_{suffix}"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start components in order; stop them in reverse.

    A startup failure is fatal: the master key or database being unavailable
    leaves nothing useful to serve.
    """
    for component in LIFECYCLE_COMPONENTS:
        if component["startup"]:
            logger.debug(_event_name(component, "starting"))
            await component["startup"](app)
    logger.info("server_ready", version=__version__)

    try:
        yield
    finally:
        for component in reversed(LIFECYCLE_COMPONENTS):
            if not component["shutdown"]:
                continue
            try:
                await component["shutdown"](app)
            except (OSError, RuntimeError) as e:
                logger.error(_event_name(component, "shutdown_failed"), error=str(e))


def create_app(
    settings: Settings | None = None,
    manager: AccountManager | None = None,
) -> FastAPI:
    """Create the API application.

    Args:
        settings: Settings to use; defaults to the environment
        manager: Pre-built manager, mainly for tests
    """
    settings = settings or get_settings()
    if not structlog.is_configured():
        setup_logging(
            json_logs=settings.server.json_logs,
            log_level_name=settings.server.log_level,
        )

    app = FastAPI(
        title="Antigravity Manager",
        description="Multi-account credential rotation for the Antigravity app",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.manager = manager or AccountManager(settings)

    setup_error_handlers(app)
    app.include_router(accounts.router)
    app.include_router(local_accounts.router)
    app.include_router(monitor.router)

    @app.get("/health", tags=["status"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app
