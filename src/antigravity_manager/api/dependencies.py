"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from antigravity_manager.services.manager import AccountManager


def get_manager(request: Request) -> AccountManager:
    """Return the AccountManager created by the application lifespan."""
    manager: AccountManager = request.app.state.manager
    return manager


ManagerDep = Annotated[AccountManager, Depends(get_manager)]
