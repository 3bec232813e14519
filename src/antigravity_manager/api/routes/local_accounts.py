"""Local account snapshot routes.

Endpoints:
    GET    /api/local-accounts              - List captured accounts, newest first
    POST   /api/local-accounts              - Capture the signed-in account
    DELETE /api/local-accounts/{id}         - Forget an account and its backup
    POST   /api/local-accounts/{id}/switch  - Restore an account and restart the app
"""

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from antigravity_manager.api.dependencies import ManagerDep
from antigravity_manager.models import LocalAccount


router = APIRouter(prefix="/api/local-accounts", tags=["local-accounts"])


class LocalAccountView(BaseModel):
    id: str = Field(..., description="Local account identifier")
    email: str = Field(..., description="Email the application was signed in with")
    name: str = Field(..., description="Display name")
    created_at: int = Field(..., description="First capture (Unix seconds)")
    last_used: int = Field(..., description="Last capture or switch (Unix seconds)")

    @classmethod
    def from_account(cls, account: LocalAccount) -> "LocalAccountView":
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            created_at=account.created_at,
            last_used=account.last_used,
        )


@router.get("", response_model=list[LocalAccountView])
async def list_local_accounts(manager: ManagerDep) -> list[LocalAccountView]:
    return [LocalAccountView.from_account(a) for a in await manager.list_local_accounts()]


@router.post("", response_model=LocalAccountView, status_code=status.HTTP_201_CREATED)
async def capture_local_account(manager: ManagerDep) -> LocalAccountView:
    return LocalAccountView.from_account(await manager.add_account_snapshot())


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_local_account(account_id: str, manager: ManagerDep) -> None:
    await manager.delete_local_account(account_id)


@router.post("/{account_id}/switch", response_model=LocalAccountView)
async def switch_local_account(account_id: str, manager: ManagerDep) -> LocalAccountView:
    return LocalAccountView.from_account(await manager.switch_local_account(account_id))
