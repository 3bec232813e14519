"""Account management API routes.

Endpoints:
    GET    /api/accounts              - List accounts (no token material)
    POST   /api/accounts              - Add an account from an authorization code
    DELETE /api/accounts/{id}         - Remove an account
    POST   /api/accounts/{id}/quota   - Refresh one account's quota now
    POST   /api/accounts/{id}/switch  - Make an account active
"""

from typing import Any

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from antigravity_manager.api.dependencies import ManagerDep
from antigravity_manager.models import CloudAccount
from antigravity_manager.rotation.quota import average_quota


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


# ============================================================================
# Request/Response Models
# ============================================================================


class AccountView(BaseModel):
    """Account as shown to the UI."""

    id: str = Field(..., description="Account identifier")
    provider: str = Field(..., description="Identity provider")
    email: str = Field(..., description="Account email address")
    name: str | None = Field(default=None, description="Display name")
    avatar_url: str | None = Field(default=None, description="Profile picture URL")
    status: str = Field(..., description="active, rate_limited or expired")
    is_active: bool = Field(..., description="Whether the app currently uses it")
    quota: dict[str, Any] | None = Field(default=None, description="Per-model quota")
    average_quota: float | None = Field(
        default=None, description="Mean remaining percentage across models"
    )
    token_expiry: int = Field(..., description="Access token expiry (Unix seconds)")
    created_at: int = Field(..., description="Creation time (Unix seconds)")
    last_used: int = Field(..., description="Last activation or refresh (Unix seconds)")

    @classmethod
    def from_account(cls, account: CloudAccount) -> "AccountView":
        data = account.to_public_dict()
        data["average_quota"] = (
            round(average_quota(account.quota), 1) if account.quota else None
        )
        return cls(**data)


class AddAccountRequest(BaseModel):
    auth_code: str = Field(..., min_length=1, description="OAuth authorization code")


class SwitchResponse(BaseModel):
    account: AccountView
    previous_email: str | None = Field(default=None)
    stages: list[str] = Field(default_factory=list)


# ============================================================================
# Routes
# ============================================================================


@router.get("", response_model=list[AccountView])
async def list_accounts(manager: ManagerDep) -> list[AccountView]:
    accounts = await manager.list_accounts()
    return [AccountView.from_account(a) for a in accounts]


@router.post("", response_model=AccountView, status_code=status.HTTP_201_CREATED)
async def add_account(request: AddAccountRequest, manager: ManagerDep) -> AccountView:
    account = await manager.add_account(request.auth_code)
    return AccountView.from_account(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(account_id: str, manager: ManagerDep) -> None:
    await manager.delete_account(account_id)


@router.post("/{account_id}/quota", response_model=AccountView)
async def refresh_quota(account_id: str, manager: ManagerDep) -> AccountView:
    account = await manager.refresh_account_quota(account_id)
    return AccountView.from_account(account)


@router.post("/{account_id}/switch", response_model=SwitchResponse)
async def switch_account(account_id: str, manager: ManagerDep) -> SwitchResponse:
    result = await manager.switch_cloud_account(account_id)
    return SwitchResponse(
        account=AccountView.from_account(result.account),
        previous_email=result.previous_email,
        stages=[stage.value for stage in result.stages],
    )
