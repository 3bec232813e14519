"""Monitor, settings, notification and process status routes."""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from antigravity_manager.api.dependencies import ManagerDep


router = APIRouter(prefix="/api", tags=["monitor"])


class AutoSwitchSetting(BaseModel):
    enabled: bool = Field(..., description="Rotate automatically on depletion")


class ActionResult(BaseModel):
    performed: bool = Field(..., description="Whether the action actually ran")


class NotificationView(BaseModel):
    type: str
    title: str
    body: str
    created_at: float


@router.get("/settings/auto-switch", response_model=AutoSwitchSetting)
async def get_auto_switch(manager: ManagerDep) -> AutoSwitchSetting:
    return AutoSwitchSetting(enabled=await manager.get_auto_switch_enabled())


@router.put("/settings/auto-switch", response_model=AutoSwitchSetting)
async def set_auto_switch(
    setting: AutoSwitchSetting, manager: ManagerDep
) -> AutoSwitchSetting:
    await manager.set_auto_switch_enabled(setting.enabled)
    return setting


@router.post("/monitor/poll", response_model=ActionResult)
async def force_poll(manager: ManagerDep) -> ActionResult:
    return ActionResult(performed=await manager.force_poll_cloud_monitor())


@router.post("/monitor/focus", response_model=ActionResult)
async def app_focus(manager: ManagerDep) -> ActionResult:
    return ActionResult(performed=await manager.handle_app_focus())


@router.post("/monitor/check", response_model=ActionResult)
async def check_and_switch(manager: ManagerDep) -> ActionResult:
    return ActionResult(performed=await manager.check_and_switch_if_needed())


@router.get("/notifications", response_model=list[NotificationView])
async def list_notifications(manager: ManagerDep) -> list[NotificationView]:
    return [
        NotificationView(
            type=n.type.value, title=n.title, body=n.body, created_at=n.created_at
        )
        for n in manager.notifier.history
    ]


@router.get("/process")
async def process_status(manager: ManagerDep) -> dict[str, Any]:
    return await manager.process_status()
