"""Tests for AccountManager lifecycle."""

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from antigravity_manager.config.settings import Settings
from antigravity_manager.injection.state_store import VSCodeStateInjector
from antigravity_manager.models import CloudAccount, CloudQuotaData, ModelQuota
from antigravity_manager.notifications.service import MemoryNotificationSink
from antigravity_manager.providers.google import GoogleCloudClient
from antigravity_manager.security.vault import CredentialVault
from antigravity_manager.services.manager import AccountManager


@pytest.fixture
def google() -> AsyncMock:
    mock = AsyncMock(spec=GoogleCloudClient)

    async def slow_fetch(access_token: str) -> CloudQuotaData:
        await asyncio.sleep(0.1)
        return CloudQuotaData(models={"gemini": ModelQuota(percentage=70.0)})

    mock.fetch_quota.side_effect = slow_fetch
    return mock


@pytest.fixture
def manager(
    settings: Settings, vault: CredentialVault, google: AsyncMock
) -> AccountManager:
    return AccountManager(
        settings,
        vault=vault,
        client=google,
        process=AsyncMock(),
        injector=VSCodeStateInjector(
            settings.process.state_db_path, settings.process.state_key
        ),
        notification_sink=MemoryNotificationSink(),
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_shutdown_lets_background_poll_finish(
    manager: AccountManager,
    google: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    await manager.init()
    await manager.store.add_account(make_account("a", is_active=True))

    await manager.set_auto_switch_enabled(True)
    await asyncio.sleep(0.01)
    assert manager.monitor.is_polling

    await manager.shutdown()

    assert manager.monitor.last_poll_at is not None
    google.fetch_quota.assert_awaited_once()
    google.close.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_shutdown_waits_for_startup_poll(
    manager: AccountManager,
    make_account: Callable[..., CloudAccount],
) -> None:
    await manager.init()
    await manager.store.add_account(make_account("a"))

    await manager.monitor.start()
    await asyncio.sleep(0.01)
    await manager.shutdown()

    assert manager.monitor.last_poll_at is not None
    assert not manager.monitor.is_running
