"""End-to-end rotation through AccountManager with a fake provider."""

from collections.abc import AsyncIterator, Callable
from unittest.mock import AsyncMock

import pytest

from antigravity_manager.config.settings import Settings
from antigravity_manager.injection.state_store import VSCodeStateInjector
from antigravity_manager.models import CloudAccount, CloudQuotaData, ModelQuota
from antigravity_manager.notifications.service import (
    MemoryNotificationSink,
    NotificationType,
)
from antigravity_manager.providers.google import GoogleCloudClient
from antigravity_manager.security.vault import CredentialVault
from antigravity_manager.services.manager import AccountManager


QUOTAS = {
    "ya29.access-primary": CloudQuotaData(
        models={"gemini": ModelQuota(percentage=60.0), "claude": ModelQuota(percentage=2.0)}
    ),
    "ya29.access-spare": CloudQuotaData(
        models={"gemini": ModelQuota(percentage=90.0), "claude": ModelQuota(percentage=85.0)}
    ),
    "ya29.access-low": CloudQuotaData(
        models={"gemini": ModelQuota(percentage=15.0), "claude": ModelQuota(percentage=12.0)}
    ),
}


@pytest.fixture
def sink() -> MemoryNotificationSink:
    return MemoryNotificationSink()


@pytest.fixture
def process() -> AsyncMock:
    mock = AsyncMock()
    mock.is_running.return_value = True
    return mock


@pytest.fixture
async def manager(
    settings: Settings,
    vault: CredentialVault,
    process: AsyncMock,
    sink: MemoryNotificationSink,
) -> AsyncIterator[AccountManager]:
    google = AsyncMock(spec=GoogleCloudClient)
    google.fetch_quota.side_effect = lambda access_token: QUOTAS[access_token]
    manager = AccountManager(
        settings,
        vault=vault,
        client=google,
        process=process,
        injector=VSCodeStateInjector(
            settings.process.state_db_path, settings.process.state_key
        ),
        notification_sink=sink,
    )
    await manager.init()
    yield manager
    await manager.shutdown()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_poll_rotates_away_from_depleted_account(
    manager: AccountManager,
    process: AsyncMock,
    sink: MemoryNotificationSink,
    make_account: Callable[..., CloudAccount],
) -> None:
    """Verifies:
    - one poll refreshes every quota and warns about the low account
    - the depleted active account is replaced by the healthiest spare
    - the spare's credentials land in the application's state database
    - the application is restarted and the switch is announced
    """
    await manager.store.add_account(make_account("primary", percentages=None, is_active=True))
    await manager.store.add_account(make_account("low", percentages=None))
    await manager.store.add_account(make_account("spare", percentages=None))
    await manager.set_auto_switch_enabled(True, poll_in_background=False)

    assert await manager.force_poll_cloud_monitor() is True

    active = await manager.store.get_active_account()
    assert active is not None and active.id == "spare"

    document = manager.injector.read()
    assert document is not None
    assert document["email"] == "spare@example.com"

    process.close.assert_awaited_once()
    process.start.assert_awaited_once()

    shown = [(n.type, n.body) for n in sink.shown]
    assert (NotificationType.QUOTA_WARNING, "low@example.com has 13.5% quota remaining") in shown
    assert (
        NotificationType.AUTO_SWITCH_SUCCESS,
        "Switched from primary@example.com to spare@example.com",
    ) in shown


@pytest.mark.integration
@pytest.mark.asyncio
async def test_all_accounts_depleted(
    manager: AccountManager,
    process: AsyncMock,
    sink: MemoryNotificationSink,
    make_account: Callable[..., CloudAccount],
) -> None:
    await manager.store.add_account(make_account("primary", percentages=None, is_active=True))
    await manager.set_auto_switch_enabled(True, poll_in_background=False)

    await manager.force_poll_cloud_monitor()

    process.close.assert_not_called()
    assert [n.type for n in sink.shown] == [NotificationType.ALL_DEPLETED]
    active = await manager.store.get_active_account()
    assert active is not None and active.id == "primary"
