"""Tests for the HTTP API routes and error rendering."""

from collections.abc import AsyncIterator, Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from antigravity_manager.api.app import create_app
from antigravity_manager.config.settings import Settings
from antigravity_manager.injection.state_store import VSCodeStateInjector
from antigravity_manager.models import (
    CloudAccount,
    CloudQuotaData,
    CloudTokenData,
    ModelQuota,
)
from antigravity_manager.notifications.service import MemoryNotificationSink
from antigravity_manager.providers.google import GoogleCloudClient, UserInfo
from antigravity_manager.security.vault import CredentialVault
from antigravity_manager.services.manager import AccountManager


@pytest.fixture
def google() -> AsyncMock:
    mock = AsyncMock(spec=GoogleCloudClient)
    mock.fetch_quota.return_value = CloudQuotaData(
        models={"gemini": ModelQuota(percentage=55.0)}
    )
    return mock


@pytest.fixture
def process() -> AsyncMock:
    mock = AsyncMock()
    mock.is_running.return_value = False
    return mock


@pytest.fixture
async def manager(
    settings: Settings,
    vault: CredentialVault,
    google: AsyncMock,
    process: AsyncMock,
) -> AsyncIterator[AccountManager]:
    manager = AccountManager(
        settings,
        vault=vault,
        client=google,
        process=process,
        injector=VSCodeStateInjector(
            settings.process.state_db_path, settings.process.state_key
        ),
        notification_sink=MemoryNotificationSink(),
    )
    await manager.init()
    yield manager
    await manager.shutdown()


@pytest.fixture
async def client(
    settings: Settings, manager: AccountManager
) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(settings, manager)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health(client: httpx.AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_accounts_hides_tokens(
    client: httpx.AsyncClient,
    manager: AccountManager,
    make_account: Callable[..., CloudAccount],
) -> None:
    await manager.store.add_account(make_account("a", percentages=(40.0, 60.0)))

    response = await client.get("/api/accounts")

    assert response.status_code == 200
    [account] = response.json()
    assert account["email"] == "a@example.com"
    assert account["average_quota"] == 50.0
    assert "ya29" not in response.text
    assert "1//refresh" not in response.text


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_account_exchanges_code(
    client: httpx.AsyncClient, google: AsyncMock
) -> None:
    google.exchange_code.return_value = CloudTokenData.issued("ya29.new", "1//new", 3600)
    google.get_user_info.return_value = UserInfo(email="new@example.com", name="New")

    response = await client.post("/api/accounts", json={"auth_code": "code-123"})

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "new@example.com"
    assert body["quota"]["models"]["gemini"]["percentage"] == 55.0
    google.exchange_code.assert_awaited_once_with("code-123")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_unknown_account_is_404(client: httpx.AsyncClient) -> None:
    response = await client.delete("/api/accounts/ghost")

    assert response.status_code == 404
    assert response.json()["error"]["type"] == "not_found_error"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_account(
    client: httpx.AsyncClient,
    manager: AccountManager,
    make_account: Callable[..., CloudAccount],
) -> None:
    await manager.store.add_account(make_account("a"))

    response = await client.delete("/api/accounts/a")

    assert response.status_code == 204
    assert await manager.store.get_accounts() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_switch_account(
    client: httpx.AsyncClient,
    manager: AccountManager,
    process: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    await manager.store.add_account(make_account("old", is_active=True))
    await manager.store.add_account(make_account("new"))

    response = await client.post("/api/accounts/new/switch")

    assert response.status_code == 200
    body = response.json()
    assert body["account"]["id"] == "new"
    assert body["previous_email"] == "old@example.com"
    assert body["stages"][-1] == "done"
    process.start.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_switch_reports_stage(
    client: httpx.AsyncClient,
    manager: AccountManager,
    process: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    await manager.store.add_account(make_account("new"))
    process.close.side_effect = RuntimeError("permission denied")

    response = await client.post("/api/accounts/new/switch")

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["type"] == "switch_error"
    assert "stopping" in error["message"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_auto_switch_setting(client: httpx.AsyncClient) -> None:
    assert (await client.get("/api/settings/auto-switch")).json() == {"enabled": False}

    response = await client.put("/api/settings/auto-switch", json={"enabled": True})

    assert response.json() == {"enabled": True}
    assert (await client.get("/api/settings/auto-switch")).json() == {"enabled": True}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_force_poll_and_process_status(
    client: httpx.AsyncClient,
    manager: AccountManager,
    google: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    await manager.store.add_account(make_account("a"))

    response = await client.post("/api/monitor/poll")

    assert response.json() == {"performed": True}
    google.fetch_quota.assert_awaited_once()
    status = (await client.get("/api/process")).json()
    assert status["running"] is False
    assert status["last_poll_at"] is not None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_capture_without_signed_in_app_is_conflict(
    client: httpx.AsyncClient,
) -> None:
    response = await client.post("/api/local-accounts")

    assert response.status_code == 409
    assert response.json()["error"]["type"] == "invalid_request_error"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_local_account_lifecycle(
    client: httpx.AsyncClient,
    manager: AccountManager,
    settings: Settings,
    process: AsyncMock,
) -> None:
    await manager.injector.import_state(
        {settings.process.state_key: '{"email": "local@example.com", "name": "Local"}'}
    )

    captured = await client.post("/api/local-accounts")
    assert captured.status_code == 201
    account_id = captured.json()["id"]
    assert "backup_file" not in captured.json()

    listing = (await client.get("/api/local-accounts")).json()
    assert [a["email"] for a in listing] == ["local@example.com"]

    switched = await client.post(f"/api/local-accounts/{account_id}/switch")
    assert switched.status_code == 200
    assert switched.json()["name"] == "Local"
    process.start.assert_awaited_once()

    assert (await client.delete(f"/api/local-accounts/{account_id}")).status_code == 204
    assert (await client.get("/api/local-accounts")).json() == []
