"""Tests for TokenRefreshCoordinator single-flight refresh and quota fetch."""

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from antigravity_manager.db.repositories import AccountStore
from antigravity_manager.exceptions import (
    AccountNotFoundError,
    ForbiddenError,
    OAuthTokenRefreshError,
    ProviderError,
    QuotaCheckFailedError,
    UnauthorizedError,
)
from antigravity_manager.models import (
    AccountStatus,
    CloudAccount,
    CloudQuotaData,
    ModelQuota,
)
from antigravity_manager.providers.google import GoogleCloudClient, TokenResponse
from antigravity_manager.rotation.refresh import TokenRefreshCoordinator


FRESH_QUOTA = CloudQuotaData(models={"gemini": ModelQuota(percentage=66.0)})


@pytest.fixture
def client() -> AsyncMock:
    mock = AsyncMock(spec=GoogleCloudClient)
    mock.refresh_access_token.return_value = TokenResponse(
        access_token="ya29.refreshed", expires_in=3600
    )
    mock.fetch_quota.return_value = FRESH_QUOTA
    return mock


@pytest.fixture
def coordinator(store: AccountStore, client: AsyncMock) -> TokenRefreshCoordinator:
    return TokenRefreshCoordinator(store, client)


@pytest.mark.unit
def test_is_stale_uses_buffer(
    coordinator: TokenRefreshCoordinator, make_account: Callable[..., CloudAccount]
) -> None:
    assert coordinator.is_stale(make_account(expires_in=60))
    assert not coordinator.is_stale(make_account(expires_in=3600))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_call(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    """Verifies:
    - five concurrent refreshes hit the token endpoint once
    - every caller sees the same new token
    - the in-flight entry is released afterwards
    """
    account = make_account("a", expires_in=10)
    await store.add_account(account)
    release = asyncio.Event()

    async def slow_refresh(refresh_token: str) -> TokenResponse:
        await release.wait()
        return TokenResponse(access_token="ya29.shared", expires_in=3600)

    client.refresh_access_token.side_effect = slow_refresh

    tasks = [
        asyncio.create_task(coordinator.refresh_and_save_token(account))
        for _ in range(5)
    ]
    await asyncio.sleep(0)
    assert coordinator.is_refreshing("a")
    release.set()
    results = await asyncio.gather(*tasks)

    client.refresh_access_token.assert_awaited_once_with("1//refresh")
    assert {r.token.access_token for r in results} == {"ya29.shared"}
    assert not coordinator.is_refreshing("a")
    stored = await store.get_account("a")
    assert stored is not None
    assert stored.token.access_token == "ya29.shared"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_keeps_existing_refresh_token(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    make_account: Callable[..., CloudAccount],
) -> None:
    account = make_account("a", refresh_token="1//keep")
    await store.add_account(account)

    refreshed = await coordinator.refresh_and_save_token(account)

    assert refreshed.token.refresh_token == "1//keep"
    assert refreshed.token.access_token == "ya29.refreshed"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_refresh_token_fails(
    coordinator: TokenRefreshCoordinator,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    with pytest.raises(OAuthTokenRefreshError):
        await coordinator.refresh_and_save_token(make_account(refresh_token=""))
    client.refresh_access_token.assert_not_called()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_grant_marks_account_expired(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    account = make_account("a")
    await store.add_account(account)
    client.refresh_access_token.side_effect = ProviderError(
        "refresh_token failed with HTTP 400",
        status_code=400,
        response_text='{"error": "invalid_grant"}',
    )

    with pytest.raises(OAuthTokenRefreshError):
        await coordinator.refresh_and_save_token(account)

    stored = await store.get_account("a")
    assert stored is not None
    assert stored.status == AccountStatus.EXPIRED
    assert not coordinator.is_refreshing("a")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_refresh_can_be_retried(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    account = make_account("a")
    await store.add_account(account)
    client.refresh_access_token.side_effect = [
        ProviderError("boom", status_code=500),
        TokenResponse(access_token="ya29.second", expires_in=3600),
    ]

    with pytest.raises(ProviderError):
        await coordinator.refresh_and_save_token(account)
    refreshed = await coordinator.refresh_and_save_token(account)

    assert refreshed.token.access_token == "ya29.second"
    assert client.refresh_access_token.await_count == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unauthorized_quota_fetch_refreshes_and_retries(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    account = make_account("a")
    await store.add_account(account)
    client.fetch_quota.side_effect = [UnauthorizedError(), FRESH_QUOTA]

    quota = await coordinator.fetch_quota_for(account)

    assert quota == FRESH_QUOTA
    client.refresh_access_token.assert_awaited_once()
    assert client.fetch_quota.await_args_list[-1].args == ("ya29.refreshed",)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_forbidden_marks_rate_limited(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    account = make_account("a")
    await store.add_account(account)
    client.fetch_quota.side_effect = ForbiddenError("fetch_quota: request forbidden")

    with pytest.raises(QuotaCheckFailedError):
        await coordinator.fetch_quota_for(account)

    stored = await store.get_account("a")
    assert stored is not None
    assert stored.status == AccountStatus.RATE_LIMITED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_successful_fetch_clears_rate_limit(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    make_account: Callable[..., CloudAccount],
) -> None:
    account = make_account("a", status=AccountStatus.RATE_LIMITED)
    await store.add_account(account)

    await coordinator.fetch_quota_for(account)

    stored = await store.get_account("a")
    assert stored is not None
    assert stored.status == AccountStatus.ACTIVE
    assert stored.quota == FRESH_QUOTA


@pytest.mark.unit
@pytest.mark.asyncio
async def test_network_error_becomes_quota_check_failure(
    coordinator: TokenRefreshCoordinator,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    client.fetch_quota.side_effect = httpx.ConnectError("unreachable")

    with pytest.raises(QuotaCheckFailedError):
        await coordinator.fetch_quota_for(make_account("a"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_quota_refreshes_stale_token_first(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    await store.add_account(make_account("a", expires_in=30))

    account = await coordinator.refresh_quota("a")

    client.refresh_access_token.assert_awaited_once()
    client.fetch_quota.assert_awaited_once_with("ya29.refreshed")
    assert account.quota == FRESH_QUOTA


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_quota_unknown_account(
    coordinator: TokenRefreshCoordinator,
) -> None:
    with pytest.raises(AccountNotFoundError):
        await coordinator.refresh_quota("ghost")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_quota_wraps_network_error_during_token_refresh(
    coordinator: TokenRefreshCoordinator,
    store: AccountStore,
    client: AsyncMock,
    make_account: Callable[..., CloudAccount],
) -> None:
    await store.add_account(make_account("a", expires_in=30))
    client.refresh_access_token.side_effect = httpx.ConnectTimeout("timed out")

    with pytest.raises(QuotaCheckFailedError) as exc_info:
        await coordinator.refresh_quota("a")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectTimeout)
    client.fetch_quota.assert_not_called()
