"""Tests for AccountStore persistence."""

from collections.abc import Callable

import pytest
from sqlmodel import select

from antigravity_manager.db.engine import Database
from antigravity_manager.db.models import CloudAccountRecord
from antigravity_manager.db.repositories import AccountStore
from antigravity_manager.exceptions import AccountNotFoundError
from antigravity_manager.models import (
    AccountStatus,
    CloudAccount,
    CloudQuotaData,
    CloudTokenData,
    ModelQuota,
)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_and_get_account(
    store: AccountStore, make_account: Callable[..., CloudAccount]
) -> None:
    account = make_account("alpha", percentages=(50.0, 75.0))
    await store.add_account(account)

    loaded = await store.get_account("alpha")

    assert loaded is not None
    assert loaded.email == "alpha@example.com"
    assert loaded.token == account.token
    assert loaded.quota is not None
    assert loaded.quota.percentages == [50.0, 75.0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_is_encrypted_at_rest(
    store: AccountStore, database: Database, make_account: Callable[..., CloudAccount]
) -> None:
    await store.add_account(make_account("alpha"))

    async with database.session() as session:
        record = (
            await session.execute(select(CloudAccountRecord))
        ).scalar_one()

    assert "ya29" not in record.token_data
    assert len(record.token_data.split(":")) == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_missing_account_returns_none(store: AccountStore) -> None:
    assert await store.get_account("nope") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_accounts_listed_in_creation_order(
    store: AccountStore, make_account: Callable[..., CloudAccount]
) -> None:
    for name in ("first", "second", "third"):
        await store.add_account(make_account(name))

    assert [a.id for a in await store.get_accounts()] == ["first", "second", "third"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undecryptable_record_is_skipped_in_listing(
    store: AccountStore, database: Database, make_account: Callable[..., CloudAccount]
) -> None:
    await store.add_account(make_account("good"))
    await store.add_account(make_account("bad"))
    async with database.session() as session:
        record = await session.get(CloudAccountRecord, "bad")
        record.token_data = "00" * 16 + ":" + "00" * 16 + ":abcd"
        session.add(record)

    accounts = await store.get_accounts()

    assert [a.id for a in accounts] == ["good"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_active_leaves_exactly_one_active(
    store: AccountStore, make_account: Callable[..., CloudAccount]
) -> None:
    await store.add_account(make_account("a", is_active=True))
    await store.add_account(make_account("b"))
    await store.add_account(make_account("c", is_active=True))

    await store.set_active("b")

    active = [a.id for a in await store.get_accounts() if a.is_active]
    assert active == ["b"]
    current = await store.get_active_account()
    assert current is not None and current.id == "b"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_active_unknown_account_raises(store: AccountStore) -> None:
    with pytest.raises(AccountNotFoundError):
        await store.set_active("ghost")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_token_quota_and_status(
    store: AccountStore, make_account: Callable[..., CloudAccount]
) -> None:
    await store.add_account(make_account("a"))
    token = CloudTokenData.issued("ya29.new", "1//new", 1800, issued_at=1000)
    quota = CloudQuotaData(models={"m": ModelQuota(percentage=12.5, reset_time="t")})

    await store.update_token("a", token)
    await store.update_quota("a", quota)
    await store.update_status("a", AccountStatus.RATE_LIMITED)

    loaded = await store.get_account("a")
    assert loaded is not None
    assert loaded.token.access_token == "ya29.new"
    assert loaded.token.expiry_timestamp == 2800
    assert loaded.quota == quota
    assert loaded.status == AccountStatus.RATE_LIMITED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remove_account(
    store: AccountStore, make_account: Callable[..., CloudAccount]
) -> None:
    await store.add_account(make_account("a"))

    assert await store.remove_account("a") is True
    assert await store.remove_account("a") is False
    assert await store.get_accounts() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_settings_round_trip(store: AccountStore) -> None:
    assert await store.get_setting("auto_switch_enabled", False) is False

    await store.set_setting("auto_switch_enabled", True)
    await store.set_setting("quota_switch_threshold", 7.5)

    assert await store.get_setting("auto_switch_enabled") is True
    assert await store.get_setting("quota_switch_threshold") == 7.5
