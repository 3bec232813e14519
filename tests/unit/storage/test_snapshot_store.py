"""Tests for the local account index."""

import pytest

from antigravity_manager.db.engine import Database
from antigravity_manager.db.repositories import SnapshotStore
from antigravity_manager.models import LocalAccount


def local(account_id: str, last_used: int) -> LocalAccount:
    return LocalAccount(
        id=account_id,
        email=f"{account_id}@example.com",
        name=account_id,
        backup_file=f"/backups/{account_id}.json",
        created_at=100,
        last_used=last_used,
    )


@pytest.fixture
def snapshot_store(database: Database) -> SnapshotStore:
    return SnapshotStore(database)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_orders_by_last_used_descending(
    snapshot_store: SnapshotStore,
) -> None:
    await snapshot_store.save(local("old", 200))
    await snapshot_store.save(local("new", 300))
    await snapshot_store.save(local("mid", 250))

    assert [a.id for a in await snapshot_store.list_accounts()] == ["new", "mid", "old"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_save_replaces_and_find_by_email(snapshot_store: SnapshotStore) -> None:
    await snapshot_store.save(local("a", 200))
    updated = local("a", 400)
    updated.name = "Renamed"
    await snapshot_store.save(updated)

    found = await snapshot_store.find_by_email("a@example.com")
    assert found == updated
    assert await snapshot_store.find_by_email("ghost@example.com") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remove(snapshot_store: SnapshotStore) -> None:
    await snapshot_store.save(local("a", 200))

    assert await snapshot_store.remove("a") is True
    assert await snapshot_store.get("a") is None
    assert await snapshot_store.remove("a") is False
