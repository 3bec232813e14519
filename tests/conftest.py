"""Shared fixtures for Antigravity Manager tests."""

from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest

from antigravity_manager.config.settings import Settings, StorageSettings
from antigravity_manager.db.engine import Database
from antigravity_manager.db.repositories import AccountStore
from antigravity_manager.models import (
    AccountStatus,
    CloudAccount,
    CloudQuotaData,
    CloudTokenData,
    ModelQuota,
    now_seconds,
)
from antigravity_manager.security.key_storage import FileKeyStrategy
from antigravity_manager.security.vault import CredentialVault


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary data directory with fast timings."""
    return Settings(
        storage=StorageSettings(data_dir=tmp_path / "data"),
        monitor={"request_delay_seconds": 0, "focus_debounce_seconds": 10},
        process={
            "state_db_path": tmp_path / "app" / "state.vscdb",
            "stop_timeout_seconds": 0.2,
            "poll_interval_seconds": 0.05,
        },
        oauth={"client_id": "test-client", "client_secret": "test-secret"},
    )


@pytest.fixture
def vault(tmp_path: Path) -> CredentialVault:
    """Vault backed only by a local key file."""
    return CredentialVault([FileKeyStrategy(tmp_path / "keys" / ".mk.plain")])


@pytest.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    db = Database(tmp_path / "test.db")
    await db.init()
    yield db
    await db.close()


@pytest.fixture
def store(database: Database, vault: CredentialVault) -> AccountStore:
    return AccountStore(database, vault)


def quota(*percentages: float) -> CloudQuotaData:
    """Quota with one model per percentage, named model-0, model-1, ..."""
    return CloudQuotaData(
        models={f"model-{i}": ModelQuota(percentage=p) for i, p in enumerate(percentages)}
    )


@pytest.fixture
def make_account() -> Callable[..., CloudAccount]:
    """Factory for accounts with a fresh token."""
    counter = {"n": 0}

    def _make(
        account_id: str | None = None,
        *,
        percentages: tuple[float, ...] | None = (80.0,),
        status: AccountStatus = AccountStatus.ACTIVE,
        is_active: bool = False,
        expires_in: int = 3600,
        refresh_token: str = "1//refresh",
    ) -> CloudAccount:
        counter["n"] += 1
        n = counter["n"]
        account_id = account_id or f"acc-{n}"
        return CloudAccount(
            id=account_id,
            email=f"{account_id}@example.com",
            token=CloudTokenData.issued(
                access_token=f"ya29.access-{account_id}",
                refresh_token=refresh_token,
                expires_in=expires_in,
            ),
            quota=quota(*percentages) if percentages is not None else None,
            status=status,
            is_active=is_active,
            created_at=now_seconds() + n,
        )

    return _make
