"""Read and write the application's state database.

The application keeps VS Code style global state in a SQLite file with a
single ``ItemTable(key, value)`` table. Cloud switches upsert one JSON
credential document under a configurable key; local account snapshots copy
a set of raw keys out and back in. The application must be stopped while
anything is written.
"""

import shutil
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import orjson
import structlog
from sqlalchemy import bindparam, create_engine, text

from antigravity_manager.core.async_utils import run_in_executor
from antigravity_manager.models import CloudAccount


logger = structlog.get_logger(__name__)

BACKUP_SUFFIX = ".backup"

_SELECT_ITEMS = text("SELECT key, value FROM ItemTable WHERE key IN :keys").bindparams(
    bindparam("keys", expanding=True)
)


@dataclass
class SignedInIdentity:
    email: str
    name: str | None = None


class StateInjector(ABC):
    """Provisions credentials into the external application."""

    @property
    @abstractmethod
    def state_path(self) -> Path:
        """File holding the application's state."""

    @abstractmethod
    async def inject(self, account: CloudAccount) -> None:
        """Make ``account`` the identity the application signs in with."""

    @abstractmethod
    async def export_state(self, keys: Iterable[str]) -> dict[str, str]:
        """Read raw values for ``keys``; missing keys are left out."""

    @abstractmethod
    async def import_state(self, items: dict[str, str]) -> None:
        """Write raw values back, replacing existing ones."""

    @abstractmethod
    async def current_identity(self) -> SignedInIdentity | None:
        """The account the application is signed in with, if any."""

    async def backup(self) -> Path | None:
        """Copy the state file to ``<path>.backup``.

        Returns:
            The backup path, or None when there is no state file yet
        """
        source = self.state_path
        if not source.exists():
            return None
        target = source.with_name(source.name + BACKUP_SUFFIX)
        await run_in_executor(shutil.copy2, source, target)
        logger.info("state_backup_created", path=str(target))
        return target


def build_credential_document(account: CloudAccount) -> dict[str, object]:
    token = account.token
    return {
        "email": account.email,
        "name": account.name,
        "access_token": token.access_token,
        "refresh_token": token.refresh_token,
        "token_type": token.token_type,
        "expires_in": token.expires_in,
        "expiry_timestamp": token.expiry_timestamp,
    }


class VSCodeStateInjector(StateInjector):
    """Works on the ``ItemTable`` of ``state.vscdb``."""

    def __init__(self, db_path: Path, state_key: str) -> None:
        self._db_path = db_path
        self._state_key = state_key

    @property
    def state_path(self) -> Path:
        return self._db_path

    def _write_items(self, items: dict[str, str]) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(f"sqlite:///{self._db_path}")
        try:
            with engine.begin() as conn:
                conn.execute(
                    text(
                        "CREATE TABLE IF NOT EXISTS ItemTable "
                        "(key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)"
                    )
                )
                if items:
                    conn.execute(
                        text(
                            "INSERT OR REPLACE INTO ItemTable (key, value) "
                            "VALUES (:key, :value)"
                        ),
                        [{"key": k, "value": v} for k, v in items.items()],
                    )
        finally:
            engine.dispose()

    def _read_items(self, keys: list[str]) -> dict[str, str]:
        if not keys or not self._db_path.exists():
            return {}
        engine = create_engine(f"sqlite:///{self._db_path}")
        try:
            with engine.connect() as conn:
                has_table = conn.execute(
                    text(
                        "SELECT 1 FROM sqlite_master "
                        "WHERE type = 'table' AND name = 'ItemTable'"
                    )
                ).first()
                if has_table is None:
                    return {}
                rows = conn.execute(_SELECT_ITEMS, {"keys": keys}).all()
        finally:
            engine.dispose()
        return {
            key: value.decode() if isinstance(value, bytes) else value
            for key, value in rows
        }

    def read(self) -> dict[str, object] | None:
        """Return the injected credential document, if any."""
        value = self._read_items([self._state_key]).get(self._state_key)
        if value is None:
            return None
        return orjson.loads(value)

    async def inject(self, account: CloudAccount) -> None:
        value = orjson.dumps(build_credential_document(account)).decode()
        await run_in_executor(self._write_items, {self._state_key: value})
        logger.info(
            "credentials_injected",
            account_id=account.id,
            email=account.email,
            path=str(self._db_path),
        )

    async def export_state(self, keys: Iterable[str]) -> dict[str, str]:
        return await run_in_executor(self._read_items, list(keys))

    async def import_state(self, items: dict[str, str]) -> None:
        await run_in_executor(self._write_items, items)
        logger.info("state_restored", keys=sorted(items), path=str(self._db_path))

    async def current_identity(self) -> SignedInIdentity | None:
        try:
            document = await run_in_executor(self.read)
        except orjson.JSONDecodeError:
            logger.warning("auth_state_unreadable", path=str(self._db_path))
            return None
        if not isinstance(document, dict) or not document.get("email"):
            return None
        name = document.get("name")
        return SignedInIdentity(
            email=str(document["email"]), name=str(name) if name else None
        )
