"""Index of captured local accounts."""

import structlog
from sqlmodel import select

from antigravity_manager.db.engine import Database
from antigravity_manager.db.models import LocalAccountRecord
from antigravity_manager.models import LocalAccount


logger = structlog.get_logger(__name__)


def _to_local_account(record: LocalAccountRecord) -> LocalAccount:
    return LocalAccount(
        id=record.id,
        email=record.email,
        name=record.name,
        backup_file=record.backup_file,
        created_at=record.created_at,
        last_used=record.last_used,
    )


class SnapshotStore:
    """Repository for local accounts. Backup files are managed by the caller."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def list_accounts(self) -> list[LocalAccount]:
        """All local accounts, most recently used first."""
        async with self._db.session() as session:
            result = await session.execute(
                select(LocalAccountRecord).order_by(
                    LocalAccountRecord.last_used.desc(), LocalAccountRecord.id
                )
            )
            return [_to_local_account(r) for r in result.scalars().all()]

    async def get(self, account_id: str) -> LocalAccount | None:
        async with self._db.session() as session:
            record = await session.get(LocalAccountRecord, account_id)
        return _to_local_account(record) if record else None

    async def find_by_email(self, email: str) -> LocalAccount | None:
        async with self._db.session() as session:
            result = await session.execute(
                select(LocalAccountRecord).where(LocalAccountRecord.email == email)
            )
            record = result.scalars().first()
        return _to_local_account(record) if record else None

    async def save(self, account: LocalAccount) -> LocalAccount:
        """Insert or replace a local account."""
        async with self._db.session() as session:
            record = await session.get(LocalAccountRecord, account.id)
            if record is None:
                record = LocalAccountRecord(
                    id=account.id,
                    email=account.email,
                    name=account.name,
                    backup_file=account.backup_file,
                )
            record.email = account.email
            record.name = account.name
            record.backup_file = account.backup_file
            record.created_at = account.created_at
            record.last_used = account.last_used
            session.add(record)
        logger.debug("local_account_saved", account_id=account.id, email=account.email)
        return account

    async def remove(self, account_id: str) -> bool:
        """Delete a local account. Returns False if it did not exist."""
        async with self._db.session() as session:
            record = await session.get(LocalAccountRecord, account_id)
            if record is None:
                return False
            await session.delete(record)
        logger.info("local_account_removed", account_id=account_id)
        return True
