"""Account store backed by SQLite.

Token sets are serialized to JSON and encrypted with the credential vault
before they reach the database. Quotas and settings are stored as plain JSON.
"""

from typing import Any

import orjson
import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from antigravity_manager.db.engine import Database
from antigravity_manager.db.models import CloudAccountRecord, SettingRecord
from antigravity_manager.exceptions import AccountNotFoundError, DecryptionError
from antigravity_manager.models import (
    AccountProvider,
    AccountStatus,
    CloudAccount,
    CloudQuotaData,
    CloudTokenData,
    now_seconds,
)
from antigravity_manager.security.vault import CredentialVault


logger = structlog.get_logger(__name__)


class AccountStore:
    """Repository for cloud accounts and runtime settings."""

    def __init__(self, db: Database, vault: CredentialVault) -> None:
        self._db = db
        self._vault = vault

    async def _encrypt_token(self, token: CloudTokenData) -> str:
        return await self._vault.encrypt(orjson.dumps(token.to_dict()).decode())

    async def _to_account(self, record: CloudAccountRecord) -> CloudAccount:
        token_json = await self._vault.decrypt(record.token_data)
        quota = (
            CloudQuotaData.from_dict(orjson.loads(record.quota_data))
            if record.quota_data
            else None
        )
        return CloudAccount(
            id=record.id,
            provider=AccountProvider(record.provider),
            email=record.email,
            name=record.name,
            avatar_url=record.avatar_url,
            token=CloudTokenData.from_dict(orjson.loads(token_json)),
            quota=quota,
            status=AccountStatus(record.status),
            is_active=record.is_active,
            created_at=record.created_at,
            last_used=record.last_used,
        )

    async def get_accounts(self) -> list[CloudAccount]:
        """List all readable accounts in creation order.

        Records whose token cannot be decrypted are skipped and logged.
        """
        async with self._db.session() as session:
            result = await session.execute(
                select(CloudAccountRecord).order_by(
                    CloudAccountRecord.created_at, CloudAccountRecord.id
                )
            )
            records = list(result.scalars().all())

        accounts: list[CloudAccount] = []
        for record in records:
            try:
                accounts.append(await self._to_account(record))
            except DecryptionError as e:
                logger.error(
                    "account_decrypt_failed",
                    account_id=record.id,
                    email=record.email,
                    code=e.code.value,
                )
        return accounts

    async def get_account(self, account_id: str) -> CloudAccount | None:
        """Get one account by id.

        Raises:
            DecryptionError: The stored token cannot be decrypted
        """
        async with self._db.session() as session:
            record = await session.get(CloudAccountRecord, account_id)
        if record is None:
            return None
        return await self._to_account(record)

    async def get_active_account(self) -> CloudAccount | None:
        async with self._db.session() as session:
            result = await session.execute(
                select(CloudAccountRecord).where(CloudAccountRecord.is_active == True)  # noqa: E712
            )
            record = result.scalars().first()
        if record is None:
            return None
        return await self._to_account(record)

    async def add_account(self, account: CloudAccount) -> CloudAccount:
        """Insert or replace an account."""
        token_data = await self._encrypt_token(account.token)
        async with self._db.session() as session:
            record = await session.get(CloudAccountRecord, account.id)
            if record is None:
                record = CloudAccountRecord(
                    id=account.id, email=account.email, token_data=token_data
                )
            record.provider = account.provider.value
            record.email = account.email
            record.name = account.name
            record.avatar_url = account.avatar_url
            record.token_data = token_data
            record.quota_data = (
                orjson.dumps(account.quota.to_dict()).decode() if account.quota else None
            )
            record.status = account.status.value
            record.is_active = account.is_active
            record.created_at = account.created_at
            record.last_used = account.last_used
            session.add(record)
        logger.info("account_saved", account_id=account.id, email=account.email)
        return account

    async def remove_account(self, account_id: str) -> bool:
        """Delete an account. Returns True if deleted, False if not found."""
        async with self._db.session() as session:
            record = await session.get(CloudAccountRecord, account_id)
            if record is None:
                return False
            await session.delete(record)
        logger.info("account_removed", account_id=account_id)
        return True

    async def _get_record_or_raise(
        self, session: AsyncSession, account_id: str
    ) -> CloudAccountRecord:
        record = await session.get(CloudAccountRecord, account_id)
        if record is None:
            raise AccountNotFoundError(account_id)
        return record

    async def update_token(self, account_id: str, token: CloudTokenData) -> None:
        token_data = await self._encrypt_token(token)
        async with self._db.session() as session:
            record = await self._get_record_or_raise(session, account_id)
            record.token_data = token_data
            session.add(record)

    async def update_quota(self, account_id: str, quota: CloudQuotaData) -> None:
        async with self._db.session() as session:
            record = await self._get_record_or_raise(session, account_id)
            record.quota_data = orjson.dumps(quota.to_dict()).decode()
            session.add(record)

    async def update_last_used(self, account_id: str) -> None:
        async with self._db.session() as session:
            record = await self._get_record_or_raise(session, account_id)
            record.last_used = now_seconds()
            session.add(record)

    async def update_status(self, account_id: str, status: AccountStatus) -> None:
        async with self._db.session() as session:
            record = await self._get_record_or_raise(session, account_id)
            if record.status != status.value:
                logger.info(
                    "account_status_changed",
                    account_id=account_id,
                    old_status=record.status,
                    new_status=status.value,
                )
            record.status = status.value
            session.add(record)

    async def set_active(self, account_id: str) -> None:
        """Make ``account_id`` the only active account, in one transaction."""
        async with self._db.session() as session:
            await self._get_record_or_raise(session, account_id)
            await session.execute(
                update(CloudAccountRecord)
                .where(CloudAccountRecord.id != account_id)
                .values(is_active=False)
            )
            await session.execute(
                update(CloudAccountRecord)
                .where(CloudAccountRecord.id == account_id)
                .values(is_active=True)
            )
        logger.info("account_activated", account_id=account_id)

    async def get_setting(self, key: str, default: Any = None) -> Any:
        async with self._db.session() as session:
            record = await session.get(SettingRecord, key)
        if record is None:
            return default
        return orjson.loads(record.value)

    async def set_setting(self, key: str, value: Any) -> None:
        encoded = orjson.dumps(value).decode()
        async with self._db.session() as session:
            record = await session.get(SettingRecord, key)
            if record is None:
                record = SettingRecord(key=key, value=encoded)
            else:
                record.value = encoded
            session.add(record)
