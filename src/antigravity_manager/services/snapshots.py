"""Local account snapshots.

A snapshot captures the application's signed-in state for whoever is signed
in right now, so the user can later jump back to that account without going
through OAuth again. Switching closes the application, writes the captured
keys back into its state database and starts it again.

Backup files hold the state encrypted with the credential vault. Plain JSON
backups still load because the vault passes legacy plaintext through.
"""

import time
from pathlib import Path

import orjson
import shortuuid
import structlog

from antigravity_manager.core.async_utils import run_in_executor
from antigravity_manager.db.repositories import SnapshotStore
from antigravity_manager.exceptions import (
    AccountNotFoundError,
    NotSignedInError,
    ProcessExitTimeoutError,
    SnapshotMissingError,
)
from antigravity_manager.injection.state_store import StateInjector
from antigravity_manager.models import LocalAccount, now_seconds
from antigravity_manager.process.controller import ProcessController
from antigravity_manager.security.key_storage import KEY_FILE_MODE
from antigravity_manager.security.vault import CredentialVault
from antigravity_manager.utils.files import atomic_write


logger = structlog.get_logger(__name__)

BACKUP_VERSION = "1.0"


def default_name(email: str, name: str | None) -> str:
    """Display name for a new local account."""
    if name:
        return name
    if email and "@" in email:
        return email.split("@")[0]
    return f"Account_{int(time.time() * 1000)}"


class SnapshotService:
    """Captures, restores and forgets local account snapshots."""

    def __init__(
        self,
        store: SnapshotStore,
        vault: CredentialVault,
        injector: StateInjector,
        process: ProcessController,
        backups_dir: Path,
        keys: list[str],
        stop_timeout: float = 10.0,
    ) -> None:
        self._store = store
        self._vault = vault
        self._injector = injector
        self._process = process
        self._backups_dir = backups_dir
        self._keys = keys
        self._stop_timeout = stop_timeout

    def _backup_path(self, account: LocalAccount) -> Path:
        if account.backup_file:
            return Path(account.backup_file)
        return self._backups_dir / f"{account.id}.json"

    async def list_accounts(self) -> list[LocalAccount]:
        return await self._store.list_accounts()

    async def capture(self) -> LocalAccount:
        """Snapshot the signed-in account, updating it if already known.

        An existing account keeps its custom name unless the application
        reports a name that is not just the email's local part.

        Raises:
            NotSignedInError: The application has no signed-in account
        """
        identity = await self._injector.current_identity()
        if identity is None:
            raise NotSignedInError()

        now = now_seconds()
        account = await self._store.find_by_email(identity.email)
        if account is not None:
            if identity.name and identity.name != identity.email.split("@")[0]:
                account.name = identity.name
            account.last_used = now
            logger.info("local_account_updating", account_id=account.id)
        else:
            account_id = shortuuid.uuid()
            account = LocalAccount(
                id=account_id,
                email=identity.email,
                name=default_name(identity.email, identity.name),
                backup_file=str(self._backups_dir / f"{account_id}.json"),
                created_at=now,
                last_used=now,
            )
            logger.info("local_account_creating", account_id=account.id)

        data = await self._injector.export_state(self._keys)
        document = {
            "version": BACKUP_VERSION,
            "account": account.to_dict(),
            "data": data,
        }
        sealed = await self._vault.encrypt(orjson.dumps(document).decode())
        path = self._backup_path(account)
        account.backup_file = str(path)
        await run_in_executor(atomic_write, path, sealed.encode(), KEY_FILE_MODE)

        await self._store.save(account)
        logger.info(
            "local_account_captured",
            account_id=account.id,
            email=account.email,
            keys=sorted(data),
        )
        return account

    async def switch(self, account_id: str) -> LocalAccount:
        """Restart the application signed in as a captured account.

        A failed or slow shutdown is logged and the restore goes ahead.

        Raises:
            AccountNotFoundError: Unknown local account
            SnapshotMissingError: Its backup file no longer exists
            DecryptionError: The backup cannot be decrypted
            ProcessStartError: The application could not be started
        """
        account = await self._store.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        path = self._backup_path(account)
        if not path.exists():
            raise SnapshotMissingError(account_id, str(path))

        logger.info("local_switch_start", account_id=account_id, email=account.email)
        await self._process.close()
        try:
            await self._process.wait_for_exit(self._stop_timeout)
        except ProcessExitTimeoutError as e:
            logger.warning("local_switch_stop_timeout_continuing", timeout=e.timeout)

        sealed = await run_in_executor(path.read_text, encoding="utf-8")
        document = orjson.loads(await self._vault.decrypt(sealed))
        try:
            await self._injector.backup()
        except OSError as e:
            logger.warning("local_switch_backup_failed_continuing", error=str(e))
        await self._injector.import_state(document.get("data") or {})

        account.last_used = now_seconds()
        await self._store.save(account)
        await self._process.start()
        logger.info("local_switch_complete", account_id=account_id, email=account.email)
        return account

    async def delete(self, account_id: str) -> None:
        """Forget a local account and remove its backup file.

        Raises:
            AccountNotFoundError: Unknown local account
        """
        account = await self._store.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        path = self._backup_path(account)
        try:
            await run_in_executor(path.unlink, missing_ok=True)
        except OSError as e:
            logger.warning("local_backup_delete_failed", path=str(path), error=str(e))
        await self._store.remove(account_id)
