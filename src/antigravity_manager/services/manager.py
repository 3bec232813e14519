"""Application root: owns every service and exposes user-level operations."""

import asyncio
from typing import Any

import shortuuid
import structlog

from antigravity_manager.config.settings import Settings
from antigravity_manager.db.engine import Database
from antigravity_manager.db.repositories import AccountStore, SnapshotStore
from antigravity_manager.exceptions import AccountNotFoundError, QuotaCheckFailedError
from antigravity_manager.injection.state_store import (
    StateInjector,
    VSCodeStateInjector,
)
from antigravity_manager.models import AccountProvider, CloudAccount, LocalAccount
from antigravity_manager.notifications.service import (
    NotificationGateway,
    NotificationSink,
)
from antigravity_manager.process.controller import ProcessController
from antigravity_manager.process.paths import resolve_state_db_path
from antigravity_manager.providers.google import GoogleCloudClient
from antigravity_manager.rotation.monitor import QuotaMonitor
from antigravity_manager.rotation.policy import AUTO_SWITCH_SETTING, RotationPolicy
from antigravity_manager.rotation.refresh import TokenRefreshCoordinator
from antigravity_manager.rotation.switch import SwitchOrchestrator, SwitchResult
from antigravity_manager.security.vault import CredentialVault
from antigravity_manager.services.snapshots import SnapshotService


logger = structlog.get_logger(__name__)


class AccountManager:
    """Builds the service graph and exposes the operations the UI calls.

    Collaborators can be injected for tests; anything omitted is built from
    ``settings``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        vault: CredentialVault | None = None,
        client: GoogleCloudClient | None = None,
        process: ProcessController | None = None,
        injector: StateInjector | None = None,
        notification_sink: NotificationSink | None = None,
    ) -> None:
        self.settings = settings
        self.db = Database(settings.storage.database_path)
        self.vault = vault or CredentialVault.from_settings(settings)
        self.store = AccountStore(self.db, self.vault)
        self.client = client or GoogleCloudClient(settings.oauth)
        self.refresher = TokenRefreshCoordinator(
            self.store, self.client, settings.monitor.refresh_buffer_seconds
        )
        self.process = process or ProcessController(settings.process)
        self.injector = injector or VSCodeStateInjector(
            resolve_state_db_path(settings.process), settings.process.state_key
        )
        self.notifier = NotificationGateway(settings.notifications, notification_sink)
        self.switcher = SwitchOrchestrator(
            self.store,
            self.refresher,
            self.process,
            self.injector,
            stop_timeout=settings.process.stop_timeout_seconds,
        )
        self.policy = RotationPolicy(
            self.store, self.switcher, self.notifier, settings.notifications
        )
        self.monitor = QuotaMonitor(
            self.store, self.refresher, self.policy, self.notifier, settings.monitor
        )
        self.snapshots = SnapshotService(
            SnapshotStore(self.db),
            self.vault,
            self.injector,
            self.process,
            settings.storage.backups_dir,
            settings.process.snapshot_keys,
            stop_timeout=settings.process.stop_timeout_seconds,
        )
        self._background: set[asyncio.Task[Any]] = set()

    async def init(self, start_monitor: bool = False) -> None:
        """Open storage and resolve the master key; optionally start polling."""
        await self.db.init()
        await self.vault.get_key()
        if start_monitor:
            await self.monitor.start()
        logger.info(
            "account_manager_initialized",
            database=str(self.settings.storage.database_path),
            key_source=self.vault.key_source,
            monitor=start_monitor,
        )

    async def shutdown(self) -> None:
        """Stop scheduling polls and let any poll in progress finish."""
        await self.monitor.stop()
        await self.monitor.wait_idle()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.client.close()
        await self.db.close()
        logger.info("account_manager_shutdown")

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def add_account(self, auth_code: str) -> CloudAccount:
        """Exchange an authorization code and store the new account.

        The initial quota fetch is best effort; the account is kept even if
        it fails.
        """
        token = await self.client.exchange_code(auth_code)
        user = await self.client.get_user_info(token.access_token)
        token.email = user.email
        account = CloudAccount(
            id=shortuuid.uuid(),
            provider=AccountProvider.GOOGLE,
            email=user.email,
            name=user.name,
            avatar_url=user.avatar_url,
            token=token,
        )
        await self.store.add_account(account)
        logger.info("account_added", account_id=account.id, email=account.email)

        try:
            return await self.refresher.refresh_quota(account.id)
        except QuotaCheckFailedError as e:
            logger.warning(
                "initial_quota_fetch_failed", account_id=account.id, error=e.message
            )
            return account

    async def list_accounts(self) -> list[CloudAccount]:
        return await self.store.get_accounts()

    async def delete_account(self, account_id: str) -> None:
        if not await self.store.remove_account(account_id):
            raise AccountNotFoundError(account_id)

    async def refresh_account_quota(self, account_id: str) -> CloudAccount:
        return await self.refresher.refresh_quota(account_id)

    async def switch_cloud_account(self, account_id: str) -> SwitchResult:
        return await self.switcher.switch_account(account_id)

    # ------------------------------------------------------------------
    # Local account snapshots
    # ------------------------------------------------------------------

    async def add_account_snapshot(self) -> LocalAccount:
        """Capture whoever is signed in to the application right now."""
        return await self.snapshots.capture()

    async def list_local_accounts(self) -> list[LocalAccount]:
        return await self.snapshots.list_accounts()

    async def switch_local_account(self, account_id: str) -> LocalAccount:
        return await self.snapshots.switch(account_id)

    async def delete_local_account(self, account_id: str) -> None:
        await self.snapshots.delete(account_id)

    # ------------------------------------------------------------------
    # Auto switch and monitoring
    # ------------------------------------------------------------------

    async def get_auto_switch_enabled(self) -> bool:
        return await self.policy.is_auto_switch_enabled()

    async def set_auto_switch_enabled(
        self, enabled: bool, poll_in_background: bool = True
    ) -> None:
        """Persist the flag; enabling triggers a background poll."""
        await self.store.set_setting(AUTO_SWITCH_SETTING, enabled)
        logger.info("auto_switch_toggled", enabled=enabled)
        if enabled and poll_in_background:
            self._spawn(self.monitor.poll())

    async def force_poll_cloud_monitor(self) -> bool:
        return await self.monitor.poll()

    async def check_and_switch_if_needed(self) -> bool:
        return await self.policy.check_and_switch_if_needed()

    async def handle_app_focus(self) -> bool:
        return await self.monitor.handle_app_focus()

    async def process_status(self) -> dict[str, Any]:
        return {
            "app_name": self.settings.process.app_name,
            "running": await self.process.is_running(),
            "monitor_running": self.monitor.is_running,
            "polling": self.monitor.is_polling,
            "last_poll_at": self.monitor.last_poll_at,
        }
