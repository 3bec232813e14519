"""Quota monitor: periodic and focus-triggered polling of all accounts.

Features:
- Polls every 5 minutes via APScheduler
- Polls when the application regains focus, at most once per 10 seconds
- Drops a poll outright if another one is still running
- Refreshes near-expiry tokens before fetching quota
- Warns when an account's average quota runs low
- Hands over to the rotation policy after each regular poll
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from antigravity_manager.config.settings import MonitorSettings
from antigravity_manager.db.repositories import AccountStore
from antigravity_manager.exceptions import ManagerError
from antigravity_manager.models import CloudAccount
from antigravity_manager.notifications.service import NotificationGateway
from antigravity_manager.rotation.policy import RotationPolicy
from antigravity_manager.rotation.quota import average_quota, should_warn
from antigravity_manager.rotation.refresh import TokenRefreshCoordinator


logger = structlog.get_logger(__name__)

POLL_JOB_ID = "quota_poll"


class QuotaMonitor:
    """Keeps every account's token and quota fresh and triggers rotation."""

    def __init__(
        self,
        store: AccountStore,
        refresher: TokenRefreshCoordinator,
        policy: RotationPolicy,
        notifier: NotificationGateway,
        settings: MonitorSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._policy = policy
        self._notifier = notifier
        self._settings = settings
        self._clock = clock

        self._scheduler: Any = None  # AsyncIOScheduler
        self._running = False
        self._is_polling = False
        self._last_focus_time: float | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self.last_poll_at: float | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_polling(self) -> bool:
        return self._is_polling

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start(self) -> None:
        """Run an initial poll without rotating, then poll on the interval.

        The focus debounce window also starts now, so a focus event that
        arrives with startup does not poll twice.
        """
        if self._running:
            logger.warning("quota_monitor_already_running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._scheduled_poll,
            "interval",
            seconds=self._settings.poll_interval_seconds,
            id=POLL_JOB_ID,
            name="Quota Poll",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        self._running = True
        self._last_focus_time = self._clock()

        logger.info(
            "quota_monitor_started",
            poll_interval=self._settings.poll_interval_seconds,
            focus_debounce=self._settings.focus_debounce_seconds,
        )

        self._spawn(self.poll(skip_auto_switch=True))

    async def stop(self) -> None:
        """Stop scheduling new polls. A poll in progress finishes on its own."""
        if not self._running:
            return
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self._running = False
        logger.info("quota_monitor_stopped")

    async def wait_idle(self) -> None:
        """Wait for background polls started by the monitor."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _reset_interval(self) -> None:
        if self._scheduler is not None:
            self._scheduler.reschedule_job(
                POLL_JOB_ID,
                trigger="interval",
                seconds=self._settings.poll_interval_seconds,
            )

    async def _scheduled_poll(self) -> None:
        await self.poll()

    async def handle_app_focus(self) -> bool:
        """Poll because the application regained focus.

        Skipped while a poll runs or within the debounce window of the last
        focus poll. A focus poll restarts the interval timer.

        Returns:
            True if a poll ran
        """
        if self._is_polling:
            logger.debug("focus_poll_skipped", reason="poll_in_progress")
            return False

        now = self._clock()
        if (
            self._last_focus_time is not None
            and now - self._last_focus_time < self._settings.focus_debounce_seconds
        ):
            logger.debug("focus_poll_skipped", reason="debounced")
            return False

        self._last_focus_time = now
        ran = await self.poll()
        self._reset_interval()
        return ran

    async def poll(self, skip_auto_switch: bool = False) -> bool:
        """Refresh tokens and quotas for every account.

        Args:
            skip_auto_switch: Do not consult the rotation policy afterwards

        Returns:
            False if another poll was already running, True otherwise
        """
        if self._is_polling:
            logger.debug("poll_skipped", reason="poll_in_progress")
            return False

        self._is_polling = True
        try:
            await self._poll_all()
            self.last_poll_at = time.time()
            if not skip_auto_switch:
                try:
                    await self._policy.check_and_switch_if_needed()
                except ManagerError as e:
                    logger.error("auto_switch_check_failed", error=e.message)
        finally:
            self._is_polling = False
        return True

    async def _poll_all(self) -> None:
        accounts = await self._store.get_accounts()
        warning, switch = await self._policy.thresholds()
        logger.debug("poll_start", accounts=len(accounts))

        for account in accounts:
            try:
                await self._poll_account(account, warning, switch)
            except Exception as e:
                # One broken account never aborts the batch
                logger.warning(
                    "poll_account_failed",
                    account_id=account.id,
                    email=account.email,
                    error=str(e),
                    exc_info=True,
                )

    async def _poll_account(
        self, account: CloudAccount, warning: float, switch: float
    ) -> None:
        if self._refresher.is_stale(account):
            await self._refresher.refresh_and_save_token(account)

        await asyncio.sleep(self._settings.request_delay_seconds)
        quota = await self._refresher.fetch_quota_for(account)

        if should_warn(quota, warning, switch):
            await self._notifier.send_quota_warning(account.email, average_quota(quota))
