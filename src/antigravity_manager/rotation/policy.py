"""Rotation policy: decide when the active account must be replaced."""

import structlog

from antigravity_manager.config.settings import NotificationSettings
from antigravity_manager.db.repositories import AccountStore
from antigravity_manager.exceptions import NoHealthyAccountError, SwitchFailedError
from antigravity_manager.models import AccountStatus, CloudAccount
from antigravity_manager.notifications.service import NotificationGateway
from antigravity_manager.rotation.quota import is_depleted, select_best_candidate
from antigravity_manager.rotation.switch import AccountSwitcher


logger = structlog.get_logger(__name__)

AUTO_SWITCH_SETTING = "auto_switch_enabled"
WARNING_THRESHOLD_SETTING = "quota_warning_threshold"
SWITCH_THRESHOLD_SETTING = "quota_switch_threshold"


class RotationPolicy:
    """Checks the active account and rotates away from it when needed."""

    def __init__(
        self,
        store: AccountStore,
        switcher: AccountSwitcher,
        notifier: NotificationGateway,
        defaults: NotificationSettings,
    ) -> None:
        self._store = store
        self._switcher = switcher
        self._notifier = notifier
        self._defaults = defaults

    async def thresholds(self) -> tuple[float, float]:
        """Current ``(warning, switch)`` thresholds in percent."""
        warning = await self._store.get_setting(
            WARNING_THRESHOLD_SETTING, self._defaults.quota_warning_threshold
        )
        switch = await self._store.get_setting(
            SWITCH_THRESHOLD_SETTING, self._defaults.quota_switch_threshold
        )
        return float(warning), float(switch)

    async def is_auto_switch_enabled(self) -> bool:
        return bool(await self._store.get_setting(AUTO_SWITCH_SETTING, False))

    async def is_depleted(self, account: CloudAccount) -> bool:
        _, switch = await self.thresholds()
        return is_depleted(account, switch)

    async def find_best_account(self, current_id: str | None) -> CloudAccount | None:
        """Highest-quota healthy account other than ``current_id``."""
        _, switch = await self.thresholds()
        accounts = await self._store.get_accounts()
        return select_best_candidate(accounts, current_id, switch)

    async def check_and_switch_if_needed(self) -> bool:
        """Rotate away from a depleted or rate-limited active account.

        Returns:
            True if a switch happened
        """
        if not await self.is_auto_switch_enabled():
            return False

        current = await self._store.get_active_account()
        if current is None:
            logger.debug("auto_switch_no_active_account")
            return False

        _, switch_threshold = await self.thresholds()
        if current.status != AccountStatus.RATE_LIMITED and not is_depleted(
            current, switch_threshold
        ):
            return False

        logger.info(
            "active_account_unhealthy",
            account_id=current.id,
            email=current.email,
            status=current.status.value,
        )
        best = await self.find_best_account(current.id)
        if best is None:
            error = NoHealthyAccountError()
            logger.warning("auto_switch_no_candidate", error=error.message)
            await self._notifier.send_all_depleted()
            return False

        try:
            await self._switcher.switch_account(best.id)
        except SwitchFailedError as e:
            logger.error("auto_switch_failed", target=best.id, stage=e.stage)
            await self._notifier.send_switch_failed(
                current.email, best.email, e.message
            )
            return False

        logger.info("auto_switch_success", from_email=current.email, to_email=best.email)
        await self._notifier.send_auto_switch(current.email, best.email)
        return True
