"""Account switch orchestration.

A switch walks a fixed sequence of stages::

    TOKEN_CHECK -> STOPPING -> BACKING_UP -> INJECTING -> RESTARTING -> DONE

A slow shutdown and a failed backup are logged and tolerated. Any other
error aborts the switch with ``SwitchFailedError``. Completed stages are not
undone; the ``.backup`` copy of the application state is kept for manual
recovery.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

import structlog

from antigravity_manager.db.repositories import AccountStore
from antigravity_manager.exceptions import (
    AccountNotFoundError,
    ProcessExitTimeoutError,
    SwitchFailedError,
)
from antigravity_manager.injection.state_store import StateInjector
from antigravity_manager.models import CloudAccount
from antigravity_manager.process.controller import ProcessController
from antigravity_manager.rotation.refresh import TokenRefreshCoordinator


logger = structlog.get_logger(__name__)

# Seconds to wait for the application to exit before proceeding anyway
STOP_TIMEOUT_SECONDS = 10.0


class SwitchStage(StrEnum):
    IDLE = "idle"
    TOKEN_CHECK = "token_check"
    STOPPING = "stopping"
    BACKING_UP = "backing_up"
    INJECTING = "injecting"
    RESTARTING = "restarting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SwitchResult:
    account: CloudAccount
    previous_email: str | None
    stages: list[SwitchStage] = field(default_factory=list)


class AccountSwitcher(Protocol):
    """Capability the rotation policy needs to perform a switch."""

    async def switch_account(self, account_id: str) -> SwitchResult: ...


class SwitchOrchestrator:
    """Runs the stop, back up, inject, restart sequence for one account."""

    def __init__(
        self,
        store: AccountStore,
        refresher: TokenRefreshCoordinator,
        process: ProcessController,
        injector: StateInjector,
        stop_timeout: float = STOP_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._process = process
        self._injector = injector
        self._stop_timeout = stop_timeout

    def _enter(self, stage: SwitchStage, result: SwitchResult) -> None:
        result.stages.append(stage)
        logger.debug("switch_stage", stage=stage.value, account_id=result.account.id)

    async def switch_account(self, account_id: str) -> SwitchResult:
        """Make ``account_id`` the application's active identity.

        Args:
            account_id: Target account

        Returns:
            The activated account and the stages it went through

        Raises:
            AccountNotFoundError: Unknown account id
            SwitchFailedError: A stage failed; earlier stages are not undone
        """
        account = await self._store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        previous = await self._store.get_active_account()
        result = SwitchResult(
            account=account,
            previous_email=previous.email if previous else None,
        )
        logger.info(
            "switch_start",
            account_id=account_id,
            email=account.email,
            previous=result.previous_email,
        )

        try:
            self._enter(SwitchStage.TOKEN_CHECK, result)
            if self._refresher.is_stale(account):
                await self._refresher.refresh_and_save_token(account)

            self._enter(SwitchStage.STOPPING, result)
            await self._process.close()
            try:
                await self._process.wait_for_exit(self._stop_timeout)
            except ProcessExitTimeoutError as e:
                logger.warning("switch_stop_timeout_continuing", timeout=e.timeout)

            self._enter(SwitchStage.BACKING_UP, result)
            try:
                await self._injector.backup()
            except OSError as e:
                logger.warning("switch_backup_failed_continuing", error=str(e))

            self._enter(SwitchStage.INJECTING, result)
            await self._injector.inject(account)

            self._enter(SwitchStage.RESTARTING, result)
            await self._store.update_last_used(account.id)
            await self._store.set_active(account.id)
            account.is_active = True
            await self._process.start()
        except Exception as e:
            # Stages are tracked per call; overlapping switches never share them
            failed_stage = result.stages[-1]
            result.stages.append(SwitchStage.FAILED)
            logger.error(
                "switch_failed",
                account_id=account_id,
                stage=failed_stage.value,
                error=str(e),
                exc_info=True,
            )
            raise SwitchFailedError(account_id, failed_stage.value, e) from e

        self._enter(SwitchStage.DONE, result)
        logger.info("switch_complete", account_id=account_id, email=account.email)
        return result
