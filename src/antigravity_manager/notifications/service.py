"""Debounced user notifications.

Each alert kind has a debounce key; a repeat of the same key within
``debounce_seconds`` is dropped. Delivery failures are logged and never
propagate to the caller.
"""

import asyncio
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

import structlog
from cachetools import TTLCache

from antigravity_manager.config.settings import NotificationSettings
from antigravity_manager.core.async_utils import run_in_executor
from antigravity_manager.core.system import get_platform


logger = structlog.get_logger(__name__)

HISTORY_SIZE = 50
APP_TITLE = "Antigravity Manager"


class NotificationType(StrEnum):
    AUTO_SWITCH_SUCCESS = "auto_switch_success"
    SWITCH_FAILED = "switch_failed"
    QUOTA_WARNING = "quota_warning"
    ALL_DEPLETED = "all_depleted"


@dataclass
class Notification:
    type: NotificationType
    title: str
    body: str
    created_at: float = field(default_factory=time.time)


class NotificationSink(ABC):
    """Where notifications are displayed."""

    @abstractmethod
    async def show(self, notification: Notification) -> None: ...


class MemoryNotificationSink(NotificationSink):
    """Collects notifications in a list."""

    def __init__(self) -> None:
        self.shown: list[Notification] = []

    async def show(self, notification: Notification) -> None:
        self.shown.append(notification)


class DesktopNotificationSink(NotificationSink):
    """Native desktop notifications via ``notify-send`` or ``osascript``."""

    def _command(self, notification: Notification) -> list[str] | None:
        platform = get_platform()
        if platform == "darwin":
            title = notification.title.replace('"', "'")
            body = notification.body.replace('"', "'")
            return [
                "osascript",
                "-e",
                f'display notification "{body}" with title "{APP_TITLE}" '
                f'subtitle "{title}"',
            ]
        if platform == "linux" and shutil.which("notify-send"):
            return [
                "notify-send",
                "--app-name",
                APP_TITLE,
                notification.title,
                notification.body,
            ]
        return None

    async def show(self, notification: Notification) -> None:
        command = self._command(notification)
        if command is None:
            logger.info(
                "notification",
                type=notification.type.value,
                title=notification.title,
                body=notification.body,
            )
            return
        await run_in_executor(
            subprocess.run,
            command,
            check=True,
            capture_output=True,
            timeout=5,
        )


class NotificationGateway:
    """Debounced, switchable front for a notification sink."""

    def __init__(
        self,
        settings: NotificationSettings,
        sink: NotificationSink | None = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._sink = sink or DesktopNotificationSink()
        self._recent: TTLCache[str, bool] = TTLCache(
            maxsize=1024, ttl=settings.debounce_seconds, timer=timer
        )
        self._history: deque[Notification] = deque(maxlen=HISTORY_SIZE)
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def history(self) -> list[Notification]:
        """Most recent delivered notifications, newest last."""
        return list(self._history)

    def clear_debounce_cache(self) -> None:
        self._recent.clear()

    async def _notify(self, key: str, notification: Notification) -> bool:
        """Deliver unless disabled or debounced. Returns True if shown."""
        if not self._settings.enabled:
            logger.debug("notification_disabled", type=notification.type.value)
            return False
        async with self._lock:
            if key in self._recent:
                logger.debug("notification_debounced", key=key)
                return False
            self._recent[key] = True
        self._history.append(notification)
        try:
            await self._sink.show(notification)
        except (OSError, subprocess.SubprocessError) as e:
            # OSError: notifier binary missing or not executable
            # SubprocessError: non-zero exit or timeout
            logger.warning(
                "notification_delivery_failed",
                type=notification.type.value,
                error=str(e),
            )
        return True

    async def send_auto_switch(self, from_email: str, to_email: str) -> bool:
        return await self._notify(
            f"{NotificationType.AUTO_SWITCH_SUCCESS}:{from_email}:{to_email}",
            Notification(
                NotificationType.AUTO_SWITCH_SUCCESS,
                "Account switched",
                f"Switched from {from_email} to {to_email}",
            ),
        )

    async def send_switch_failed(
        self, from_email: str, to_email: str, error: str
    ) -> bool:
        return await self._notify(
            NotificationType.SWITCH_FAILED.value,
            Notification(
                NotificationType.SWITCH_FAILED,
                "Account switch failed",
                f"Could not switch from {from_email} to {to_email}: {error}",
            ),
        )

    async def send_quota_warning(self, email: str, percentage: float) -> bool:
        return await self._notify(
            f"{NotificationType.QUOTA_WARNING}:{email}",
            Notification(
                NotificationType.QUOTA_WARNING,
                "Quota running low",
                f"{email} has {percentage:.1f}% quota remaining",
            ),
        )

    async def send_all_depleted(self) -> bool:
        return await self._notify(
            NotificationType.ALL_DEPLETED.value,
            Notification(
                NotificationType.ALL_DEPLETED,
                "All accounts depleted",
                "No healthy accounts available. Add an account or wait for quota reset.",
            ),
        )
