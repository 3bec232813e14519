"""User-facing notifications."""

from .service import (
    DesktopNotificationSink,
    MemoryNotificationSink,
    Notification,
    NotificationGateway,
    NotificationSink,
    NotificationType,
)


__all__ = [
    "DesktopNotificationSink",
    "MemoryNotificationSink",
    "Notification",
    "NotificationGateway",
    "NotificationSink",
    "NotificationType",
]
