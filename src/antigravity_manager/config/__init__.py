"""Configuration module for Antigravity Manager."""

from antigravity_manager.exceptions import ConfigValidationError

from .settings import (
    MonitorSettings,
    NotificationSettings,
    OAuthSettings,
    ProcessSettings,
    ServerSettings,
    Settings,
    StorageSettings,
    get_settings,
)


__all__ = [
    "Settings",
    "get_settings",
    "ServerSettings",
    "StorageSettings",
    "MonitorSettings",
    "NotificationSettings",
    "ProcessSettings",
    "OAuthSettings",
    "ConfigValidationError",
]
