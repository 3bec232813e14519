"""Settings configuration for Antigravity Manager."""

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from antigravity_manager.core.system import get_user_data_dir


__all__ = [
    "MonitorSettings",
    "NotificationSettings",
    "OAuthSettings",
    "ProcessSettings",
    "ServerSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
]


def _coerce_settings(value: Any, settings_class: type) -> Any:
    """Coerce value to settings class instance.

    Handles: None → default, dict → instance, passthrough existing instances.
    """
    if value is None:
        return settings_class()
    if isinstance(value, settings_class):
        return value
    if isinstance(value, dict):
        return settings_class(**value)
    return value


class ServerSettings(BaseModel):
    """Local HTTP server settings."""

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8765, ge=1, le=65535, description="Server port number")
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Render logs as JSON")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"Invalid log level: {v}. Must be one of {sorted(valid)}")
        return upper


class StorageSettings(BaseModel):
    """Where the account database and master key files live."""

    data_dir: Path = Field(
        default_factory=get_user_data_dir,
        description="Directory holding the database and key files",
    )

    @property
    def database_path(self) -> Path:
        return self.data_dir / "accounts.db"

    @property
    def backups_dir(self) -> Path:
        """Per-account snapshots of the application's signed-in state."""
        return self.data_dir / "backups"

    @property
    def key_file(self) -> Path:
        """Master key protected by OS secure storage."""
        return self.data_dir / ".mk"

    @property
    def fallback_key_file(self) -> Path:
        """Unprotected master key used when nothing better is available."""
        return self.data_dir / ".mk.plain"


class MonitorSettings(BaseModel):
    """Quota polling schedule."""

    poll_interval_seconds: float = Field(
        default=300.0, gt=0, description="Interval between scheduled polls"
    )
    focus_debounce_seconds: float = Field(
        default=10.0, ge=0, description="Minimum gap between focus-triggered polls"
    )
    request_delay_seconds: float = Field(
        default=0.5, ge=0, description="Courtesy delay before each quota request"
    )
    refresh_buffer_seconds: int = Field(
        default=300, ge=0, description="Refresh tokens expiring within this window"
    )


class NotificationSettings(BaseModel):
    """User-facing alert settings and quota thresholds (percent)."""

    enabled: bool = Field(default=True, description="Show desktop notifications")
    quota_warning_threshold: float = Field(
        default=20.0, ge=0, le=100, description="Warn when average quota drops below"
    )
    quota_switch_threshold: float = Field(
        default=5.0, ge=0, le=100, description="Rotate when any model drops below"
    )
    debounce_seconds: float = Field(
        default=300.0, ge=0, description="Suppress repeats of the same alert"
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> "NotificationSettings":
        if self.quota_switch_threshold > self.quota_warning_threshold:
            raise ValueError(
                "quota_switch_threshold must not exceed quota_warning_threshold"
            )
        return self


class ProcessSettings(BaseModel):
    """External application control settings."""

    app_name: str = Field(default="Antigravity", description="Application name")
    executable_path: Path | None = Field(
        default=None, description="Override the platform default executable path"
    )
    launch_uri: str = Field(
        default="antigravity://oauth-success",
        description="URI used to launch the application",
    )
    state_db_path: Path | None = Field(
        default=None, description="Override the application's state database path"
    )
    state_key: str = Field(
        default="antigravityAuthStatus",
        description="ItemTable key receiving the injected credentials",
    )
    snapshot_keys: list[str] = Field(
        default_factory=lambda: [
            "antigravityAuthStatus",
            "jetskiStateSync.agentManagerInitState",
        ],
        description="ItemTable keys saved by local account snapshots",
    )
    stop_timeout_seconds: float = Field(
        default=10.0, gt=0, description="How long to wait for the app to exit"
    )
    poll_interval_seconds: float = Field(
        default=0.5, gt=0, description="Process exit polling interval"
    )


class OAuthSettings(BaseModel):
    """Google OAuth client and API endpoints."""

    client_id: str | None = Field(default=None, description="OAuth client id")
    client_secret: str | None = Field(default=None, description="OAuth client secret")
    redirect_uri: str = Field(
        default="http://localhost:8888/oauth-callback",
        description="Redirect URI registered for the client",
    )
    token_url: str = Field(default="https://oauth2.googleapis.com/token")
    userinfo_url: str = Field(default="https://www.googleapis.com/oauth2/v2/userinfo")
    quota_url: str = Field(
        default="https://cloudcode-pa.googleapis.com/v1internal:fetchAvailableModels"
    )
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")


class Settings(BaseSettings):
    """
    Configuration settings for Antigravity Manager.

    Settings are loaded from environment variables (prefix ``AGM_``) and .env
    files. Nested sections use ``__`` as a delimiter, e.g.
    ``AGM_MONITOR__POLL_INTERVAL_SECONDS=120``.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    process: ProcessSettings = Field(default_factory=ProcessSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)

    @field_validator("server", mode="before")
    @classmethod
    def validate_server(cls, v: Any) -> Any:
        return _coerce_settings(v, ServerSettings)

    @field_validator("storage", mode="before")
    @classmethod
    def validate_storage(cls, v: Any) -> Any:
        return _coerce_settings(v, StorageSettings)

    @field_validator("monitor", mode="before")
    @classmethod
    def validate_monitor(cls, v: Any) -> Any:
        return _coerce_settings(v, MonitorSettings)

    @field_validator("notifications", mode="before")
    @classmethod
    def validate_notifications(cls, v: Any) -> Any:
        return _coerce_settings(v, NotificationSettings)

    @field_validator("process", mode="before")
    @classmethod
    def validate_process(cls, v: Any) -> Any:
        return _coerce_settings(v, ProcessSettings)

    @field_validator("oauth", mode="before")
    @classmethod
    def validate_oauth(cls, v: Any) -> Any:
        return _coerce_settings(v, OAuthSettings)

    @property
    def server_url(self) -> str:
        """Get the complete server URL."""
        return f"http://{self.server.host}:{self.server.port}"

    def model_dump_safe(self) -> dict[str, Any]:
        """Dump settings with the OAuth client secret masked."""
        data = self.model_dump(mode="json")
        if data.get("oauth", {}).get("client_secret"):
            data["oauth"]["client_secret"] = "***MASKED***"
        return data


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
