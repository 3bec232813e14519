"""SQLModel database models."""

from sqlmodel import Field, SQLModel

from antigravity_manager.models import now_seconds


class CloudAccountRecord(SQLModel, table=True):
    """Persisted cloud account. ``token_data`` holds vault ciphertext."""

    __tablename__ = "cloud_accounts"

    id: str = Field(primary_key=True)
    provider: str = Field(default="google")
    email: str = Field(index=True)
    name: str | None = None
    avatar_url: str | None = None

    token_data: str
    quota_data: str | None = None

    status: str = Field(default="active")
    is_active: bool = Field(default=False, index=True)
    created_at: int = Field(default_factory=now_seconds)
    last_used: int = Field(default_factory=now_seconds)


class LocalAccountRecord(SQLModel, table=True):
    """Captured local sign-in. The state itself lives in ``backup_file``."""

    __tablename__ = "local_accounts"

    id: str = Field(primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    backup_file: str
    created_at: int = Field(default_factory=now_seconds)
    last_used: int = Field(default_factory=now_seconds, index=True)


class SettingRecord(SQLModel, table=True):
    """Flat key-value runtime setting, stored as JSON."""

    __tablename__ = "settings"

    key: str = Field(primary_key=True)
    value: str
