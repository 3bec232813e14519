"""Domain models for cloud accounts, their tokens and usage quotas."""

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class AccountProvider(StrEnum):
    GOOGLE = "google"
    ANTHROPIC = "anthropic"


class AccountStatus(StrEnum):
    """Health of an account as last observed by the poller."""

    ACTIVE = "active"
    RATE_LIMITED = "rate_limited"
    EXPIRED = "expired"


def now_seconds() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


@dataclass
class CloudTokenData:
    """OAuth token set for a cloud account."""

    access_token: str
    refresh_token: str
    expires_in: int
    expiry_timestamp: int  # Unix timestamp in seconds
    token_type: str = "Bearer"
    email: str | None = None

    @classmethod
    def issued(
        cls,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        token_type: str = "Bearer",
        email: str | None = None,
        issued_at: int | None = None,
    ) -> "CloudTokenData":
        """Build a token whose expiry is ``issued_at + expires_in``."""
        issued_at = now_seconds() if issued_at is None else issued_at
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            expiry_timestamp=issued_at + expires_in,
            token_type=token_type,
            email=email,
        )

    def needs_refresh(self, buffer_seconds: int = 300, now: int | None = None) -> bool:
        """Check if token needs refresh (within buffer of expiration).

        Args:
            buffer_seconds: Refresh if expiring within this many seconds
            now: Override the current time, in seconds

        Returns:
            True if token should be refreshed
        """
        current = now_seconds() if now is None else now
        return self.expiry_timestamp < current + buffer_seconds

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "expiry_timestamp": self.expiry_timestamp,
            "token_type": self.token_type,
        }
        if self.email is not None:
            data["email"] = self.email
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CloudTokenData":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_in=int(data.get("expires_in", 0)),
            expiry_timestamp=int(data.get("expiry_timestamp", 0)),
            token_type=data.get("token_type") or "Bearer",
            email=data.get("email"),
        )


@dataclass
class ModelQuota:
    """Remaining quota for one model, as a percentage."""

    percentage: float
    reset_time: str | None = None


@dataclass
class CloudQuotaData:
    """Per-model quota snapshot."""

    models: dict[str, ModelQuota] = field(default_factory=dict)
    updated_at: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.models

    @property
    def percentages(self) -> list[float]:
        return [m.percentage for m in self.models.values()]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "models": {
                name: {"percentage": q.percentage, "resetTime": q.reset_time}
                for name, q in self.models.items()
            }
        }
        if self.updated_at is not None:
            data["updated_at"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CloudQuotaData":
        models = {
            name: ModelQuota(
                percentage=float(info.get("percentage", 0)),
                reset_time=info.get("resetTime"),
            )
            for name, info in (data.get("models") or {}).items()
        }
        return cls(models=models, updated_at=data.get("updated_at"))


@dataclass
class CloudAccount:
    """A cloud identity in the rotation pool.

    Combines the token set with the last observed quota and status.
    """

    id: str
    email: str
    token: CloudTokenData
    provider: AccountProvider = AccountProvider.GOOGLE
    name: str | None = None
    avatar_url: str | None = None
    quota: CloudQuotaData | None = None
    status: AccountStatus = AccountStatus.ACTIVE
    is_active: bool = False
    created_at: int = field(default_factory=now_seconds)
    last_used: int = field(default_factory=now_seconds)

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize without any token material."""
        return {
            "id": self.id,
            "provider": self.provider.value,
            "email": self.email,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "quota": self.quota.to_dict() if self.quota else None,
            "status": self.status.value,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "last_used": self.last_used,
            "token_expiry": self.token.expiry_timestamp,
        }


@dataclass
class LocalAccount:
    """A signed-in application state captured from the local machine.

    Unlike a cloud account it holds no OAuth tokens of its own; switching
    restores the captured state from ``backup_file``.
    """

    id: str
    email: str
    name: str
    backup_file: str
    created_at: int = field(default_factory=now_seconds)
    last_used: int = field(default_factory=now_seconds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "backup_file": self.backup_file,
            "created_at": self.created_at,
            "last_used": self.last_used,
        }
