"""Consolidated exception hierarchy for Antigravity Manager.

All exceptions use proper exception chaining with the `from` keyword.
Exception groups are used for collecting multiple related errors (Python 3.11+).
Error types use StrEnum for type safety and autocompletion.
"""

from enum import StrEnum
from typing import Any

from starlette import status


class ErrorType(StrEnum):
    """Error type codes for API responses."""

    INVALID_REQUEST = "invalid_request_error"
    AUTHENTICATION = "authentication_error"
    PERMISSION = "permission_error"
    NOT_FOUND = "not_found_error"
    RATE_LIMIT = "rate_limit_error"
    TIMEOUT = "timeout_error"
    UPSTREAM = "upstream_error"
    SECURITY = "security_error"
    PROCESS = "process_error"
    SWITCH = "switch_error"
    INTERNAL_SERVER = "internal_server_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class ManagerError(Exception):
    """Base exception for all Antigravity Manager errors.

    Supports HTTP status codes and structured error details so the API layer
    can render any subclass without special casing.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType = ErrorType.INTERNAL_SERVER,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}


class ConfigValidationError(ManagerError):
    """Invalid or missing configuration (400)."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_type=ErrorType.INVALID_REQUEST,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class AccountNotFoundError(ManagerError):
    """Requested account does not exist (404)."""

    def __init__(self, account_id: str) -> None:
        super().__init__(
            f"Account not found: {account_id}",
            error_type=ErrorType.NOT_FOUND,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"account_id": account_id},
        )
        self.account_id = account_id


# ============================================================================
# Credential Vault Errors
# ============================================================================


class SecurityError(ManagerError):
    """Base exception for vault and key storage failures."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_type=ErrorType.SECURITY,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
        )


class KeyStorageUnavailableError(SecurityError):
    """No key storage strategy could produce a master key.

    This is fatal: the vault never falls back to storing plaintext.
    """

    def __init__(self, failures: dict[str, str]) -> None:
        super().__init__(
            "No key storage strategy is available; credentials cannot be protected",
            details={"failures": failures},
        )
        self.failures = failures


class EncryptionError(SecurityError):
    """Encryption of a secret value failed."""


class DecryptionErrorCode(StrEnum):
    """Reason a ciphertext could not be decrypted."""

    INVALID_FORMAT = "INVALID_FORMAT"
    AUTH_TAG_MISMATCH = "AUTH_TAG_MISMATCH"
    CORRUPTED_DATA = "CORRUPTED_DATA"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"


class DecryptionError(SecurityError):
    """Decryption of a stored value failed."""

    def __init__(self, message: str, code: DecryptionErrorCode) -> None:
        super().__init__(message, details={"code": code.value})
        self.code = code


# ============================================================================
# Remote Provider Errors
# ============================================================================


class ProviderError(ManagerError):
    """Remote provider returned an unexpected response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
        response_text: str = "",
    ) -> None:
        super().__init__(
            message,
            error_type=ErrorType.UPSTREAM,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"upstream_status": status_code, "response": response_text[:200]},
        )
        self.upstream_status = status_code
        self.response_text = response_text


class UnauthorizedError(ProviderError):
    """Provider rejected the access token (401)."""

    def __init__(self, message: str = "Access token rejected", response_text: str = "") -> None:
        super().__init__(
            message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            response_text=response_text,
        )
        self.error_type = ErrorType.AUTHENTICATION
        self.status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(ProviderError):
    """Provider refused the request, typically because the account is rate limited."""

    def __init__(
        self,
        message: str = "Request forbidden by provider",
        *,
        status_code: int = status.HTTP_403_FORBIDDEN,
        response_text: str = "",
    ) -> None:
        super().__init__(message, status_code=status_code, response_text=response_text)
        self.error_type = ErrorType.RATE_LIMIT
        self.status_code = status.HTTP_403_FORBIDDEN


class OAuthTokenRefreshError(ManagerError):
    """Access token could not be refreshed."""

    def __init__(self, message: str, *, account_id: str | None = None) -> None:
        super().__init__(
            message,
            error_type=ErrorType.AUTHENTICATION,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details={"account_id": account_id} if account_id else None,
        )
        self.account_id = account_id


class QuotaCheckFailedError(ManagerError):
    """Quota could not be fetched for an account."""

    def __init__(self, account_id: str, reason: str) -> None:
        super().__init__(
            f"Quota check failed for {account_id}: {reason}",
            error_type=ErrorType.UPSTREAM,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"account_id": account_id},
        )
        self.account_id = account_id


# ============================================================================
# Process & Rotation Errors
# ============================================================================


class ProcessExitTimeoutError(ManagerError):
    """External application did not exit within the allowed time."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"Process did not exit within {timeout:g}s",
            error_type=ErrorType.TIMEOUT,
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            details={"timeout": timeout},
        )
        self.timeout = timeout


class ProcessStartError(ManagerError):
    """External application could not be launched."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            error_type=ErrorType.PROCESS,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class SwitchFailedError(ManagerError):
    """A rotation aborted part way through.

    Side effects of completed stages are not rolled back; ``stage`` records
    where the switch stopped.
    """

    def __init__(self, account_id: str, stage: str, cause: BaseException) -> None:
        super().__init__(
            f"Switch to {account_id} failed during {stage}: {cause}",
            error_type=ErrorType.SWITCH,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"account_id": account_id, "stage": stage},
        )
        self.account_id = account_id
        self.stage = stage


class NotSignedInError(ManagerError):
    """The application has no signed-in account to capture (409)."""

    def __init__(self) -> None:
        super().__init__(
            "No signed-in account found. Start the application and sign in first.",
            error_type=ErrorType.INVALID_REQUEST,
            status_code=status.HTTP_409_CONFLICT,
        )


class SnapshotMissingError(ManagerError):
    """A local account's backup file is gone (404)."""

    def __init__(self, account_id: str, path: str) -> None:
        super().__init__(
            f"Backup file not found: {path}",
            error_type=ErrorType.NOT_FOUND,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"account_id": account_id, "path": path},
        )
        self.account_id = account_id


class NoHealthyAccountError(ManagerError):
    """Every candidate account is depleted or unavailable."""

    def __init__(self, message: str = "No healthy accounts available") -> None:
        super().__init__(
            message,
            error_type=ErrorType.RATE_LIMIT,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


__all__ = [
    "AccountNotFoundError",
    "ConfigValidationError",
    "DecryptionError",
    "DecryptionErrorCode",
    "EncryptionError",
    "ErrorType",
    "ForbiddenError",
    "KeyStorageUnavailableError",
    "ManagerError",
    "NoHealthyAccountError",
    "NotSignedInError",
    "OAuthTokenRefreshError",
    "ProcessExitTimeoutError",
    "ProcessStartError",
    "ProviderError",
    "QuotaCheckFailedError",
    "SecurityError",
    "SnapshotMissingError",
    "SwitchFailedError",
    "UnauthorizedError",
]
