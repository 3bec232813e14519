"""OS-level secret protection backends.

Only Windows ships a per-user encryption facility that works without a
keychain daemon (DPAPI). Other platforms report the backend as unavailable so
the key chain moves on to the system keychain.
"""

from abc import ABC, abstractmethod

import structlog

from antigravity_manager.core.system import get_platform


logger = structlog.get_logger(__name__)


class SecureStorageBackend(ABC):
    """Encrypts small secrets with a key held by the operating system."""

    name: str = "secure_storage"

    @abstractmethod
    def is_available(self) -> bool:
        """Whether encryption can be used on this machine right now."""

    @abstractmethod
    def encrypt_string(self, plaintext: str) -> bytes:
        """Protect ``plaintext`` for the current user."""

    @abstractmethod
    def decrypt_string(self, blob: bytes) -> str:
        """Reverse :meth:`encrypt_string`."""


class DPAPIBackend(SecureStorageBackend):
    """Windows Data Protection API through pywin32."""

    name = "dpapi"

    def is_available(self) -> bool:
        if get_platform() != "win32":
            return False
        try:
            import win32crypt  # noqa: F401
        except ImportError:
            logger.warning("dpapi_unavailable", reason="pywin32 not installed")
            return False
        return True

    def encrypt_string(self, plaintext: str) -> bytes:
        import win32crypt

        return win32crypt.CryptProtectData(
            plaintext.encode("utf-8"), "AntigravityManager", None, None, None, 0
        )

    def decrypt_string(self, blob: bytes) -> str:
        import win32crypt

        _description, data = win32crypt.CryptUnprotectData(blob, None, None, None, 0)
        return data.decode("utf-8")


def get_default_backend() -> SecureStorageBackend | None:
    """Return the OS backend for this platform, if one exists."""
    if get_platform() == "win32":
        return DPAPIBackend()
    return None
