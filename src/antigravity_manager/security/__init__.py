"""Credential vault and master key storage."""

from .key_storage import (
    FileKeyStrategy,
    KeyringStrategy,
    KeyStorageStrategy,
    OSSecureStorageStrategy,
    resolve_master_key,
)
from .os_storage import SecureStorageBackend
from .vault import CredentialVault


__all__ = [
    "CredentialVault",
    "FileKeyStrategy",
    "KeyringStrategy",
    "KeyStorageStrategy",
    "OSSecureStorageStrategy",
    "SecureStorageBackend",
    "resolve_master_key",
]
