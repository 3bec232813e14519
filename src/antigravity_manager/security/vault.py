"""Credential vault.

Encrypts secret strings with AES-256-GCM under a machine-local master key.

Ciphertext format (all lowercase hex)::

    <iv>:<auth tag>:<cipher text>

Values that do not look like vault output (JSON documents, or anything that
is not three colon-separated segments) are treated as legacy plaintext and
returned unchanged by :meth:`CredentialVault.decrypt`.
"""

import re
import secrets

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from antigravity_manager.config.settings import Settings
from antigravity_manager.core.async_utils import run_in_executor
from antigravity_manager.core.singleflight import SingleFlight
from antigravity_manager.exceptions import (
    DecryptionError,
    DecryptionErrorCode,
    EncryptionError,
)
from antigravity_manager.security.key_storage import (
    FileKeyStrategy,
    KeyringStrategy,
    KeyStorageStrategy,
    OSSecureStorageStrategy,
    resolve_master_key,
)
from antigravity_manager.security.os_storage import (
    SecureStorageBackend,
    get_default_backend,
)


logger = structlog.get_logger(__name__)

IV_BYTES = 16
TAG_BYTES = 16

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def is_legacy_plaintext(value: str) -> bool:
    """Whether ``value`` predates encryption and should pass through as-is."""
    if value.startswith(("{", "[")):
        return True
    return len(value.split(":")) != 3


class CredentialVault:
    """Encrypt and decrypt secrets with a lazily resolved master key.

    The key is resolved once per vault instance through the configured
    strategies; concurrent first calls share a single resolution.
    """

    def __init__(self, strategies: list[KeyStorageStrategy]) -> None:
        self._strategies = strategies
        self._key: bytes | None = None
        self._key_source: str | None = None
        self._resolving: SingleFlight[str, bytes] = SingleFlight("master_key")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        backend: SecureStorageBackend | None = None,
    ) -> "CredentialVault":
        """Build the standard chain: OS secure storage, keychain, local file."""
        storage = settings.storage
        return cls(
            [
                OSSecureStorageStrategy(backend or get_default_backend(), storage.key_file),
                KeyringStrategy(),
                FileKeyStrategy(storage.fallback_key_file),
            ]
        )

    @property
    def key_source(self) -> str | None:
        """Name of the strategy that produced the cached key."""
        return self._key_source

    async def get_key(self) -> bytes:
        """Return the master key, resolving it on first use.

        Raises:
            KeyStorageUnavailableError: No strategy could provide a key
        """
        if self._key is not None:
            return self._key
        return await self._resolving.run("master", self._resolve_key)

    async def _resolve_key(self) -> bytes:
        key, source = await run_in_executor(resolve_master_key, self._strategies)
        self._key = key
        self._key_source = source
        logger.info("master_key_ready", strategy=source)
        return key

    async def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` into ``iv:tag:cipher`` hex form.

        Raises:
            KeyStorageUnavailableError: No master key is available
            EncryptionError: The cipher failed
        """
        key = await self.get_key()
        iv = secrets.token_bytes(IV_BYTES)
        try:
            sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
        except (ValueError, UnicodeEncodeError) as e:
            raise EncryptionError(f"Encryption failed: {e}") from e
        cipher, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return f"{iv.hex()}:{tag.hex()}:{cipher.hex()}"

    async def decrypt(self, ciphertext: str) -> str:
        """Decrypt vault output, passing legacy plaintext through unchanged.

        Raises:
            KeyStorageUnavailableError: No master key is available
            DecryptionError: The value is malformed, tampered with, or undecodable
        """
        if is_legacy_plaintext(ciphertext):
            return ciphertext

        iv_hex, tag_hex, cipher_hex = ciphertext.split(":")
        # Cipher segment is empty for an empty plaintext
        if (
            not _HEX_RE.match(iv_hex)
            or not _HEX_RE.match(tag_hex)
            or (cipher_hex and not _HEX_RE.match(cipher_hex))
        ):
            raise DecryptionError(
                "Ciphertext is not valid hex", DecryptionErrorCode.INVALID_FORMAT
            )
        try:
            iv = bytes.fromhex(iv_hex)
            tag = bytes.fromhex(tag_hex)
            cipher = bytes.fromhex(cipher_hex)
        except ValueError as e:
            raise DecryptionError(
                f"Ciphertext is not valid hex: {e}", DecryptionErrorCode.INVALID_FORMAT
            ) from e

        key = await self.get_key()
        try:
            plain = AESGCM(key).decrypt(iv, cipher + tag, None)
        except InvalidTag as e:
            raise DecryptionError(
                "Authentication tag mismatch", DecryptionErrorCode.AUTH_TAG_MISMATCH
            ) from e
        except ValueError as e:
            # Wrong key or nonce length
            raise DecryptionError(
                f"Corrupted ciphertext: {e}", DecryptionErrorCode.CORRUPTED_DATA
            ) from e

        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError(
                f"Decrypted value is not UTF-8: {e}", DecryptionErrorCode.DECRYPTION_FAILED
            ) from e
