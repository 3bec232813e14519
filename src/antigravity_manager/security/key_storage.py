"""Master key storage strategies.

The vault asks each strategy in order for a 32-byte key. A strategy either
loads an existing key, or creates and persists a new one when none exists.
The first strategy that succeeds wins. Strategies are synchronous and are
run in an executor by the vault.
"""

import os
import re
import secrets
from abc import ABC, abstractmethod
from pathlib import Path

import keyring
import structlog
from keyring.errors import KeyringError

from antigravity_manager.exceptions import KeyStorageUnavailableError
from antigravity_manager.security.os_storage import SecureStorageBackend
from antigravity_manager.utils.files import atomic_write


logger = structlog.get_logger(__name__)

KEY_BYTES = 32
SERVICE_NAME = "AntigravityManager"
ACCOUNT_NAME = "MasterKey"
KEY_FILE_MODE = 0o600

_HEX_KEY_RE = re.compile(rf"^[0-9a-fA-F]{{{KEY_BYTES * 2}}}$")


class KeyStrategyError(Exception):
    """A single strategy could not produce a key."""


def generate_key() -> bytes:
    return secrets.token_bytes(KEY_BYTES)


def parse_hex_key(value: str) -> bytes | None:
    """Decode a 64-character hex key, or None if malformed."""
    value = value.strip()
    if not _HEX_KEY_RE.match(value):
        return None
    return bytes.fromhex(value)


class KeyStorageStrategy(ABC):
    """One place a master key can live."""

    name: str = "strategy"

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def load(self) -> bytes | None:
        """Return the stored key, or None if nothing is stored yet.

        Raises:
            KeyStrategyError: The store exists but cannot be read or trusted
        """

    @abstractmethod
    def save(self, key: bytes) -> None:
        """Persist ``key``.

        Raises:
            KeyStrategyError: The key could not be written
        """

    def resolve(self) -> bytes:
        """Load the key, creating and saving one on first use."""
        if not self.is_available():
            raise KeyStrategyError(f"{self.name} is not available on this system")
        key = self.load()
        if key is not None:
            logger.debug("master_key_loaded", strategy=self.name)
            return key
        key = generate_key()
        self.save(key)
        logger.info("master_key_created", strategy=self.name)
        return key


class OSSecureStorageStrategy(KeyStorageStrategy):
    """Key file whose contents are protected by an OS secure storage backend."""

    name = "os_secure_storage"

    def __init__(self, backend: SecureStorageBackend | None, key_file: Path) -> None:
        self._backend = backend
        self._key_file = key_file

    def is_available(self) -> bool:
        return self._backend is not None and self._backend.is_available()

    def load(self) -> bytes | None:
        assert self._backend is not None
        try:
            blob = self._key_file.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise KeyStrategyError(f"cannot read {self._key_file}: {e}") from e
        try:
            decoded = self._backend.decrypt_string(blob)
        except Exception as e:
            # Backend errors are platform specific (pywintypes.error etc.)
            raise KeyStrategyError(f"{self._backend.name} decrypt failed: {e}") from e
        key = parse_hex_key(decoded)
        if key is None:
            raise KeyStrategyError(f"{self._key_file} does not hold a valid key")
        return key

    def save(self, key: bytes) -> None:
        assert self._backend is not None
        try:
            blob = self._backend.encrypt_string(key.hex())
        except Exception as e:
            raise KeyStrategyError(f"{self._backend.name} encrypt failed: {e}") from e
        try:
            atomic_write(self._key_file, blob, mode=KEY_FILE_MODE)
        except OSError as e:
            raise KeyStrategyError(f"cannot write {self._key_file}: {e}") from e


class KeyringStrategy(KeyStorageStrategy):
    """System keychain via the keyring library."""

    name = "keychain"

    def __init__(self, service: str = SERVICE_NAME, account: str = ACCOUNT_NAME) -> None:
        self._service = service
        self._account = account

    def load(self) -> bytes | None:
        try:
            stored = keyring.get_password(self._service, self._account)
        except KeyringError as e:
            raise KeyStrategyError(f"keychain read failed: {e}") from e
        if stored is None:
            return None
        key = parse_hex_key(stored)
        if key is None:
            raise KeyStrategyError("keychain entry is not a valid key")
        return key

    def save(self, key: bytes) -> None:
        try:
            keyring.set_password(self._service, self._account, key.hex())
        except KeyringError as e:
            raise KeyStrategyError(f"keychain write failed: {e}") from e


class FileKeyStrategy(KeyStorageStrategy):
    """Plain hex key file readable only by the current user.

    Last resort: anyone with access to the user's files can read the key.
    """

    name = "local_file"

    def __init__(self, key_file: Path) -> None:
        self._key_file = key_file

    def load(self) -> bytes | None:
        try:
            content = self._key_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise KeyStrategyError(f"cannot read {self._key_file}: {e}") from e
        key = parse_hex_key(content)
        if key is None:
            logger.warning("fallback_key_file_invalid", path=str(self._key_file))
        return key

    def save(self, key: bytes) -> None:
        try:
            atomic_write(self._key_file, key.hex().encode("ascii"), mode=KEY_FILE_MODE)
        except OSError as e:
            raise KeyStrategyError(f"cannot write {self._key_file}: {e}") from e

    def resolve(self) -> bytes:
        logger.warning(
            "using_fallback_key_file",
            path=str(self._key_file),
            hint="Install a keyring backend to protect the master key",
        )
        key = super().resolve()
        if os.name == "posix":
            try:
                os.chmod(self._key_file, KEY_FILE_MODE)
            except OSError as e:
                logger.warning("fallback_key_chmod_failed", error=str(e))
        return key


def resolve_master_key(strategies: list[KeyStorageStrategy]) -> tuple[bytes, str]:
    """Try each strategy in order and return the first key produced.

    Args:
        strategies: Ordered strategies, most secure first

    Returns:
        The key and the name of the strategy that produced it

    Raises:
        KeyStorageUnavailableError: Every strategy failed
    """
    errors: list[Exception] = []
    failures: dict[str, str] = {}
    for strategy in strategies:
        try:
            return strategy.resolve(), strategy.name
        except KeyStrategyError as e:
            logger.warning("key_strategy_failed", strategy=strategy.name, error=str(e))
            errors.append(e)
            failures[strategy.name] = str(e)

    error = KeyStorageUnavailableError(failures)
    if errors:
        raise error from ExceptionGroup("all key storage strategies failed", errors)
    raise error
