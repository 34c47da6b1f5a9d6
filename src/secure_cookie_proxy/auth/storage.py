"""
Credential storage for raw cookie strings.

Cookies are kept in the system keyring when a usable backend exists, or in
one text file per account otherwise. The backend is picked once at startup.
"""

import asyncio
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from secure_cookie_proxy.config import KEYRING_SERVICE, Settings
from secure_cookie_proxy.exceptions import CredentialStoreError

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """Get/set the stored cookie string for an account."""

    is_keychain: bool = False

    @abstractmethod
    async def get(self, account: str) -> Optional[str]:
        """
        Load the stored cookie string.

        Returns:
            The cookie string, or None if nothing is stored.

        Raises:
            CredentialStoreError: On I/O failure.
        """

    @abstractmethod
    async def set(self, account: str, value: str) -> None:
        """
        Store the cookie string, replacing any previous value.

        Raises:
            CredentialStoreError: On I/O failure.
        """

    @abstractmethod
    async def delete(self, account: str) -> bool:
        """Delete the stored cookie string. Returns True if something was removed."""

    @abstractmethod
    def describe(self) -> str:
        """Human-readable storage location."""


class KeyringCredentialStore(CredentialStore):
    """Cookie storage in the system keychain."""

    is_keychain = True

    def __init__(self, service: str = KEYRING_SERVICE):
        self.service = service

    async def get(self, account: str) -> Optional[str]:
        import keyring

        try:
            return await asyncio.to_thread(keyring.get_password, self.service, account)
        except Exception as e:
            raise CredentialStoreError(f"Failed to read from keyring: {e}", account) from e

    async def set(self, account: str, value: str) -> None:
        import keyring

        try:
            await asyncio.to_thread(keyring.set_password, self.service, account, value)
        except Exception as e:
            raise CredentialStoreError(f"Failed to save to keyring: {e}", account) from e
        logger.info(f"Cookies for {account} saved to system keyring")

    async def delete(self, account: str) -> bool:
        import keyring
        from keyring.errors import PasswordDeleteError

        try:
            await asyncio.to_thread(keyring.delete_password, self.service, account)
            return True
        except PasswordDeleteError:
            return False
        except Exception as e:
            raise CredentialStoreError(f"Failed to delete from keyring: {e}", account) from e

    def describe(self) -> str:
        return f"system keyring (service: {self.service})"


class FileCredentialStore(CredentialStore):
    """Cookie storage in plain text files, one per account."""

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def set_cookie_directory(self, directory: Path):
        """Point the store at a different directory."""
        self._directory = Path(directory)

    def path_for(self, account: str) -> Path:
        """File path for an account, with unsafe characters replaced."""
        name = re.sub(r"[^a-z0-9.\-]", "_", account, flags=re.IGNORECASE).lower()
        return self._directory / f"{name}.txt"

    async def get(self, account: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, account)

    async def set(self, account: str, value: str) -> None:
        await asyncio.to_thread(self._write, account, value)

    async def delete(self, account: str) -> bool:
        return await asyncio.to_thread(self._unlink, account)

    def describe(self) -> str:
        return str(self._directory)

    def _read(self, account: str) -> Optional[str]:
        cookie_file = self.path_for(account)
        try:
            return cookie_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CredentialStoreError(f"Failed to read {cookie_file}: {e}", account) from e

    def _write(self, account: str, value: str):
        cookie_file = self.path_for(account)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            cookie_file.write_text(value, encoding="utf-8")
        except OSError as e:
            raise CredentialStoreError(f"Failed to write {cookie_file}: {e}", account) from e

        # Owner-only permissions on Unix
        if os.name == "posix":
            try:
                os.chmod(cookie_file, 0o600)
            except OSError as e:
                logger.debug(f"Could not restrict permissions on {cookie_file}: {e}")

        logger.info(f"Cookies for {account} saved to {cookie_file}")

    def _unlink(self, account: str) -> bool:
        cookie_file = self.path_for(account)
        try:
            cookie_file.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CredentialStoreError(f"Failed to delete {cookie_file}: {e}", account) from e


def keyring_available() -> bool:
    """Check if keyring is installed and has a working backend."""
    try:
        import keyring
        from keyring.backends import fail

        backend = keyring.get_keyring()
    except ImportError:
        logger.debug("keyring module not installed")
        return False
    except Exception as e:
        logger.debug(f"keyring not available: {e}")
        return False

    if isinstance(backend, fail.Keyring):
        logger.debug("keyring has no usable backend")
        return False
    return True


def detect_credential_store(settings: Settings) -> CredentialStore:
    """Pick the keychain store when usable, the file store otherwise."""
    if settings.use_keyring and keyring_available():
        logger.debug("Using system keyring for cookie storage")
        return KeyringCredentialStore(settings.keyring_service)

    logger.debug(f"Using cookie files in {settings.cookie_dir}")
    return FileCredentialStore(settings.cookie_dir)
