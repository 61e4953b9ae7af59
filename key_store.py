"""
Key Store

Persistence providers for scheme keys. An engine asks its store whether a
key exists at a location, loads it, or saves a freshly generated one:

- FileKeyStore: one base64 file per key, directory 0700 / file 0600 on POSIX
- KeyringKeyStore: OS-native secure storage through the `keyring` library,
  the location acting as the username under a fixed service name

Key material is never logged.
"""

import base64
import binascii
import logging
import os
import secrets
import stat
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

log = logging.getLogger(__name__)

SERVICE_NAME = "sym-phe"

# 128-bit symmetric keys, as the schemes normalize them to AES-128
DEFAULT_KEY_BYTES = 16


class InvalidKeyMaterialError(Exception):
    """Raised when a required key is missing or cannot be decoded."""
    pass


class KeyStoreError(Exception):
    """Raised when a key store backend fails to read or persist a key."""
    pass


def generate_key(length: int = DEFAULT_KEY_BYTES) -> bytes:
    """Generate fresh random key material."""
    return secrets.token_bytes(length)


def _encode(key_material: Union[bytes, str]) -> str:
    if isinstance(key_material, str):
        key_material = key_material.encode("utf-8")
    return base64.b64encode(key_material).decode("ascii")


def _decode(key_data: str, location: str) -> bytes:
    try:
        key = base64.b64decode(key_data.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidKeyMaterialError(f"Key at {location} is not valid base64: {e}") from e
    if not key:
        raise InvalidKeyMaterialError(f"Key at {location} is empty")
    return key


class KeyStore(ABC):
    """Provider interface used by the schemes: exists / load / save."""

    @abstractmethod
    def exists(self, location: str) -> bool:
        """Check whether a key is stored at `location`."""

    @abstractmethod
    def load(self, location: str) -> bytes:
        """
        Load the key stored at `location`.

        Raises:
            InvalidKeyMaterialError: If there is no key or it cannot be decoded
            KeyStoreError: If the backend fails
        """

    @abstractmethod
    def save(self, key_material: Union[bytes, str], location: str) -> None:
        """
        Persist a key at `location`, replacing any previous one.

        Raises:
            KeyStoreError: If the backend fails
        """

    @abstractmethod
    def delete(self, location: str) -> bool:
        """Remove the key at `location`; returns False if there was none."""

    def load_or_generate(self, location: str, allow_generation: bool = True,
                         length: int = DEFAULT_KEY_BYTES) -> bytes:
        """
        Load the key at `location`, generating and saving one first if absent.

        Args:
            location: Key location understood by the store
            allow_generation: If False, a missing key is an error
            length: Size of a generated key in bytes

        Returns:
            The key bytes

        Raises:
            InvalidKeyMaterialError: If the key is missing and generation is disabled
        """
        if not self.exists(location):
            if not allow_generation:
                log.error(f"Required key not found at {location} and key generation is disabled")
                raise InvalidKeyMaterialError(f"No key found at {location}")
            self.save(generate_key(length), location)
            log.info(f"Generated new key at {location}")
        return self.load(location)


class FileKeyStore(KeyStore):
    """Stores every key as a base64 text file; the location is the file path."""

    def exists(self, location: str) -> bool:
        return Path(location).is_file()

    def load(self, location: str) -> bytes:
        key_path = Path(location)
        if not key_path.is_file():
            raise InvalidKeyMaterialError(f"No key found at {location}")

        if os.name == "posix":
            mode = key_path.stat().st_mode
            if mode & (stat.S_IRGRP | stat.S_IROTH):
                log.warning(f"Key file {key_path} is readable by group or others")

        try:
            key_data = key_path.read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError) as e:
            log.error(f"Failed to read key file {key_path}: {e}")
            raise KeyStoreError(f"Failed to read key file {key_path}: {e}") from e

        log.debug(f"Key loaded from file {key_path}")
        return _decode(key_data, location)

    def save(self, key_material: Union[bytes, str], location: str) -> None:
        key_path = Path(location)
        try:
            key_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            key_path.write_text(_encode(key_material), encoding="ascii")
            if os.name == "posix":
                os.chmod(key_path, stat.S_IRUSR | stat.S_IWUSR)  # 0600
        except OSError as e:
            log.error(f"Failed to store key file {key_path}: {e}")
            raise KeyStoreError(f"Failed to store key file {key_path}: {e}") from e
        log.info(f"Key stored in file: {key_path}")

    def delete(self, location: str) -> bool:
        key_path = Path(location)
        if not key_path.is_file():
            return False
        key_path.unlink()
        log.debug(f"Key file {key_path} deleted")
        return True


class KeyringKeyStore(KeyStore):
    """Stores keys in the OS keyring under one service name."""

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name
        log.debug(f"Keyring key store using backend {keyring.get_keyring().__class__.__name__}")

    def _get(self, location: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service_name, location)
        except KeyringError as e:
            log.error(f"Keyring lookup failed for {location}: {e}")
            raise KeyStoreError(f"Keyring lookup failed for {location}: {e}") from e

    def exists(self, location: str) -> bool:
        return self._get(location) is not None

    def load(self, location: str) -> bytes:
        key_data = self._get(location)
        if key_data is None:
            raise InvalidKeyMaterialError(f"No key found in keyring for {location}")
        log.debug(f"Key {location} retrieved from OS keyring under service '{self.service_name}'")
        return _decode(key_data, location)

    def save(self, key_material: Union[bytes, str], location: str) -> None:
        try:
            keyring.set_password(self.service_name, location, _encode(key_material))
        except KeyringError as e:
            log.error(f"Failed to store key {location} in keyring: {e}")
            raise KeyStoreError(f"Failed to store key {location} in keyring: {e}") from e
        log.info(f"Key {location} stored in OS keyring under service '{self.service_name}'")

    def delete(self, location: str) -> bool:
        try:
            keyring.delete_password(self.service_name, location)
        except PasswordDeleteError:
            return False
        return True


def get_key_store(backend: str = "file", service_name: str = SERVICE_NAME) -> KeyStore:
    """
    Create a key store by backend name.

    Args:
        backend: 'file' or 'keyring'
        service_name: Keyring service name (keyring backend only)
    """
    if backend == "file":
        return FileKeyStore()
    if backend == "keyring":
        return KeyringKeyStore(service_name)
    raise ValueError(f"Unknown key store backend: {backend!r}")
