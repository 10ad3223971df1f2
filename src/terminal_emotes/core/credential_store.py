"""Twitch token storage in the system keyring.

The settings file only holds the token when no usable keyring backend
exists; it is then restricted to the owner (chmod 600).
"""

import logging
import os
import stat

import keyring
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

SERVICE_NAME = "terminal-emotes"

KEY_TWITCH_ACCESS_TOKEN = "twitch_access_token"
_PROBE_KEY = "_probe"

_keyring_available: bool | None = None


def _probe_keyring() -> bool:
    backend = keyring.get_keyring()
    if isinstance(backend, FailKeyring):
        logger.info("No keyring backend, token will live in settings.json")
        return False
    try:
        keyring.set_password(SERVICE_NAME, _PROBE_KEY, "ok")
        works = keyring.get_password(SERVICE_NAME, _PROBE_KEY) == "ok"
        keyring.delete_password(SERVICE_NAME, _PROBE_KEY)
    except (KeyringError, RuntimeError, OSError) as e:
        logger.info(f"Keyring {type(backend).__name__} unusable: {e}")
        return False
    logger.debug(f"Keyring {type(backend).__name__} works: {works}")
    return works


def is_available() -> bool:
    """Whether secrets can go to the keyring. Probed once per process."""
    global _keyring_available
    if _keyring_available is None:
        _keyring_available = _probe_keyring()
    return _keyring_available


def store_secret(key: str, value: str) -> bool:
    """Store ``value`` under ``key``; an empty value deletes it.

    Returns False when the caller must keep the secret itself.
    """
    if not value:
        delete_secret(key)
        return True
    if not is_available():
        return False
    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except KeyringError as e:
        logger.warning(f"Failed to store '{key}' in keyring: {e}")
        return False
    return True


def get_secret(key: str) -> str | None:
    if not is_available():
        return None
    try:
        return keyring.get_password(SERVICE_NAME, key)
    except KeyringError as e:
        logger.warning(f"Failed to read '{key}' from keyring: {e}")
        return None


def delete_secret(key: str) -> None:
    if not is_available():
        return
    try:
        keyring.delete_password(SERVICE_NAME, key)
    except PasswordDeleteError:
        pass  # Not stored
    except KeyringError as e:
        logger.debug(f"Failed to delete '{key}' from keyring: {e}")


def secure_file_permissions(filepath: str) -> None:
    """Restrict a file holding secrets to its owner."""
    try:
        os.chmod(filepath, stat.S_IRUSR | stat.S_IWUSR)
    except OSError as e:
        logger.debug(f"Could not set permissions on {filepath}: {e}")
