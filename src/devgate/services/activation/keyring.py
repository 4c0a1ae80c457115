"""Fernet key for the activation store, held in the system keyring."""
from __future__ import annotations

import logging

from cryptography.fernet import Fernet

from devgate.config import const

__all__ = ["KeyringUnavailableError", "store_cipher"]

logger = logging.getLogger(__name__)

_USERNAME = "store-key"


class KeyringUnavailableError(RuntimeError):
    """Raised when the system keyring cannot hold the store key."""


def _backend():
    try:
        import keyring  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise KeyringUnavailableError("system keyring is unavailable") from exc
    return keyring


def store_cipher() -> Fernet:
    """Load the store key, generating and saving one on first use."""
    backend = _backend()
    try:
        key = backend.get_password(const.KEYRING_SERVICE, _USERNAME)
        if not key:
            key = Fernet.generate_key().decode("ascii")
            backend.set_password(const.KEYRING_SERVICE, _USERNAME, key)
            logger.info("generated new store key in system keyring")
    except Exception as exc:  # backend specific errors, e.g. keyring.errors.NoKeyringError
        raise KeyringUnavailableError(f"keyring refused the store key: {exc}") from exc
    try:
        return Fernet(key.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        raise KeyringUnavailableError("store key in keyring is malformed") from exc
