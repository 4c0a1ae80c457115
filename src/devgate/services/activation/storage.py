"""Durable key-value storage backing the authorization record.

The record lives in a single JSON document.  When a Fernet cipher is supplied
the document is encrypted at rest; the key itself is kept in the system
keyring.  If the keyring cannot provide a key the store falls back to an
unencrypted file so the gate still starts.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

from cryptography.fernet import Fernet, InvalidToken

from devgate.services.settings import Settings

from .errors import StorageError
from .keyring import KeyringUnavailableError, store_cipher

__all__ = ["KeyValueStore", "JsonFileStore", "open_secure_store"]

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    encrypted: bool

    def get(self, key: str, default: Any = None) -> Any: ...

    def snapshot(self) -> dict[str, Any]: ...

    def set_many(self, values: Mapping[str, Any]) -> None: ...

    def delete_many(self, keys: Iterable[str]) -> None: ...


class JsonFileStore:
    """File-backed store; every mutation is fsynced and atomically replaced."""

    def __init__(self, path: Path, *, cipher: Fernet | None = None) -> None:
        self._path = path
        self._cipher = cipher
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def encrypted(self) -> bool:
        return self._cipher is not None

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_bytes()
        except OSError as exc:
            raise StorageError(f"failed to read {self._path}: {exc}") from exc
        if not raw:
            return {}
        if self._cipher is not None:
            try:
                raw = self._cipher.decrypt(raw)
            except InvalidToken as exc:
                raise StorageError(f"failed to decrypt {self._path}") from exc
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StorageError(f"failed to parse {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"{self._path} does not hold a mapping")
        return data

    def _save(self, payload: Mapping[str, Any]) -> None:
        data = json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8")
        if self._cipher is not None:
            data = self._cipher.encrypt(data)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=self._path.name, suffix=".tmp", dir=self._path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            try:
                os.chmod(tmp_name, 0o600)
            except PermissionError:
                pass
            os.replace(tmp_name, self._path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StorageError(f"failed to write {self._path}: {exc}") from exc

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._load())

    def set_many(self, values: Mapping[str, Any]) -> None:
        with self._lock:
            try:
                data = self._load()
            except StorageError:
                # unreadable contents are replaced rather than merged
                logger.warning("discarding unreadable store %s", self._path)
                data = {}
            data.update(values)
            self._save(data)

    def delete_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            try:
                data = self._load()
            except StorageError:
                logger.warning("discarding unreadable store %s", self._path)
                data = {}
            for key in keys:
                data.pop(key, None)
            self._save(data)


def open_secure_store(settings: Settings) -> JsonFileStore:
    """Open the encrypted store, or the plain fallback when encryption is unavailable."""

    if not settings.plain_storage:
        try:
            cipher = store_cipher()
        except KeyringUnavailableError as exc:
            logger.warning("encrypted storage unavailable, using plain fallback: %s", exc)
        else:
            return JsonFileStore(settings.store_path(), cipher=cipher)
    return JsonFileStore(settings.fallback_store_path())
