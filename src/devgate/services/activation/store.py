"""Persisted authorization record with consistency checks on every read."""
from __future__ import annotations

import logging
import time
from typing import Callable

from .enums import StatusKind
from .errors import IntegrityViolation, StorageError
from .models import AuthorizationRecord, RemoteStatus
from .storage import KeyValueStore

__all__ = ["AuthorizationStore", "RECORD_KEYS"]

logger = logging.getLogger(__name__)

KEY_VERIFIED = "verified"
KEY_DEVICE_ID = "device_id"
KEY_VERIFIED_AT = "verified_at"
KEY_REQUEST_SENT = "request_sent"

RECORD_KEYS = (KEY_VERIFIED, KEY_DEVICE_ID, KEY_VERIFIED_AT, KEY_REQUEST_SENT)


def _now_ms() -> int:
    return int(time.time() * 1000)


class AuthorizationStore:
    """Owns the authorization keys of a :class:`KeyValueStore`.

    Reads never raise: an unreadable or inconsistent record is reported as
    "not verified".  Inconsistent records are cleared before anyone sees them.
    """

    def __init__(self, backend: KeyValueStore, *, clock: Callable[[], int] = _now_ms) -> None:
        self._backend = backend
        self._clock = clock

    @property
    def backend(self) -> KeyValueStore:
        return self._backend

    def record(self) -> AuthorizationRecord:
        """Validated snapshot of the record; violations reset it first."""
        try:
            data = self._backend.snapshot()
        except StorageError as exc:
            logger.warning("authorization record unreadable, treating as unverified: %s", exc)
            return AuthorizationRecord()
        try:
            record = AuthorizationRecord.from_mapping(data)
            record.validate()
        except IntegrityViolation as exc:
            logger.warning("authorization record failed integrity check, resetting: %s", exc)
            self._reset_quietly()
            return AuthorizationRecord()
        return record

    def is_verified(self) -> bool:
        return self.record().verified

    def has_requested_access(self) -> bool:
        return self.record().request_sent

    def mark_verified(self, device_id: str) -> None:
        if not device_id:
            raise ValueError("device_id is required to mark a device verified")
        current = self.record()
        now = self._clock()
        if current.verified_at is not None and current.verified_at > now:
            now = current.verified_at
        self._backend.set_many(
            {
                KEY_VERIFIED: True,
                KEY_VERIFIED_AT: now,
                KEY_REQUEST_SENT: True,
                KEY_DEVICE_ID: device_id,
            }
        )
        logger.info("device %s marked verified", device_id)

    def set_request_sent(self, flag: bool) -> None:
        self._backend.set_many({KEY_REQUEST_SENT: bool(flag)})

    def revoke_if_paused(self, status: RemoteStatus) -> bool:
        """Drop the verified flag when the authority reports the device paused."""
        if status.kind is not StatusKind.PAUSED:
            return False
        self._backend.set_many({KEY_VERIFIED: False, KEY_VERIFIED_AT: None})
        logger.info("authorization paused by authority, verified flag cleared")
        return True

    def reset(self) -> None:
        self._backend.delete_many(RECORD_KEYS)
        logger.info("authorization record reset")

    def _reset_quietly(self) -> None:
        try:
            self.reset()
        except StorageError:
            logger.error("failed to reset authorization record", exc_info=True)
