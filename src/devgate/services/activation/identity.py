"""Stable per-install device identifier and a readable device descriptor."""
from __future__ import annotations

import hashlib
import hmac
import logging
import platform
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from devgate.config import const

from .errors import StorageError
from .models import DeviceInfo
from .storage import KeyValueStore

__all__ = ["DeviceIdentity", "PlatformProbe", "derive_device_id"]

logger = logging.getLogger(__name__)

KEY_INSTALL_ID = "install_id"

_MACHINE_ID_PATHS = ("/etc/machine-id", "/var/lib/dbus/machine-id")
# keeps the raw machine id off the wire
_APP_KEY = b"devgate.device-identity.v1"
_LEADING_INT = re.compile(r"^\s*(\d+)")


@dataclass(slots=True)
class PlatformProbe:
    """Thin wrapper around host lookups so tests can substitute them."""

    machine_id_paths: Sequence[str] = field(default_factory=lambda: _MACHINE_ID_PATHS)

    def machine_id(self) -> str | None:
        for candidate in self.machine_id_paths:
            try:
                value = Path(candidate).read_text(encoding="utf-8").strip()
            except OSError:
                continue
            if value:
                return value
        return None

    def model(self) -> str:
        parts = [platform.system(), platform.machine()]
        return " ".join(p for p in parts if p) or "unknown"

    def os_version(self) -> str:
        return platform.release() or "unknown"


def derive_device_id(machine_id: str | None) -> str:
    if machine_id is not None and machine_id.strip().lower() not in const.PLACEHOLDER_MACHINE_IDS:
        digest = hmac.new(_APP_KEY, machine_id.strip().encode("utf-8"), hashlib.sha256).hexdigest()
        return f"machine_{digest[:32]}"
    return f"uuid_{uuid.uuid4()}"


def _version_code(release: str) -> int:
    match = _LEADING_INT.match(release)
    return int(match.group(1)) if match else 0


class DeviceIdentity:
    def __init__(self, backend: KeyValueStore, *, probe: PlatformProbe | None = None) -> None:
        self._backend = backend
        self._probe = probe or PlatformProbe()
        self._cached: str | None = None

    def get_id(self) -> str:
        if self._cached:
            return self._cached
        try:
            stored = self._backend.get(KEY_INSTALL_ID)
        except StorageError as exc:
            logger.warning("install id unreadable: %s", exc)
            stored = None
        if isinstance(stored, str) and stored:
            self._cached = stored
            return stored

        try:
            machine_id = self._probe.machine_id()
        except Exception:
            logger.debug("platform id lookup failed", exc_info=True)
            machine_id = None
        device_id = derive_device_id(machine_id)
        try:
            self._backend.set_many({KEY_INSTALL_ID: device_id})
        except StorageError:
            logger.error("failed to persist install id", exc_info=True)
        logger.info("generated install id %s", device_id[:16])
        self._cached = device_id
        return device_id

    def describe(self) -> DeviceInfo:
        release = self._probe.os_version()
        return DeviceInfo(
            device_id=self.get_id(),
            model=self._probe.model(),
            os_version=release,
            platform_version_code=_version_code(release),
        )
