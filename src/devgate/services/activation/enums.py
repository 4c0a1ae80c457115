"""Enumerations for the device activation lifecycle."""
from __future__ import annotations

from enum import Enum

__all__ = [
    "ActivationState",
    "StatusKind",
    "EventKind",
    "IntegrityPolicy",
]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


class ActivationState(_StrEnum):
    INITIAL = "INITIAL"
    REQUESTING = "REQUESTING"
    PENDING = "PENDING"
    PAUSED = "PAUSED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class StatusKind(_StrEnum):
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"
    PAUSED = "paused"

    @property
    def terminal(self) -> bool:
        return self is not StatusKind.PENDING


class EventKind(_StrEnum):
    STATE = "state"
    STATUS = "status"
    ERROR = "error"
    TIMEOUT = "timeout"


class IntegrityPolicy(_StrEnum):
    DENY = "deny"
    LOG_ONLY = "log-only"
    IGNORE = "ignore"
