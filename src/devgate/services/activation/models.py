"""Dataclasses shared by the activation components."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Mapping, TypeVar

from .enums import ActivationState, EventKind, StatusKind
from .errors import ActivationError, IntegrityViolation, NetworkError

__all__ = [
    "DeviceInfo",
    "AuthorizationRecord",
    "RemoteStatus",
    "RequestResponse",
    "Result",
    "ActivationEvent",
]

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    device_id: str
    model: str
    os_version: str
    platform_version_code: int

    @property
    def short_id(self) -> str:
        return self.device_id[:16]

    def as_payload(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "model": self.model,
            "android_version": self.os_version,
            "sdk_version": self.platform_version_code,
        }


@dataclass(frozen=True, slots=True)
class AuthorizationRecord:
    verified: bool = False
    verified_at: int | None = None
    request_sent: bool = False
    device_id: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AuthorizationRecord":
        """Parse stored values; anything of the wrong type is an :class:`IntegrityViolation`."""
        verified = data.get("verified")
        request_sent = data.get("request_sent")
        verified_at = data.get("verified_at")
        device_id = data.get("device_id")
        for name, value in (("verified", verified), ("request_sent", request_sent)):
            if value is not None and not isinstance(value, bool):
                raise IntegrityViolation(f"{name} is not a boolean: {value!r}")
        # bool is an int subclass, and json accepts Infinity/NaN only as floats
        if verified_at is not None and (isinstance(verified_at, bool) or not isinstance(verified_at, int)):
            raise IntegrityViolation(f"verified_at is not an integer timestamp: {verified_at!r}")
        if device_id is not None and not isinstance(device_id, str):
            raise IntegrityViolation(f"device_id is not a string: {device_id!r}")
        return cls(
            verified=verified is True,
            verified_at=verified_at or None,
            request_sent=request_sent is True,
            device_id=device_id or None,
        )

    def validate(self) -> None:
        if self.verified and (self.verified_at is None or not self.device_id):
            raise IntegrityViolation("verified record is missing verified_at or device_id")


@dataclass(frozen=True, slots=True)
class RemoteStatus:
    approved: bool = False
    pending: bool = True
    rejected: bool = False
    paused: bool = False
    message: str = ""

    @property
    def kind(self) -> StatusKind:
        if self.rejected:
            return StatusKind.REJECTED
        if self.paused:
            return StatusKind.PAUSED
        if self.approved:
            return StatusKind.APPROVED
        return StatusKind.PENDING

    @property
    def terminal(self) -> bool:
        return self.kind.terminal


@dataclass(frozen=True, slots=True)
class RequestResponse:
    success: bool
    approved: bool = False
    message: str = ""


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Outcome of a network operation: either ``value`` or ``error``."""

    value: T | None = None
    error: NetworkError | None = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: NetworkError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class ActivationEvent:
    """Output of the state machine for whatever presents it."""

    kind: EventKind
    state: ActivationState
    message: str = ""
    error: ActivationError | None = None
