"""Error taxonomy for device activation."""
from __future__ import annotations

__all__ = [
    "ActivationError",
    "NetworkError",
    "IntegrityViolation",
    "InvalidCode",
    "PollTimeout",
    "StorageError",
]


class ActivationError(RuntimeError):
    """Base class for every activation failure."""


class NetworkError(ActivationError):
    """Transport failure, timeout or unparseable response from the authority."""

    def __init__(self, message: str, *, status_code: int = 0, operation: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation


class IntegrityViolation(ActivationError):
    """The persisted authorization record contradicts its own invariants."""


class InvalidCode(ActivationError):
    """The authority did not accept an activation code."""


class PollTimeout(ActivationError):
    """The poll budget ran out without a terminal status."""

    def __init__(self, message: str, *, attempts: int, elapsed: float):
        super().__init__(message)
        self.attempts = attempts
        self.elapsed = elapsed


class StorageError(ActivationError):
    """The key-value store could not be read or written."""
