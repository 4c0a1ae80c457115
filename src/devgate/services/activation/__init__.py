"""Device activation: identity, persisted authorization, authority client and lifecycle."""
from .client import AuthClient
from .enums import ActivationState, EventKind, IntegrityPolicy, StatusKind
from .errors import ActivationError, IntegrityViolation, InvalidCode, NetworkError, PollTimeout, StorageError
from .identity import DeviceIdentity, PlatformProbe
from .integrity import CompromiseDetector, IntegrityGuard
from .machine import AuthStateMachine
from .models import ActivationEvent, AuthorizationRecord, DeviceInfo, RemoteStatus, RequestResponse, Result
from .poller import BackoffSchedule, BackoffTier, PollOutcome, PollScheduler, PollUpdate
from .storage import JsonFileStore, KeyValueStore, open_secure_store
from .store import AuthorizationStore

__all__ = [
    "AuthClient",
    "ActivationState",
    "EventKind",
    "IntegrityPolicy",
    "StatusKind",
    "ActivationError",
    "IntegrityViolation",
    "InvalidCode",
    "NetworkError",
    "PollTimeout",
    "StorageError",
    "DeviceIdentity",
    "PlatformProbe",
    "CompromiseDetector",
    "IntegrityGuard",
    "AuthStateMachine",
    "ActivationEvent",
    "AuthorizationRecord",
    "DeviceInfo",
    "RemoteStatus",
    "RequestResponse",
    "Result",
    "BackoffSchedule",
    "BackoffTier",
    "PollOutcome",
    "PollScheduler",
    "PollUpdate",
    "JsonFileStore",
    "KeyValueStore",
    "open_secure_store",
    "AuthorizationStore",
]
