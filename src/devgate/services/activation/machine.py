"""Device activation lifecycle.

The machine owns one :class:`AuthorizationStore`, one :class:`AuthClient` and
one :class:`PollScheduler`.  It reports progress only through
:class:`ActivationEvent` values handed to subscribed listeners; listeners are
called on the event loop that runs the machine and must not block.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .client import AuthClient
from .enums import ActivationState, EventKind, StatusKind
from .errors import ActivationError, IntegrityViolation, InvalidCode, NetworkError, StorageError
from .identity import DeviceIdentity
from .integrity import IntegrityGuard
from .models import ActivationEvent, RemoteStatus, Result
from .poller import PollOutcome, PollScheduler, PollUpdate
from .store import AuthorizationStore

__all__ = ["AuthStateMachine", "Listener"]

logger = logging.getLogger(__name__)

Listener = Callable[[ActivationEvent], None]

MSG_REQUEST_FAILED = "Failed to send request. Check your internet connection."
MSG_STATUS_FAILED = "Unable to check status. Check your internet connection."
MSG_SAVE_FAILED = "Could not save activation state. Try again."
MSG_INVALID_CODE = "Invalid activation code"
MSG_VERIFY_FAILED = "Verification failed. Check your internet connection."
MSG_INTEGRITY = "This device did not pass the integrity check."
MSG_EMPTY_CODE = "Enter an activation code"
MSG_PAUSED = "Access for this device is paused."
MSG_REJECTED = "Access denied."
MSG_APPROVED = "Approved!"
MSG_WAITING = "Waiting for admin approval..."


class AuthStateMachine:
    def __init__(
        self,
        store: AuthorizationStore,
        identity: DeviceIdentity,
        client: AuthClient,
        *,
        scheduler: PollScheduler | None = None,
        guard: IntegrityGuard | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._client = client
        self._scheduler = scheduler or PollScheduler(check_timeout=client.status_timeout)
        self._guard = guard or IntegrityGuard()
        self._state = ActivationState.INITIAL
        self._listeners: list[Listener] = []
        self._op_lock = asyncio.Lock()
        self._blocked = False
        self._guard_checked = False

    # ------------------------------------------------------------------
    # observation
    # ------------------------------------------------------------------
    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def blocked(self) -> bool:
        return self._blocked

    @property
    def polling(self) -> bool:
        return self._scheduler.running

    @property
    def store(self) -> AuthorizationStore:
        return self._store

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, kind: EventKind, message: str = "", error: ActivationError | None = None) -> None:
        event = ActivationEvent(kind=kind, state=self._state, message=message, error=error)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("activation listener failed")

    def _set_state(self, state: ActivationState, message: str = "") -> None:
        if state is self._state and not message:
            return
        previous, self._state = self._state, state
        if previous is not state:
            logger.info("activation state %s -> %s", previous, state)
        self._emit(EventKind.STATE, message)

    def _fail(self, message: str, error: ActivationError | None = None) -> None:
        self._emit(EventKind.ERROR, message, error)

    # ------------------------------------------------------------------
    # launch
    # ------------------------------------------------------------------
    async def resume(self) -> ActivationState:
        """Decide the launch state; a verified record never touches the network."""
        # every launch probes the host again
        self._guard_checked = False
        if self._check_guard():
            self._set_state(ActivationState.INITIAL)
            self._fail(MSG_INTEGRITY, IntegrityViolation(MSG_INTEGRITY))
            return self._state

        if self._store.is_verified():
            self._set_state(ActivationState.APPROVED, MSG_APPROVED)
            return self._state
        if not self._store.has_requested_access():
            self._set_state(ActivationState.INITIAL)
            return self._state

        async with self._op_lock:
            result = await self._client.check_status(self._identity.get_id())
        if not result.ok:
            # the request is out; keep waiting for the authority
            self._enter_pending(MSG_WAITING)
            return self._state
        self._apply_status(result.value)
        if self._state is ActivationState.PENDING:
            self.start_polling()
        return self._state

    # ------------------------------------------------------------------
    # user actions
    # ------------------------------------------------------------------
    async def request_access(self) -> ActivationState:
        if self._guard_blocks():
            return self._state
        if self._state in (ActivationState.APPROVED, ActivationState.REQUESTING):
            return self._state
        if self._state is ActivationState.PENDING and self.polling:
            return self._state

        previous = self._state
        self.stop_polling()
        async with self._op_lock:
            self._set_state(ActivationState.REQUESTING)
            info = self._identity.describe()
            result = await self._client.request_access(info)

        if not result.ok:
            self._set_state(previous)
            self._fail(MSG_REQUEST_FAILED, result.error)
            return self._state
        response = result.value
        if not response.success:
            self._set_state(previous)
            message = response.message or MSG_REQUEST_FAILED
            self._fail(message, NetworkError(message, operation="/api/request"))
            return self._state

        if response.approved:
            if not self._approve(info.device_id, response.message or MSG_APPROVED):
                self._set_state(previous)
            return self._state
        self._write(self._store.set_request_sent, True)
        self._enter_pending(response.message or MSG_WAITING)
        return self._state

    async def verify_code(self, code: str) -> ActivationState:
        if self._guard_blocks():
            return self._state
        if self._state is ActivationState.APPROVED:
            return self._state
        normalized = (code or "").strip().upper()
        if not normalized:
            self._fail(MSG_EMPTY_CODE, InvalidCode(MSG_EMPTY_CODE))
            return self._state

        resume_polling = self.stop_polling()
        async with self._op_lock:
            info = self._identity.describe()
            result = await self._client.verify_with_code(info, normalized)

        if result.ok and result.value.success and result.value.approved:
            self._approve(info.device_id, result.value.message or MSG_APPROVED)
            return self._state

        if not result.ok:
            self._fail(MSG_VERIFY_FAILED, result.error)
        else:
            self._fail(MSG_INVALID_CODE, InvalidCode(result.value.message or MSG_INVALID_CODE))
        if resume_polling and self._state is ActivationState.PENDING:
            self.start_polling()
        return self._state

    async def retry(self) -> ActivationState:
        """Manual retry affordance for every non-approved state."""
        if self._guard_blocks():
            return self._state
        if self._state is ActivationState.PAUSED:
            return await self._recheck_paused()
        if self._state is ActivationState.PENDING:
            if not self.polling:
                self.start_polling()
            return self._state
        return await self.request_access()

    async def _recheck_paused(self) -> ActivationState:
        async with self._op_lock:
            result = await self._client.check_status(self._identity.get_id())
        if not result.ok:
            self._fail(MSG_STATUS_FAILED, result.error)
            return self._state
        status = result.value
        kind = status.kind
        if kind is StatusKind.PAUSED:
            self._write(self._store.revoke_if_paused, status)
            self._set_state(ActivationState.PAUSED, status.message or MSG_PAUSED)
        elif kind is StatusKind.APPROVED:
            self._approve(self._identity.get_id(), status.message or MSG_APPROVED)
        else:
            self._set_state(ActivationState.INITIAL, status.message)
        return self._state

    async def reset(self) -> ActivationState:
        """Forget the authorization (logout/debug); the install id is kept."""
        self.stop_polling()
        self._write(self._store.reset)
        self._set_state(ActivationState.INITIAL)
        return self._state

    # ------------------------------------------------------------------
    # polling
    # ------------------------------------------------------------------
    def start_polling(self) -> None:
        if self._state is not ActivationState.PENDING or self._blocked:
            return
        device_id = self._identity.get_id()

        async def _check() -> Result[RemoteStatus]:
            return await self._client.check_status(device_id)

        self._scheduler.start(_check, self._on_poll_update, self._on_poll_done)

    def stop_polling(self) -> bool:
        return self._scheduler.cancel()

    async def wait_polling(self) -> PollOutcome | None:
        return await self._scheduler.wait()

    async def close(self) -> None:
        self.stop_polling()
        self._listeners.clear()

    def _on_poll_update(self, update: PollUpdate) -> None:
        self._emit(EventKind.STATUS, update.message, update.error)

    async def _on_poll_done(self, outcome: PollOutcome) -> None:
        if outcome.timeout is not None:
            self._emit(EventKind.TIMEOUT, str(outcome.timeout), outcome.timeout)
            return
        if outcome.status is not None:
            self._apply_status(outcome.status)

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    def _apply_status(self, status: RemoteStatus) -> None:
        kind = status.kind
        if kind is StatusKind.APPROVED:
            self._approve(self._identity.get_id(), status.message or MSG_APPROVED)
        elif kind is StatusKind.PAUSED:
            self._write(self._store.revoke_if_paused, status)
            self._set_state(ActivationState.PAUSED, status.message or MSG_PAUSED)
        elif kind is StatusKind.REJECTED:
            self._set_state(ActivationState.REJECTED, status.message or MSG_REJECTED)
        else:
            self._set_state(ActivationState.PENDING, status.message or MSG_WAITING)

    def _write(self, action: Callable[..., object], *args: object) -> bool:
        try:
            action(*args)
        except StorageError as exc:
            logger.error("activation store write failed: %s", exc)
            self._fail(MSG_SAVE_FAILED, exc)
            return False
        return True

    def _approve(self, device_id: str, message: str) -> bool:
        if self._check_guard():
            return False
        # durable before anyone hears about it
        if not self._write(self._store.mark_verified, device_id):
            return False
        self._set_state(ActivationState.APPROVED, message)
        return True

    def _enter_pending(self, message: str) -> None:
        self._set_state(ActivationState.PENDING, message)
        self.start_polling()

    def _check_guard(self) -> bool:
        """Probe the host on first use; True when the policy denies it."""
        if not self._guard_checked:
            self._guard_checked = True
            self._blocked = not self._guard.allows()
            if self._blocked:
                self.stop_polling()
        return self._blocked

    def _guard_blocks(self) -> bool:
        if not self._check_guard():
            return False
        self._fail(MSG_INTEGRITY, IntegrityViolation(MSG_INTEGRITY))
        return True
