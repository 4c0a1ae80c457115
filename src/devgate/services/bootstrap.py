"""Wires settings, storage and the activation components together."""
from __future__ import annotations

import logging

import httpx

from devgate.services.activation import (
    AuthClient,
    AuthorizationStore,
    AuthStateMachine,
    BackoffSchedule,
    DeviceIdentity,
    IntegrityGuard,
    PollScheduler,
    open_secure_store,
)
from devgate.services.settings import Settings

__all__ = ["build_machine"]

_log = logging.getLogger(__name__)


def build_machine(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> AuthStateMachine:
    """Construct one state machine that owns a single store instance."""

    settings.ensure_tree()
    backend = open_secure_store(settings)
    _log.debug("activation store at %s (encrypted=%s)", backend.path, backend.encrypted)
    client = AuthClient.from_settings(settings, transport=transport)
    scheduler = PollScheduler(
        schedule=BackoffSchedule.from_pairs(settings.poll_tiers, settings.poll_budget),
        check_timeout=settings.status_timeout,
    )
    return AuthStateMachine(
        AuthorizationStore(backend),
        DeviceIdentity(backend),
        client,
        scheduler=scheduler,
        guard=IntegrityGuard.from_setting(settings.integrity_policy),
    )
