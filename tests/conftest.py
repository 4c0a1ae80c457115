from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from devgate.services.activation import (
    AuthClient,
    AuthorizationStore,
    AuthStateMachine,
    BackoffSchedule,
    DeviceIdentity,
    IntegrityGuard,
    IntegrityPolicy,
    JsonFileStore,
    PollScheduler,
)


class FakeAuthority:
    """Scripted stand-in for the approval service.

    Each endpoint takes a queue of replies; the last reply repeats once the
    queue is down to one.  A reply is ``(status_code, json_body)``, a ready
    :class:`httpx.Response`, or an exception to raise.
    """

    def __init__(self) -> None:
        self.replies: dict[str, list[Any]] = {
            "/api/request": [(200, {"success": True, "approved": False, "message": "Request sent"})],
            "/api/status": [(200, {"pending": True})],
            "/api/verify": [(200, {"success": True, "approved": False, "message": "Invalid code"})],
        }
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def script(self, path: str, *replies: Any) -> None:
        self.replies[path] = list(replies)

    def calls_to(self, path: str) -> list[dict[str, Any]]:
        return [payload for _, p, payload in self.calls if p == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.content:
            payload = json.loads(request.content)
        else:
            payload = dict(request.url.params)
        self.calls.append((request.method, path, payload))
        queue = self.replies[path]
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        status, body = reply
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeProbe:
    def __init__(self, machine_id: str | None = "5f3c0e2a9b8d4c7e8f1a2b3c4d5e6f70") -> None:
        self._machine_id = machine_id
        self.lookups = 0

    def machine_id(self) -> str | None:
        self.lookups += 1
        return self._machine_id

    def model(self) -> str:
        return "Linux x86_64"

    def os_version(self) -> str:
        return "6.8.0-45-generic"


async def no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture()
def anyio_backend() -> str:
    # the package is built on asyncio (asyncio.create_task, asyncio.wait_for)
    return "asyncio"


@pytest.fixture()
def probe_cls() -> type[FakeProbe]:
    return FakeProbe


@pytest.fixture()
def fast_sleep():
    return no_sleep


@pytest.fixture()
def authority() -> FakeAuthority:
    return FakeAuthority()


@pytest.fixture()
def kv(tmp_path: Path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "state" / "authorization.json")


@pytest.fixture()
def store(kv: JsonFileStore) -> AuthorizationStore:
    return AuthorizationStore(kv)


@pytest.fixture()
def identity(kv: JsonFileStore) -> DeviceIdentity:
    return DeviceIdentity(kv, probe=FakeProbe())


@pytest.fixture()
def make_machine(store, identity, authority):
    def _make(*, budget: float = 50.0, guard: IntegrityGuard | None = None) -> AuthStateMachine:
        client = AuthClient(base_url="https://authority.test", transport=authority.transport())
        scheduler = PollScheduler(
            schedule=BackoffSchedule.from_pairs([(None, 1.0)], budget),
            check_timeout=1.0,
            sleep=no_sleep,
        )
        return AuthStateMachine(
            store,
            identity,
            client,
            scheduler=scheduler,
            guard=guard or IntegrityGuard(policy=IntegrityPolicy.IGNORE),
        )

    return _make
