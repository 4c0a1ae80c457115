from __future__ import annotations

import httpx
import pytest

from devgate.services.activation import AuthClient, DeviceInfo, NetworkError, StatusKind

INFO = DeviceInfo(device_id="machine_0123456789abcdef", model="Linux x86_64", os_version="6.8.0", platform_version_code=6)


@pytest.fixture()
def client(authority) -> AuthClient:
    return AuthClient(base_url="https://authority.test", transport=authority.transport())


@pytest.mark.anyio
async def test_request_access_sends_device_payload(client, authority):
    result = await client.request_access(INFO)

    assert result.ok
    assert result.value.success is True
    assert result.value.approved is False
    assert result.value.message == "Request sent"
    assert authority.calls == [
        (
            "POST",
            "/api/request",
            {"device_id": INFO.device_id, "model": "Linux x86_64", "android_version": "6.8.0", "sdk_version": 6},
        )
    ]


@pytest.mark.anyio
async def test_http_error_surfaces_body_message(client, authority):
    authority.script("/api/request", (429, {"message": "Too many requests"}))
    result = await client.request_access(INFO)
    assert result.ok
    assert result.value.success is False
    assert result.value.message == "Too many requests"


@pytest.mark.anyio
async def test_http_error_without_body_has_empty_message(client, authority):
    authority.script("/api/request", httpx.Response(502, content=b"<html>bad gateway</html>"))
    result = await client.request_access(INFO)
    assert result.ok
    assert result.value.success is False
    assert result.value.message == ""


@pytest.mark.anyio
async def test_success_false_in_body_is_not_success(client, authority):
    authority.script("/api/request", (200, {"success": False, "approved": True, "message": "Device banned"}))
    result = await client.request_access(INFO)
    assert result.value.success is False
    assert result.value.approved is False


@pytest.mark.anyio
async def test_malformed_body_is_network_error(client, authority):
    authority.script("/api/request", httpx.Response(200, content=b"not json"))
    result = await client.request_access(INFO)
    assert not result.ok
    assert isinstance(result.error, NetworkError)


@pytest.mark.anyio
async def test_connect_error_is_network_error(client, authority):
    authority.script("/api/verify", httpx.ConnectError("connection refused"))
    result = await client.verify_with_code(INFO, "ABCD-EFGH")
    assert not result.ok
    assert "failed" in str(result.error)


@pytest.mark.anyio
async def test_timeout_is_network_error(client, authority):
    authority.script("/api/status", httpx.ReadTimeout("read timed out"))
    result = await client.check_status(INFO.device_id)
    assert not result.ok
    assert "timed out" in str(result.error)


@pytest.mark.anyio
async def test_verify_with_code_sends_code(client, authority):
    authority.script("/api/verify", (200, {"success": True, "approved": True, "message": "Activated"}))
    result = await client.verify_with_code(INFO, "ABCD-EFGH")
    assert result.value.approved is True
    assert authority.calls_to("/api/verify")[0]["code"] == "ABCD-EFGH"


@pytest.mark.anyio
async def test_check_status_parses_flags(client, authority):
    authority.script("/api/status", (200, {"approved": False, "paused": True, "message": "Paused by admin"}))
    result = await client.check_status(INFO.device_id)

    assert result.ok
    assert result.value.kind is StatusKind.PAUSED
    assert result.value.message == "Paused by admin"
    assert authority.calls_to("/api/status") == [{"device_id": INFO.device_id}]


@pytest.mark.anyio
async def test_check_status_defaults_to_pending(client, authority):
    authority.script("/api/status", (200, {}))
    result = await client.check_status(INFO.device_id)
    assert result.value.kind is StatusKind.PENDING
    assert result.value.terminal is False


@pytest.mark.anyio
async def test_check_status_http_error_is_network_error(client, authority):
    authority.script("/api/status", (500, {"message": "boom"}))
    result = await client.check_status(INFO.device_id)
    assert not result.ok
    assert result.error.status_code == 500


@pytest.mark.anyio
async def test_check_status_rejects_non_mapping_body(client, authority):
    authority.script("/api/status", (200, ["approved"]))
    result = await client.check_status(INFO.device_id)
    assert not result.ok
