# src/devgate/services/activation/client.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from pydantic import BaseModel, ValidationError

from devgate.config import const

from .errors import NetworkError
from .models import DeviceInfo, RemoteStatus, RequestResponse, Result
from .schemas import AccessRequest, AccessResponse, CodeVerificationRequest, StatusResponse

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuthClient:
    """Stateless calls against the remote approval authority.

    Every public method returns a :class:`Result`; transport failures,
    timeouts and unparseable bodies arrive as :class:`NetworkError`.
    """

    base_url: str = const.API_BASE
    request_timeout: float = const.REQUEST_TIMEOUT
    status_timeout: float = const.STATUS_TIMEOUT
    # injected by tests (httpx.MockTransport)
    transport: httpx.AsyncBaseTransport | None = None

    @classmethod
    def from_settings(cls, settings: Any, *, transport: httpx.AsyncBaseTransport | None = None) -> "AuthClient":
        return cls(
            base_url=getattr(settings, "api_base", None) or const.API_BASE,
            request_timeout=float(getattr(settings, "request_timeout", const.REQUEST_TIMEOUT)),
            status_timeout=float(getattr(settings, "status_timeout", const.STATUS_TIMEOUT)),
            transport=transport,
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
        timeout: float,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=timeout,
                transport=self.transport,
            ) as client:
                return await client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {path} timed out", operation=path) from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}", operation=path) from exc

    @staticmethod
    def _body(response: httpx.Response) -> Any | None:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def _access_result(self, path: str, response: httpx.Response) -> Result[RequestResponse]:
        body = self._body(response)
        if not response.is_success:
            message = ""
            if isinstance(body, Mapping) and isinstance(body.get("message"), str):
                message = body["message"]
            logger.info("%s rejected with HTTP %s", path, response.status_code)
            return Result.success(RequestResponse(success=False, approved=False, message=message))
        if body is None:
            return Result.failure(NetworkError(f"{path} returned an unreadable body", status_code=response.status_code, operation=path))
        try:
            parsed = AccessResponse.model_validate(body)
        except ValidationError as exc:
            return Result.failure(NetworkError(f"{path} returned a malformed body: {exc.error_count()} errors", status_code=response.status_code, operation=path))
        return Result.success(
            RequestResponse(
                success=parsed.success,
                approved=parsed.success and parsed.approved,
                message=parsed.message or "",
            )
        )

    async def _post_access(self, path: str, payload: BaseModel) -> Result[RequestResponse]:
        try:
            response = await self._send("POST", path, json=payload.model_dump(), timeout=self.request_timeout)
        except NetworkError as exc:
            logger.warning("%s", exc)
            return Result.failure(exc)
        return self._access_result(path, response)

    async def request_access(self, info: DeviceInfo) -> Result[RequestResponse]:
        payload = AccessRequest(**info.as_payload())
        return await self._post_access("/api/request", payload)

    async def verify_with_code(self, info: DeviceInfo, code: str) -> Result[RequestResponse]:
        payload = CodeVerificationRequest(**info.as_payload(), code=code)
        return await self._post_access("/api/verify", payload)

    async def check_status(self, device_id: str) -> Result[RemoteStatus]:
        path = "/api/status"
        try:
            response = await self._send("GET", path, params={"device_id": device_id}, timeout=self.status_timeout)
        except NetworkError as exc:
            logger.debug("%s", exc)
            return Result.failure(exc)
        if not response.is_success:
            return Result.failure(NetworkError(f"GET {path} failed with status {response.status_code}", status_code=response.status_code, operation=path))
        body = self._body(response)
        if body is None:
            return Result.failure(NetworkError(f"{path} returned an unreadable body", status_code=response.status_code, operation=path))
        try:
            parsed = StatusResponse.model_validate(body)
        except ValidationError as exc:
            return Result.failure(NetworkError(f"{path} returned a malformed body: {exc.error_count()} errors", status_code=response.status_code, operation=path))
        return Result.success(
            RemoteStatus(
                approved=parsed.approved,
                pending=parsed.pending,
                rejected=parsed.rejected,
                paused=parsed.paused,
                message=parsed.message or "",
            )
        )


__all__ = ["AuthClient"]
