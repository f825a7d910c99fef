"""
Avatar vendor REST client (streaming avatar API).

Endpoints (POST, JSON, header `x-api-key`):
- /v1/streaming.new           avatar_id [+ voice]  -> session_id + LiveKit room params
- /v1/streaming.task          session_id + text    -> ack
- /v1/streaming.stop          session_id           -> ack
- /v1/streaming.create_token  (empty body)         -> data.token

Success for session endpoints is an application `code` of 100.

Design constraints:
- No retries. Vendor calls are not idempotent; ambiguous failures (timeouts)
  surface as VendorError and the caller decides.
- The httpx.AsyncClient is injected and owned by the app factory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from constants import VENDOR_API_VERSION, VENDOR_SUCCESS_CODE, VENDOR_TASK_TYPE
from errors import VendorError
from observability.logger import log_event
from observability.metrics import timed


@dataclass(frozen=True)
class VendorAck:
    """Application-level result of a session endpoint call."""
    code: int | None
    message: str | None
    data: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.code == VENDOR_SUCCESS_CODE


class AvatarVendorClient:
    """Thin wrapper over the vendor's streaming endpoints."""

    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        base_url: str,
        api_key: str | None,
        task_type: str = VENDOR_TASK_TYPE,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._task_type = task_type

    # ------------------------------------------------------------------
    # Session endpoints
    # ------------------------------------------------------------------

    async def create_session(self, *, avatar_id: str, voice_id: str | None) -> VendorAck:
        body: dict[str, Any] = {"version": VENDOR_API_VERSION, "avatar_id": avatar_id}
        if voice_id:
            body["voice"] = {"voice_id": voice_id}
        return await self._post_session("/v1/streaming.new", body)

    async def speak(self, *, remote_session_id: str, text: str) -> VendorAck:
        return await self._post_session("/v1/streaming.task", {
            "session_id": remote_session_id,
            "text": text,
            "task_type": self._task_type,
        })

    async def stop(self, *, remote_session_id: str) -> VendorAck:
        return await self._post_session("/v1/streaming.stop", {
            "session_id": remote_session_id,
        })

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def create_token(self, *, api_key: str) -> str:
        """
        Request a short-lived client token using a per-avatar API key.

        Raises:
            VendorError on HTTP/network failure or when data.token is absent.
        """
        payload = await self._post("/v1/streaming.create_token", {}, api_key=api_key)
        data = payload.get("data") if isinstance(payload, dict) else None
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise VendorError("API request failed: Invalid response format")
        return str(token)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post_session(self, path: str, body: dict[str, Any]) -> VendorAck:
        if not self._api_key:
            raise VendorError("Avatar vendor API key is not configured")

        payload = await self._post(path, body, api_key=self._api_key)
        code = payload.get("code")
        data = payload.get("data")
        return VendorAck(
            code=code if isinstance(code, int) else None,
            message=payload.get("message") or payload.get("error"),
            data=data if isinstance(data, dict) else {},
        )

    async def _post(self, path: str, body: dict[str, Any], *, api_key: str) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        headers = {"x-api-key": api_key, "Content-Type": "application/json"}

        try:
            with timed("avatar_vendor_call", details={"path": path}):
                response = await self._http.post(url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise VendorError(f"Vendor request timed out: {path}") from e
        except httpx.RequestError as e:
            raise VendorError(f"Network error: {e}") from e

        if response.is_error:
            log_event({
                "event_type": "AVATAR_VENDOR_HTTP_ERROR",
                "level": "ERROR",
                "path": path,
                "status": response.status_code,
                "body_preview": response.text[:200],
            })
            raise VendorError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status=response.status_code,
                vendor_message=response.text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise VendorError(
                f"Vendor returned non-JSON response for {path}",
                status=response.status_code,
            ) from e

        if not isinstance(payload, dict):
            raise VendorError(
                f"Vendor returned unexpected payload for {path}",
                status=response.status_code,
            )

        return payload
