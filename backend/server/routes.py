"""
Route registration for the avatar voice bridge.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateways to WebSocket lifecycle
- Pull dependencies from app.state
- Translate AppError into the `{"success": false, "error": ...}` envelope (HTTP 500)
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from avatar.gateway import AvatarGateway
from avatar.manager import AvatarSessionManager
from avatar.transport import IframeTransport
from config import AppConfig
from errors import AppError, VendorError
from observability.logger import log_event
from protocol.events import GatewayResult
from stt.gateway import SttGateway


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------

class CreateSessionBody(BaseModel):
    avatarId: str | None = None
    voiceId: str | None = None


class SpeakBody(BaseModel):
    text: str | None = None


class StreamingTokenBody(BaseModel):
    avatarId: str | None = None


def _error(error: Exception | str, *, session_id: str | None = None) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": str(error)}
    if session_id is None and isinstance(error, VendorError):
        session_id = error.session_id
    if session_id is not None:
        body["sessionId"] = session_id
    return JSONResponse(status_code=500, content=body)


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    config: AppConfig = app.state.config

    def _manager(request: Request) -> AvatarSessionManager:
        return request.app.state.manager

    def _token(api_key: str | None) -> str:
        return api_key or config.auth_bypass_token

    @app.exception_handler(RequestValidationError)
    async def invalid_request(  # pyright: ignore[reportUnusedFunction]
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg', 'invalid')}"
            for err in exc.errors()
        )
        log_event({
            "event_type": "HTTP_INVALID_REQUEST",
            "level": "WARNING",
            "path": request.url.path,
            "error": problems,
        })
        return _error(
            f"Invalid request: {problems}",
            session_id=request.path_params.get("session_id"),
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @app.get("/health")
    async def health() -> dict[str, str]:  # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.post("/session")
    async def create_session(  # pyright: ignore[reportUnusedFunction]
        request: Request,
        body: CreateSessionBody | None = None,
        x_api_key: str | None = Header(default=None),
    ) -> Any:
        body = body or CreateSessionBody()
        avatar_id = body.avatarId or config.default_avatar_id
        voice_id = body.voiceId or config.default_voice_id
        if not avatar_id:
            return _error("avatarId is required")

        try:
            session = await _manager(request).create_session(
                avatar_id=avatar_id,
                voice_id=voice_id,
                token=_token(x_api_key),
            )
        except AppError as e:
            return _error(e)

        return {
            "success": True,
            "sessionId": session.session_id,
            **session.realtime.to_dict(),
            "transport": request.app.state.transport.describe(session),
            "message": "Avatar session created",
        }

    @app.post("/session/{session_id}/speak")
    async def speak(  # pyright: ignore[reportUnusedFunction]
        request: Request,
        session_id: str,
        body: SpeakBody | None = None,
        x_api_key: str | None = Header(default=None),
    ) -> Any:
        text = ((body.text if body else None) or "").strip()
        if not text:
            return _error("text is required", session_id=session_id)

        try:
            await _manager(request).speak(session_id=session_id, text=text, token=_token(x_api_key))
        except AppError as e:
            return _error(e, session_id=session_id)

        return {"success": True, "message": "Speak request sent"}

    @app.post("/session/{session_id}/stop")
    async def stop_session(  # pyright: ignore[reportUnusedFunction]
        request: Request,
        session_id: str,
        x_api_key: str | None = Header(default=None),
    ) -> Any:
        try:
            await _manager(request).stop_session(session_id=session_id, token=_token(x_api_key))
        except AppError as e:
            return _error(e, session_id=session_id)

        return {"success": True, "message": "Session stopped"}

    @app.get("/session/{session_id}")
    async def session_status(  # pyright: ignore[reportUnusedFunction]
        request: Request,
        session_id: str,
        x_api_key: str | None = Header(default=None),
    ) -> Any:
        try:
            view = await _manager(request).get_status(session_id=session_id, token=_token(x_api_key))
        except AppError as e:
            return _error(e, session_id=session_id)

        return {"success": True, "sessionId": session_id, **view}

    @app.get("/sessions")
    async def list_sessions(  # pyright: ignore[reportUnusedFunction]
        request: Request,
        x_api_key: str | None = Header(default=None),
    ) -> Any:
        sessions = _manager(request).list_sessions(_token(x_api_key))
        return {"success": True, "sessions": [s.summary_view() for s in sessions]}

    @app.post("/v1/streaming.create_token")
    async def create_streaming_token(  # pyright: ignore[reportUnusedFunction]
        request: Request,
        body: StreamingTokenBody | None = None,
    ) -> Any:
        if body is None or not body.avatarId:
            return _error("Avatar ID is required")

        try:
            token = await _manager(request).create_streaming_token(body.avatarId)
        except AppError as e:
            return _error(e)

        return {"success": True, "token": token}

    @app.get("/avatar/config")
    async def avatar_config() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        avatars = [
            {"id": row.avatar_id, "name": row.name, "defaultVoiceId": config.default_voice_id}
            for row in config.avatar_credentials
        ]
        if config.default_avatar_id and all(a["id"] != config.default_avatar_id for a in avatars):
            avatars.insert(0, {
                "id": config.default_avatar_id,
                "name": "default",
                "defaultVoiceId": config.default_voice_id,
            })
        return {
            "avatars": avatars,
            "defaultAvatarId": config.default_avatar_id,
            "transport": app.state.transport.name,
        }

    @app.get("/avatar/iframe/{avatar_id}")
    async def avatar_iframe(avatar_id: str) -> HTMLResponse:  # pyright: ignore[reportUnusedFunction]
        name = next((r.name for r in config.avatar_credentials if r.avatar_id == avatar_id), None)
        if name is None and avatar_id == config.default_avatar_id:
            name = "default"
        if name is None:
            return HTMLResponse("<div>Avatar not found</div>", status_code=404)

        transport = app.state.transport
        page = transport if isinstance(transport, IframeTransport) else IframeTransport()
        return HTMLResponse(page.render_html(
            avatar_id=avatar_id,
            name=name,
            voice_id=config.default_voice_id,
        ))

    # ------------------------------------------------------------------
    # WebSocket: STT
    # ------------------------------------------------------------------

    @app.websocket("/stt")
    async def stt_endpoint(ws: WebSocket) -> None:  # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        async def _send(msg: dict[str, Any]) -> None:
            await ws.send_text(json.dumps(msg))

        gateway = SttGateway(
            recognizer_factory=app.state.recognizer_factory,
            send=_send,
            default_language=config.stt_language,
            required_api_key=config.stt_api_key,
        )

        try:
            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.receive":
                    if msg.get("text") is not None:
                        result = await gateway.on_json_message(msg["text"])
                        await _flush_gateway_result(ws, result)

                    elif msg.get("bytes") is not None:
                        result = await gateway.on_binary_message(msg["bytes"])
                        await _flush_gateway_result(ws, result)

                elif msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect()

        except WebSocketDisconnect:
            await gateway.on_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "level": "ERROR",
                "endpoint": "/stt",
                "session_id": gateway.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_disconnect(reason="server_error")

    # ------------------------------------------------------------------
    # WebSocket: avatar
    # ------------------------------------------------------------------

    @app.websocket("/avatar")
    async def avatar_endpoint(ws: WebSocket) -> None:  # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        async def _send(msg: dict[str, Any]) -> None:
            await ws.send_text(json.dumps(msg))

        gateway = AvatarGateway(
            manager=app.state.manager,
            transport=app.state.transport,
            send=_send,
            default_avatar_id=config.default_avatar_id,
            default_voice_id=config.default_voice_id,
            default_token=config.auth_bypass_token,
        )

        try:
            await _flush_gateway_result(ws, await gateway.on_connect())

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.receive":
                    if msg.get("text") is not None:
                        result = await gateway.on_json_message(msg["text"])
                        await _flush_gateway_result(ws, result)

                elif msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect()

        except WebSocketDisconnect:
            await gateway.on_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "level": "ERROR",
                "endpoint": "/avatar",
                "client_id": gateway.client_id,
                "session_id": gateway.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_disconnect(reason="server_error")


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg))
