"""
Avatar session gateway (server side of the /avatar WebSocket).

Responsibilities:
- Tracks the one avatar session a connection owns (and its token)
- Routes inbound envelopes to AvatarSessionManager operations
- Pushes session-status-update every few seconds while a session lives
- Stops the connection's session when the client goes away

NOT responsible for:
- Socket I/O (the route owns the socket; pushes go through `send`)
- Session state (the manager owns it)
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

from avatar.manager import AvatarSessionManager
from avatar.session import SessionStatus
from avatar.transport import AvatarTransport
from constants import (
    AUTH_BYPASS_TOKEN_DEFAULT,
    STATUS_MONITOR_INTERVAL_S,
    STATUS_MONITOR_MAX_S,
)
from errors import AppError, VendorError
from observability.logger import log_event
from protocol.events import (
    AvatarEvent,
    EnvelopeError,
    GatewayResult,
    make_message,
    parse_envelope,
)

_TERMINAL_VALUES = frozenset({SessionStatus.STOPPED.value, SessionStatus.ERROR.value})


class AvatarGateway:
    """One gateway == one /avatar WebSocket connection."""

    def __init__(
        self,
        *,
        manager: AvatarSessionManager,
        transport: AvatarTransport,
        send: Callable[[dict[str, Any]], Awaitable[None]],
        default_avatar_id: str | None = None,
        default_voice_id: str | None = None,
        default_token: str = AUTH_BYPASS_TOKEN_DEFAULT,
        monitor_interval_s: float = STATUS_MONITOR_INTERVAL_S,
        monitor_max_s: float = STATUS_MONITOR_MAX_S,
    ) -> None:
        self._manager = manager
        self._transport = transport
        self._send = send
        self._default_avatar_id = default_avatar_id
        self._default_voice_id = default_voice_id
        self._default_token = default_token
        self._monitor_interval_s = monitor_interval_s
        self._monitor_max_s = monitor_max_s

        self.client_id = uuid4().hex
        self.session_id: str | None = None
        self._token: str | None = None
        self._monitor: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_connect(self) -> GatewayResult:
        log_event({
            "event_type": "AVATAR_WS_CONNECTED",
            "client_id": self.client_id,
        })
        return GatewayResult.of(make_message(AvatarEvent.CONNECTED, {
            "clientId": self.client_id,
            "message": "Avatar WebSocket connected",
        }))

    async def on_disconnect(self, reason: str | None = None) -> None:
        await self._cancel_monitor()

        session_id, token = self.session_id, self._token
        self.session_id = None
        self._token = None

        if session_id is not None and token is not None:
            try:
                await self._manager.stop_session(session_id=session_id, token=token)
            except AppError as e:
                log_event({
                    "event_type": "AVATAR_DISCONNECT_STOP_FAILED",
                    "level": "WARNING",
                    "client_id": self.client_id,
                    "session_id": session_id,
                    "error": str(e),
                })

        log_event({
            "event_type": "AVATAR_WS_DISCONNECTED",
            "client_id": self.client_id,
            "session_id": session_id,
            "reason": reason or "disconnect",
        })

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> GatewayResult:
        try:
            envelope = parse_envelope(payload)
        except EnvelopeError as e:
            log_event({
                "event_type": "AVATAR_ENVELOPE_ERROR",
                "level": "WARNING",
                "client_id": self.client_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        handler = {
            AvatarEvent.CREATE_SESSION.value: self._create_session,
            AvatarEvent.SPEAK.value: self._speak,
            AvatarEvent.STOP_SESSION.value: self._stop_session,
            AvatarEvent.GET_STATUS.value: self._get_status,
            AvatarEvent.PING.value: self._ping,
        }.get(envelope.event)

        if handler is None:
            log_event({
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "level": "WARNING",
                "client_id": self.client_id,
                "msg_type": envelope.event,
            })
            return GatewayResult()

        return await handler(envelope.data)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _create_session(self, data: dict[str, Any]) -> GatewayResult:
        avatar_id = data.get("avatarId") or self._default_avatar_id
        if not avatar_id:
            return GatewayResult.of(make_message(AvatarEvent.SESSION_ERROR, {"error": "avatarId is required"}))

        voice_id = data.get("voiceId") or self._default_voice_id
        token = str(data.get("token") or self._default_token)

        # One session per connection: a new create replaces the old one.
        if self.session_id is not None:
            await self.on_disconnect(reason="replaced")

        try:
            session = await self._manager.create_session(
                avatar_id=str(avatar_id),
                voice_id=str(voice_id) if voice_id else None,
                token=token,
            )
        except VendorError as e:
            return GatewayResult.of(make_message(AvatarEvent.SESSION_ERROR, {
                "error": str(e),
                "sessionId": e.session_id,
            }))
        except AppError as e:
            return GatewayResult.of(make_message(AvatarEvent.SESSION_ERROR, {"error": str(e)}))

        self.session_id = session.session_id
        self._token = token
        self._start_monitor(session.session_id, token)

        return GatewayResult.of(make_message(AvatarEvent.SESSION_CREATED, {
            "sessionId": session.session_id,
            "avatarId": session.avatar_id,
            "status": session.status.value,
            **session.realtime.to_dict(),
            "transport": self._transport.describe(session),
        }))

    async def _speak(self, data: dict[str, Any]) -> GatewayResult:
        text = str(data.get("text") or "").strip()
        if not text:
            return GatewayResult.of(make_message(AvatarEvent.SPEAK_ERROR, {"error": "text is required"}))
        if self.session_id is None or self._token is None:
            return GatewayResult.of(make_message(AvatarEvent.SPEAK_ERROR, {"error": "No active session"}))

        try:
            await self._manager.speak(session_id=self.session_id, text=text, token=self._token)
        except AppError as e:
            return GatewayResult.of(make_message(AvatarEvent.SPEAK_ERROR, {
                "error": str(e),
                "sessionId": self.session_id,
            }))

        return GatewayResult.of(make_message(AvatarEvent.SPEAK_STARTED, {
            "sessionId": self.session_id,
            "text": text,
        }))

    async def _stop_session(self, data: dict[str, Any]) -> GatewayResult:  # pylint: disable=unused-argument
        if self.session_id is None or self._token is None:
            return GatewayResult.of(make_message(AvatarEvent.STOP_ERROR, {"error": "No active session to stop"}))

        session_id = self.session_id
        try:
            await self._manager.stop_session(session_id=session_id, token=self._token)
        except AppError as e:
            return GatewayResult.of(make_message(AvatarEvent.STOP_ERROR, {
                "error": str(e),
                "sessionId": session_id,
            }))

        await self._cancel_monitor()
        self.session_id = None
        self._token = None

        return GatewayResult.of(make_message(AvatarEvent.SESSION_STOPPED, {
            "sessionId": session_id,
            "message": "Session stopped",
        }))

    async def _get_status(self, data: dict[str, Any]) -> GatewayResult:  # pylint: disable=unused-argument
        if self.session_id is None or self._token is None:
            return GatewayResult.of(make_message(AvatarEvent.STATUS_RESPONSE, {
                "hasSession": False,
                "message": "No active session",
            }))

        try:
            view = await self._manager.get_status(session_id=self.session_id, token=self._token)
        except AppError as e:
            return GatewayResult.of(make_message(AvatarEvent.STATUS_ERROR, {"error": str(e)}))

        return GatewayResult.of(make_message(AvatarEvent.STATUS_RESPONSE, {
            "hasSession": True,
            "sessionId": self.session_id,
            **view,
        }))

    async def _ping(self, data: dict[str, Any]) -> GatewayResult:  # pylint: disable=unused-argument
        return GatewayResult.of(make_message(AvatarEvent.PONG, {
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }))

    # ------------------------------------------------------------------
    # Status monitor
    # ------------------------------------------------------------------

    def _start_monitor(self, session_id: str, token: str) -> None:
        self._monitor = asyncio.create_task(self._monitor_loop(session_id, token))

    async def _cancel_monitor(self) -> None:
        task = self._monitor
        self._monitor = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _monitor_loop(self, session_id: str, token: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._monitor_max_s

        while loop.time() < deadline:
            await asyncio.sleep(self._monitor_interval_s)
            if self.session_id != session_id:
                return

            try:
                view = await self._manager.get_status(session_id=session_id, token=token)
                await self._send(make_message(AvatarEvent.STATUS_UPDATE, {
                    "sessionId": session_id,
                    **view,
                }))
            except Exception as e:  # monitor must not take the connection down
                log_event({
                    "event_type": "AVATAR_MONITOR_STOPPED",
                    "level": "WARNING",
                    "client_id": self.client_id,
                    "session_id": session_id,
                    "error": str(e),
                })
                return

            if view["status"] in _TERMINAL_VALUES:
                return
