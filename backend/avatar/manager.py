"""
Avatar session manager.

Owns the session table (session_id -> AvatarSession) and every transition of it.

Responsibilities:
- Drive the vendor REST client for create / speak / stop / token
- Enforce the per-session token check (with the bypass value)
- Run the speaking -> ready settle timer and the post-stop retention timer
- Sweep idle sessions

Concurrency:
- Single event loop, cooperative scheduling; no locks
- Timer tasks are keyed "<kind>:<session_id>" and replaced on reschedule
- shutdown() cancels every timer and waits for them
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable
from uuid import uuid4

from avatar.credentials import CredentialTable
from avatar.session import AvatarSession, RealtimeTransport, SessionStatus
from avatar.vendor import AvatarVendorClient
from constants import (
    AUTH_BYPASS_TOKEN_DEFAULT,
    SESSION_IDLE_TIMEOUT_S,
    SPEAK_SETTLE_DELAY_S,
    STOPPED_SESSION_RETENTION_S,
)
from errors import AppError, InvalidState, NotFound, Unauthorized, VendorError
from observability.logger import log_event


class AvatarSessionManager:
    """Single owner of avatar session state."""

    def __init__(
        self,
        *,
        vendor: AvatarVendorClient,
        credentials: CredentialTable,
        bypass_token: str = AUTH_BYPASS_TOKEN_DEFAULT,
        settle_delay_s: float = SPEAK_SETTLE_DELAY_S,
        retention_s: float = STOPPED_SESSION_RETENTION_S,
        idle_timeout_s: float = SESSION_IDLE_TIMEOUT_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._vendor = vendor
        self._credentials = credentials
        self._bypass_token = bypass_token
        self._settle_delay_s = settle_delay_s
        self._retention_s = retention_s
        self._idle_timeout_s = idle_timeout_s
        self._clock = clock

        self._sessions: dict[str, AvatarSession] = {}
        self._timers: dict[str, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_session(
        self,
        *,
        avatar_id: str,
        voice_id: str | None,
        token: str,
    ) -> AvatarSession:
        """
        Start a vendor streaming session.

        The local record is stored before the vendor call so a failure stays
        visible (status `error`) until it is swept.

        Raises:
            VendorError (with session_id) on transport failure or a non-success code.
        """
        now = self._clock()
        session = AvatarSession(
            session_id=str(uuid4()),
            avatar_id=avatar_id,
            voice_id=voice_id,
            token=token,
            created_at=now,
            updated_at=now,
        )
        self._sessions[session.session_id] = session

        log_event({
            "event_type": "AVATAR_SESSION_CREATING",
            "session_id": session.session_id,
            "avatar_id": avatar_id,
            "voice_id": voice_id,
        })

        try:
            ack = await self._vendor.create_session(avatar_id=avatar_id, voice_id=voice_id)
        except VendorError as e:
            raise self._record_failure(session, e) from e

        remote_id = ack.data.get("session_id")
        if not ack.ok or not remote_id:
            raise self._record_failure(
                session,
                VendorError(
                    f"API request failed: {ack.message or 'missing session_id'}",
                    vendor_message=ack.message,
                ),
            )

        session.bind_remote(str(remote_id))
        session.realtime = RealtimeTransport.from_vendor(ack.data)

        if session.terminal:
            # Stopped while the vendor call was in flight.
            await self._release_remote(session)
            return session

        session.transition(SessionStatus.READY, now=self._clock())

        log_event({
            "event_type": "AVATAR_SESSION_READY",
            "session_id": session.session_id,
            "remote_session_id": session.remote_session_id,
            "has_realtime_url": session.realtime.url is not None,
        })

        return session

    async def speak(self, *, session_id: str, text: str, token: str) -> AvatarSession:
        """
        Send text for the avatar to repeat verbatim.

        Raises:
            NotFound, Unauthorized
            InvalidState if the session is not ready/speaking (no vendor call made)
            VendorError (session moves to `error`)
        """
        session = self._authorized(session_id, token)

        if session.status not in (SessionStatus.READY, SessionStatus.SPEAKING) or not session.remote_session_id:
            raise InvalidState(f"Session is not ready (status: {session.status.value})")

        # Speaking while the request is outstanding; the sweep skips it and
        # a pending settle must not revert it mid-call.
        session.transition(SessionStatus.SPEAKING, now=self._clock())
        self._cancel_timer(f"settle:{session_id}")

        try:
            ack = await self._vendor.speak(remote_session_id=session.remote_session_id, text=text)
        except VendorError as e:
            raise self._record_failure(session, e) from e

        if not ack.ok:
            raise self._record_failure(
                session,
                VendorError(f"API request failed: {ack.message}", vendor_message=ack.message),
            )

        # A concurrent stop wins over the speak acknowledgement.
        if session.terminal:
            return session

        self._start_timer(f"settle:{session_id}", self._settle_delay_s, lambda: self._settle(session_id))

        log_event({
            "event_type": "AVATAR_SPEAK_STARTED",
            "session_id": session_id,
            "text_len": len(text),
        })

        return session

    async def stop_session(self, *, session_id: str, token: str) -> AvatarSession:
        """
        Stop the vendor session and schedule local removal.

        Stopping a stopped session is a no-op. A session in `error` keeps its
        status; its vendor session is released best-effort.

        Raises:
            NotFound, Unauthorized
            VendorError on transport failure (session moves to `error`)
        """
        session = self._authorized(session_id, token)

        if session.status is SessionStatus.STOPPED:
            return session

        self._cancel_timer(f"settle:{session_id}")

        if session.status is SessionStatus.ERROR:
            await self._release_remote(session)
            self._schedule_removal(session_id)
            return session

        if session.remote_session_id:
            try:
                ack = await self._vendor.stop(remote_session_id=session.remote_session_id)
            except VendorError as e:
                raise self._record_failure(session, e) from e

            if not ack.ok:
                log_event({
                    "event_type": "AVATAR_STOP_NON_SUCCESS",
                    "level": "WARNING",
                    "session_id": session_id,
                    "code": ack.code,
                    "message": ack.message,
                })

        if not session.terminal:
            session.transition(SessionStatus.STOPPED, now=self._clock())
        self._schedule_removal(session_id)

        log_event({
            "event_type": "AVATAR_SESSION_STOPPED",
            "session_id": session_id,
            "status": session.status.value,
        })

        return session

    async def get_status(self, *, session_id: str, token: str) -> dict[str, Any]:
        """Raises: NotFound, Unauthorized."""
        return self._authorized(session_id, token).status_view()

    def list_sessions(self, token: str) -> list[AvatarSession]:
        return [s for s in self._sessions.values() if s.token == token]

    async def cleanup_expired(self) -> list[str]:
        """
        Stop sessions idle longer than the idle timeout.

        Speaking sessions are skipped. Per-session failures are logged and
        the sweep continues.

        Returns:
            Ids of the sessions that were swept.
        """
        now = self._clock()
        swept: list[str] = []

        for session in list(self._sessions.values()):
            if session.status is SessionStatus.SPEAKING:
                continue
            if now - session.updated_at <= self._idle_timeout_s:
                continue

            if session.status is SessionStatus.STOPPED:
                self._remove(session.session_id)
                swept.append(session.session_id)
                continue

            try:
                await self.stop_session(session_id=session.session_id, token=session.token)
            except AppError as e:
                log_event({
                    "event_type": "AVATAR_SWEEP_STOP_FAILED",
                    "level": "WARNING",
                    "session_id": session.session_id,
                    "error": str(e),
                })
                continue
            swept.append(session.session_id)

        if swept:
            log_event({
                "event_type": "AVATAR_SESSIONS_SWEPT",
                "count": len(swept),
                "session_ids": swept,
            })

        return swept

    async def create_streaming_token(self, avatar_id: str) -> str:
        """
        Mint a client streaming token with the avatar's own API key.

        Raises:
            ConfigurationError if the avatar is not mapped or its key is unset.
            VendorError on vendor failure.
        """
        row, api_key = self._credentials.resolve_api_key(avatar_id)
        token = await self._vendor.create_token(api_key=api_key)

        log_event({
            "event_type": "AVATAR_STREAMING_TOKEN_CREATED",
            "avatar_id": avatar_id,
            "avatar_name": row.name,
        })

        return token

    async def shutdown(self) -> None:
        """Cancel all settle/retention timers and wait for them."""
        tasks = list(self._timers.values())
        for key in list(self._timers.keys()):
            self._cancel_timer(key)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Lookup / authorization
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> AvatarSession | None:
        return self._sessions.get(session_id)

    def _authorized(self, session_id: str, token: str) -> AvatarSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound(f"Session not found: {session_id}")

        if self._bypass_token in (token, session.token):
            return session
        if token != session.token:
            raise Unauthorized("Unauthorized access to session")
        return session

    # ------------------------------------------------------------------
    # Failure bookkeeping
    # ------------------------------------------------------------------

    def _record_failure(self, session: AvatarSession, error: VendorError) -> VendorError:
        session.fail(str(error), now=self._clock())
        self._cancel_timer(f"settle:{session.session_id}")

        log_event({
            "event_type": "AVATAR_VENDOR_FAILURE",
            "level": "ERROR",
            "session_id": session.session_id,
            "status": error.status,
            "error": str(error),
        })

        return VendorError(
            str(error),
            status=error.status,
            vendor_message=error.vendor_message,
            session_id=session.session_id,
        )

    async def _release_remote(self, session: AvatarSession) -> None:
        if not session.remote_session_id:
            return
        try:
            await self._vendor.stop(remote_session_id=session.remote_session_id)
        except VendorError as e:
            log_event({
                "event_type": "AVATAR_RELEASE_FAILED",
                "level": "WARNING",
                "session_id": session.session_id,
                "error": str(e),
            })

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def _settle(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.SPEAKING:
            return
        session.transition(SessionStatus.READY, now=self._clock())
        log_event({
            "event_type": "AVATAR_SPEAK_SETTLED",
            "session_id": session_id,
        })

    async def _expire(self, session_id: str) -> None:
        self._remove(session_id)
        log_event({
            "event_type": "AVATAR_SESSION_REMOVED",
            "session_id": session_id,
        })

    def _schedule_removal(self, session_id: str) -> None:
        self._start_timer(f"remove:{session_id}", self._retention_s, lambda: self._expire(session_id))

    def _remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._cancel_timer(f"settle:{session_id}")
        removal = self._timers.get(f"remove:{session_id}")
        if removal is not asyncio.current_task():
            self._cancel_timer(f"remove:{session_id}")

    def _start_timer(self, key: str, delay_s: float, action: Callable[[], Awaitable[None]]) -> None:
        """Start or replace a timer that runs `action` after `delay_s`."""
        self._cancel_timer(key)

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(delay_s)
                await action()
            except asyncio.CancelledError:
                return
            finally:
                if self._timers.get(key) is task:
                    del self._timers[key]

        task = asyncio.create_task(_timer_task())
        self._timers[key] = task

    def _cancel_timer(self, key: str) -> None:
        """Idempotent: safe to call even if the timer doesn't exist."""
        task = self._timers.pop(key, None)
        if task is not None and not task.done():
            task.cancel()
