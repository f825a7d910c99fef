"""
Avatar session container.

- Pure data plus the forward-only status transition guard
- Owned and mutated only by AvatarSessionManager
- Contains no vendor I/O
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from errors import InvalidState


class SessionStatus(str, Enum):
    """
    Lifecycle of one avatar session.

    initializing -> ready -> speaking -> ready ... -> stopped | error
    stopped and error are terminal.
    """

    INITIALIZING = "initializing"
    READY = "ready"
    SPEAKING = "speaking"
    STOPPED = "stopped"
    ERROR = "error"


TERMINAL_STATUSES: frozenset[SessionStatus] = frozenset(
    {SessionStatus.STOPPED, SessionStatus.ERROR}
)

_ALLOWED: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.INITIALIZING: frozenset({SessionStatus.READY, SessionStatus.ERROR, SessionStatus.STOPPED}),
    SessionStatus.READY: frozenset({SessionStatus.SPEAKING, SessionStatus.STOPPED, SessionStatus.ERROR}),
    SessionStatus.SPEAKING: frozenset({SessionStatus.READY, SessionStatus.SPEAKING, SessionStatus.STOPPED, SessionStatus.ERROR}),
    SessionStatus.STOPPED: frozenset(),
    SessionStatus.ERROR: frozenset(),
}

STATUS_MESSAGES: dict[SessionStatus, str] = {
    SessionStatus.INITIALIZING: "Initializing...",
    SessionStatus.READY: "Ready",
    SessionStatus.SPEAKING: "Speaking...",
    SessionStatus.STOPPED: "Stopped",
    SessionStatus.ERROR: "An error occurred",
}


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class RealtimeTransport:
    """Media-room connection parameters returned by the vendor."""
    url: str | None = None
    access_token: str | None = None
    ice_servers: tuple[dict[str, Any], ...] = ()
    realtime_endpoint: str | None = None

    @staticmethod
    def from_vendor(data: dict[str, Any]) -> RealtimeTransport:
        ice = data.get("ice_servers") or data.get("ice_servers2") or []
        return RealtimeTransport(
            url=data.get("url"),
            access_token=data.get("access_token"),
            ice_servers=tuple(s for s in ice if isinstance(s, dict)),
            realtime_endpoint=data.get("realtime_endpoint"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "livekitUrl": self.url,
            "livekitToken": self.access_token,
            "livekitIceServers": list(self.ice_servers),
            "realtimeEndpoint": self.realtime_endpoint,
        }


@dataclass
class AvatarSession:
    """Mutable record for one avatar session."""

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    session_id: str
    avatar_id: str
    token: str
    voice_id: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    status: SessionStatus = SessionStatus.INITIALIZING
    created_at: float = 0.0
    updated_at: float = 0.0
    error: str | None = None

    # ------------------------------------------------------------------
    # Vendor-side
    # ------------------------------------------------------------------

    remote_session_id: str | None = None
    realtime: RealtimeTransport = field(default_factory=RealtimeTransport)

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: SessionStatus, *, now: float) -> None:
        """
        Move to `status`, enforcing the forward-only state machine.

        Raises:
            InvalidState on a backwards or post-terminal transition.
        """
        if status not in _ALLOWED[self.status]:
            raise InvalidState(
                f"Session {self.session_id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        self.updated_at = now

    def fail(self, message: str, *, now: float) -> None:
        """Record an error and move to `error` unless already terminal."""
        self.error = message
        if not self.terminal:
            self.status = SessionStatus.ERROR
        self.updated_at = now

    def bind_remote(self, remote_session_id: str) -> None:
        """Set the vendor session id. Write-once."""
        if self.remote_session_id is not None and self.remote_session_id != remote_session_id:
            raise InvalidState(f"Session {self.session_id} is already bound to a vendor session")
        self.remote_session_id = remote_session_id

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def status_view(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": STATUS_MESSAGES[self.status],
            "error": self.error,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            **self.realtime.to_dict(),
        }

    def summary_view(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "avatarId": self.avatar_id,
            "voiceId": self.voice_id,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
