"""
WebSocket event names and the JSON envelope shared by both surfaces.

Every text frame is:

    {"event": "<name>", "data": {...}}

Binary frames carry audio only (see protocol.binary).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SttEvent(str, Enum):
    """STT transport events (/stt)."""

    # client → server
    START = "start-stt"
    STOP = "stop-stt"

    # server → client
    STARTED = "stt-started"
    RECOGNIZING = "stt-recognizing"
    RESULT = "stt-result"
    ERROR = "stt-error"
    STOPPED = "stt-stopped"


class AvatarEvent(str, Enum):
    """Avatar session events (/avatar)."""

    # client → server
    CREATE_SESSION = "create-session"
    SPEAK = "speak"
    STOP_SESSION = "stop-session"
    GET_STATUS = "get-status"
    PING = "ping"

    # server → client
    CONNECTED = "connected"
    SESSION_CREATED = "session-created"
    SESSION_ERROR = "session-error"
    SPEAK_STARTED = "speak-started"
    SPEAK_ERROR = "speak-error"
    SESSION_STOPPED = "session-stopped"
    STOP_ERROR = "stop-error"
    STATUS_RESPONSE = "status-response"
    STATUS_ERROR = "status-error"
    STATUS_UPDATE = "session-status-update"
    PONG = "pong"


class EnvelopeError(ValueError):
    """Inbound text frame is not a valid envelope."""


@dataclass(frozen=True)
class Envelope:
    event: str
    data: dict[str, Any] = field(default_factory=dict)


def make_message(event: SttEvent | AvatarEvent | str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build an outbound envelope dict."""
    name = event.value if isinstance(event, Enum) else event
    return {"event": name, "data": data or {}}


def parse_envelope(payload: str) -> Envelope:
    """
    Parse an inbound text frame.

    Raises:
        EnvelopeError if the frame is not JSON or lacks an event name.
    """
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as e:
        raise EnvelopeError(f"invalid JSON: {e}") from e

    if not isinstance(raw, dict) or not isinstance(raw.get("event"), str):
        raise EnvelopeError("missing event name")

    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise EnvelopeError("data must be an object")

    return Envelope(event=raw["event"], data=data)


@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        Envelopes to send to the client, in order.
    """
    outbound_json: tuple[dict[str, Any], ...] = ()

    @staticmethod
    def of(*messages: dict[str, Any]) -> GatewayResult:
        return GatewayResult(outbound_json=tuple(messages))
