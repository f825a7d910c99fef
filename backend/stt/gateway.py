"""
STT session gateway (server side of the /stt WebSocket).

Responsibilities:
- Owns at most one recognizer per connection
- Routes inbound envelopes (start-stt / stop-stt) to recognizer lifecycle
- Routes inbound binary audio chunks to the recognizer
- Detects sequence gaps and logs them
- Relays recognizer events to the client as stt-* envelopes

NOT responsible for:
- Socket I/O (the route owns the socket; pushes go through `send`)
- Recognition itself
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable
from uuid import uuid4

from audio.pcm import peak_level
from errors import AppError
from observability.logger import log_event, now_ms
from protocol.binary import (
    BinaryProtocolError,
    check_sequence_gap,
    decode_audio_chunk,
)
from protocol.events import (
    EnvelopeError,
    GatewayResult,
    SttEvent,
    make_message,
    parse_envelope,
)
from stt.base import (
    RecognizerEvent,
    RecognizerFactory,
    Recognized,
    RecognizerFailed,
    Recognizing,
    SpeechRecognizer,
)


def _new_stt_session_id() -> str:
    return f"stt_{uuid4().hex[:12]}"


class SttGateway:
    """One gateway == one /stt WebSocket connection."""

    def __init__(
        self,
        *,
        recognizer_factory: RecognizerFactory,
        send: Callable[[dict[str, Any]], Awaitable[None]],
        default_language: str,
        required_api_key: str | None = None,
    ) -> None:
        self._recognizer_factory = recognizer_factory
        self._send = send
        self._default_language = default_language
        self._required_api_key = required_api_key

        self.session_id: str | None = None
        self._recognizer: SpeechRecognizer | None = None
        self._language = default_language
        self._last_seq: int | None = None
        self._chunks = 0

    @property
    def active(self) -> bool:
        return self._recognizer is not None

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> GatewayResult:
        try:
            envelope = parse_envelope(payload)
        except EnvelopeError as e:
            log_event({
                "event_type": "STT_ENVELOPE_ERROR",
                "level": "WARNING",
                "session_id": self.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult.of(make_message(SttEvent.ERROR, {"error": str(e)}))

        if envelope.event == SttEvent.START.value:
            return await self._start(envelope.data)

        if envelope.event == SttEvent.STOP.value:
            await self._end_session(reason="client_stop")
            return GatewayResult.of(make_message(SttEvent.STOPPED))

        log_event({
            "event_type": "UNKNOWN_MESSAGE_TYPE",
            "level": "WARNING",
            "session_id": self.session_id,
            "msg_type": envelope.event,
        })
        return GatewayResult()

    async def on_binary_message(self, payload: bytes) -> GatewayResult:
        recognizer = self._recognizer
        if recognizer is None:
            return GatewayResult.of(
                make_message(SttEvent.ERROR, {"error": "No active STT session"})
            )

        try:
            frame = decode_audio_chunk(payload, ts_ms=now_ms())
        except BinaryProtocolError as e:
            log_event({
                "event_type": "BINARY_DECODE_ERROR",
                "level": "WARNING",
                "session_id": self.session_id,
                "error": str(e),
                "payload_len": len(payload),
            })
            return GatewayResult.of(make_message(SttEvent.ERROR, {"error": str(e)}))

        gap = check_sequence_gap(last_seq=self._last_seq, current_seq=frame.sequence_num)
        if gap.gap:
            log_event({
                "event_type": "SEQ_GAP_DETECTED",
                "level": "WARNING",
                "session_id": self.session_id,
                "expected": gap.expected,
                "actual": gap.actual,
                "gap_size": gap.gap_size,
            })
        self._last_seq = frame.sequence_num
        self._chunks += 1

        if self._chunks % 50 == 1:
            log_event({
                "event_type": "STT_AUDIO_RECEIVED",
                "level": "DEBUG",
                "session_id": self.session_id,
                "seq_num": frame.sequence_num,
                "samples": frame.sample_count,
                "peak": round(peak_level(frame.pcm_bytes), 4),
            })

        try:
            await recognizer.send_audio(frame.pcm_bytes)
        except AppError as e:
            return GatewayResult.of(make_message(SttEvent.ERROR, {"error": str(e)}))

        return GatewayResult()

    async def on_disconnect(self, reason: str | None = None) -> None:
        await self._end_session(reason=reason or "disconnect")

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _start(self, data: dict[str, Any]) -> GatewayResult:
        if self._required_api_key and data.get("apiKey") != self._required_api_key:
            return GatewayResult.of(make_message(SttEvent.ERROR, {"error": "Invalid API Key"}))

        # A new start replaces any previous session on this connection.
        await self._end_session(reason="restart")

        language = str(data.get("language") or self._default_language)
        session_id = _new_stt_session_id()

        try:
            recognizer = self._recognizer_factory()
            await recognizer.start(language=language, emit=self._on_recognizer_event)
        except AppError as e:
            log_event({
                "event_type": "STT_SESSION_START_FAILED",
                "level": "ERROR",
                "session_id": session_id,
                "error": str(e),
            })
            return GatewayResult.of(make_message(SttEvent.ERROR, {"error": str(e)}))

        self.session_id = session_id
        self._recognizer = recognizer
        self._language = language
        self._last_seq = None
        self._chunks = 0

        log_event({
            "event_type": "STT_SESSION_STARTED",
            "session_id": session_id,
            "language": language,
        })

        return GatewayResult.of(make_message(SttEvent.STARTED, {"sessionId": session_id}))

    async def _end_session(self, *, reason: str) -> None:
        recognizer = self._recognizer
        if recognizer is None:
            return

        self._recognizer = None
        try:
            await recognizer.stop()
        except AppError as e:
            log_event({
                "event_type": "STT_SESSION_STOP_ERROR",
                "level": "WARNING",
                "session_id": self.session_id,
                "error": str(e),
            })

        log_event({
            "event_type": "STT_SESSION_ENDED",
            "session_id": self.session_id,
            "reason": reason,
            "chunks": self._chunks,
        })

    # ------------------------------------------------------------------
    # Recognizer → client
    # ------------------------------------------------------------------

    async def _on_recognizer_event(self, event: RecognizerEvent) -> None:
        if isinstance(event, Recognizing):
            await self._send(make_message(SttEvent.RECOGNIZING, {
                "text": event.text,
                "confidence": 0,
                "language": event.language or self._language,
            }))
        elif isinstance(event, Recognized):
            await self._send(make_message(SttEvent.RESULT, {
                "text": event.text,
                "confidence": event.confidence,
                "language": event.language or self._language,
            }))
        elif isinstance(event, RecognizerFailed):
            await self._send(make_message(SttEvent.ERROR, {"error": event.message}))
            await self._end_session(reason="recognizer_failed")
