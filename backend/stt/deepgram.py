"""
Deepgram live-transcription recognizer.

Core model:
- One Deepgram WebSocket per STT session, opened by start() and closed by stop().
- Audio is forwarded as raw linear16 @ 16 kHz mono.
- Interim results become Recognizing events; is_final results become
  Recognized events carrying Deepgram's confidence.

Design constraints:
- No reconnection: a dropped socket emits RecognizerFailed and the client
  decides whether to start a new session.
- No retries of the initial connect: start() raises VendorError.
"""

from __future__ import annotations

import asyncio
import json
import urllib.parse
from typing import Any, Callable

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from constants import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    STT_MIN_PARTIAL_EMIT_INTERVAL_MS,
)
from errors import VendorError
from observability.logger import log_event, now_ms
from observability.metrics import timed
from stt.base import (
    EventSink,
    Recognized,
    RecognizerFailed,
    Recognizing,
    SpeechRecognizer,
)

DEEPGRAM_LISTEN_URL = "wss://api.deepgram.com/v1/listen"


class DeepgramRecognizer(SpeechRecognizer):
    """
    Streaming recognizer backed by Deepgram's /v1/listen WebSocket.

    `connect` is injectable so tests can substitute a fake socket.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "nova-2",
        punctuate: bool = True,
        connect: Callable[..., Any] = ws_connect,
        url: str = DEEPGRAM_LISTEN_URL,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._punctuate = punctuate
        self._connect = connect
        self._url = url

        self._ws: Any = None
        self._recv_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

        self._emit: EventSink | None = None
        self._language = ""
        self._closing = False

        self._last_partial_text = ""
        self._last_partial_emit_ts_ms = 0

    # -------------------------------------------------------------------------
    # SpeechRecognizer contract
    # -------------------------------------------------------------------------

    async def start(self, *, language: str, emit: EventSink) -> None:
        async with self._lock:
            if self._ws is not None:
                return

            self._emit = emit
            self._language = language
            self._closing = False

            url = self._build_url(language)
            headers = {"Authorization": f"Token {self._api_key}"}

            try:
                with timed("deepgram_connect", details={"language": language}):
                    self._ws = await self._connect(
                        url,
                        additional_headers=headers,
                        max_size=2**22,
                        ping_interval=None,
                    )
            except (OSError, WebSocketException) as e:
                self._ws = None
                raise VendorError(
                    f"Deepgram connection failed: {e}",
                    status=getattr(getattr(e, "response", None), "status_code", None),
                ) from e

            self._recv_task = asyncio.create_task(self._recv_loop(self._ws))

    async def send_audio(self, pcm_bytes: bytes) -> None:
        ws = self._ws
        if ws is None or self._closing:
            return

        try:
            await ws.send(pcm_bytes)
        except (ConnectionClosed, OSError) as e:
            await self._fail(f"deepgram_send_failed: {e!r}")

    async def stop(self) -> None:
        async with self._lock:
            if self._ws is None:
                return
            self._closing = True
            ws = self._ws

            try:
                # Ask Deepgram to flush pending finals before closing.
                await ws.send(json.dumps({"type": "CloseStream"}))
            except (ConnectionClosed, OSError):
                pass

            await self._drop_connection_locked()

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _build_url(self, language: str) -> str:
        params: dict[str, str] = {
            "model": self._model,
            "language": language,
            "encoding": "linear16",
            "sample_rate": str(AUDIO_SAMPLE_RATE_HZ),
            "channels": str(AUDIO_CHANNELS),
            "interim_results": "true",
            "punctuate": "true" if self._punctuate else "false",
        }
        return f"{self._url}?{urllib.parse.urlencode(params)}"

    async def _drop_connection_locked(self) -> None:
        ws = self._ws
        self._ws = None

        task = self._recv_task
        self._recv_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        if ws is not None:
            try:
                await ws.close()
            except (ConnectionClosed, OSError):
                pass

    async def _fail(self, reason: str) -> None:
        if self._closing:
            return
        log_event({
            "event_type": "STT_RECOGNIZER_FAILED",
            "level": "ERROR",
            "reason": reason,
        })
        self._closing = True
        if self._emit is not None:
            await self._emit(RecognizerFailed(message=reason))

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except (TypeError, json.JSONDecodeError):
                    log_event({
                        "event_type": "STT_VENDOR_MESSAGE_UNPARSEABLE",
                        "level": "WARNING",
                    })
                    continue

                await self._handle_message(data)
            return
        except asyncio.CancelledError:
            return
        except ConnectionClosed as e:
            reason = f"deepgram_connection_closed: {e!r}"
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "STT_VENDOR_RECV_LOOP_ERROR",
                "level": "ERROR",
                "exception": type(e).__name__,
                "message": str(e),
            })
            reason = f"deepgram_recv_error: {e!r}"

        try:
            await self._fail(reason)
        except Exception as e:  # pylint: disable=broad-exception-caught
            # Nobody awaits this task; the client side is usually already gone.
            log_event({
                "event_type": "STT_RECOGNIZER_FAILURE_UNDELIVERED",
                "level": "WARNING",
                "exception": type(e).__name__,
                "message": str(e),
            })

    async def _handle_message(self, data: dict[str, Any]) -> None:
        if self._emit is None:
            return

        msg_type = data.get("type")

        if msg_type == "Error":
            await self._fail(
                f"deepgram_error: {data.get('err_code') or data.get('code')} "
                f"{data.get('err_msg') or data.get('description')}"
            )
            return

        if msg_type != "Results":
            return

        alternatives = (data.get("channel") or {}).get("alternatives") or []
        if not alternatives:
            return

        best = alternatives[0]
        transcript = str(best.get("transcript") or "").strip()
        if not transcript:
            return

        if data.get("is_final"):
            self._last_partial_text = ""
            confidence = float(best.get("confidence") or 0.0)
            await self._emit(
                Recognized(
                    text=transcript,
                    language=self._language,
                    confidence=min(max(confidence, 0.0), 1.0),
                )
            )
            return

        ts = now_ms()
        if transcript == self._last_partial_text:
            return
        if (ts - self._last_partial_emit_ts_ms) < STT_MIN_PARTIAL_EMIT_INTERVAL_MS:
            return
        self._last_partial_text = transcript
        self._last_partial_emit_ts_ms = ts

        await self._emit(Recognizing(text=transcript, language=self._language))
