"""
STT transport client (the capture side of /stt).

Flow:
    client = SttClient("ws://localhost:8000/stt")
    session = await client.start_session(language="zh-TW")   # handshake, 10 s cap
    session.on_result(lambda data: print(data["text"]))
    session.send_audio(pcm16_bytes)                          # any thread, fire-and-forget
    await session.stop()

Invariants:
- No audio is sent before stt-started has been received.
- send_audio() on an inactive session silently drops the chunk.
- Outbound audio is buffered by an unbounded queue; there is no backpressure.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from constants import SEQ_NUM_START, STT_DEFAULT_LANGUAGE, STT_HANDSHAKE_TIMEOUT_S
from errors import HandshakeTimeout, VendorError
from observability.logger import log_event
from protocol.binary import encode_audio_chunk, next_seq
from protocol.events import EnvelopeError, SttEvent, make_message, parse_envelope

Callback = Callable[[dict[str, Any]], None]

_STOP_ACK_TIMEOUT_S = 2.0


class SttSession:
    """An established STT session. Created by SttClient.start_session()."""

    def __init__(
        self,
        *,
        ws: Any,
        session_id: str,
        language: str,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._ws = ws
        self.session_id = session_id
        self.language = language
        self._loop = loop

        self._active = True
        self._seq = SEQ_NUM_START
        self._outbox: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._stopped = asyncio.Event()

        self._result_cb: Callback | None = None
        self._recognizing_cb: Callback | None = None
        self._error_cb: Callable[[str], None] | None = None

        self._writer = loop.create_task(self._write_loop())
        self._reader = loop.create_task(self._read_loop())

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def on_result(self, callback: Callback) -> None:
        self._result_cb = callback

    def on_recognizing(self, callback: Callback) -> None:
        self._recognizing_cb = callback

    def on_error(self, callback: Callable[[str], None]) -> None:
        self._error_cb = callback

    @property
    def active(self) -> bool:
        return self._active

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    def send_audio(self, pcm_bytes: bytes) -> None:
        """Queue one PCM16 chunk. Safe to call from the audio callback thread."""
        if not self._active or not pcm_bytes:
            return
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, pcm_bytes)

    async def _write_loop(self) -> None:
        while True:
            pcm = await self._outbox.get()
            if pcm is None:
                return
            payload = encode_audio_chunk(sequence_num=self._seq, pcm_bytes=pcm)
            self._seq = next_seq(self._seq)
            try:
                await self._ws.send(payload)
            except ConnectionClosed:
                self._active = False
                return

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                if not isinstance(raw, str):
                    continue
                try:
                    envelope = parse_envelope(raw)
                except EnvelopeError:
                    continue
                self._dispatch(envelope.event, envelope.data)
        except ConnectionClosed:
            pass
        finally:
            self._active = False
            self._stopped.set()

    def _dispatch(self, event: str, data: dict[str, Any]) -> None:
        if event == SttEvent.RECOGNIZING.value:
            if self._recognizing_cb is not None:
                self._recognizing_cb(data)
        elif event == SttEvent.RESULT.value:
            if self._result_cb is not None:
                self._result_cb(data)
        elif event == SttEvent.ERROR.value:
            log_event({
                "event_type": "STT_CLIENT_ERROR",
                "level": "WARNING",
                "session_id": self.session_id,
                "error": data.get("error"),
            })
            if self._error_cb is not None:
                self._error_cb(str(data.get("error", "")))
        elif event == SttEvent.STOPPED.value:
            self._active = False
            self._stopped.set()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Flush queued audio, end the session and close the socket. Idempotent."""
        if self._writer.done() and self._reader.done():
            return

        was_active = self._active
        self._active = False

        # Behind any chunks still scheduled by send_audio().
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, None)
        await asyncio.gather(self._writer, return_exceptions=True)

        if was_active:
            try:
                await self._ws.send(json.dumps(make_message(SttEvent.STOP)))
                await asyncio.wait_for(self._stopped.wait(), _STOP_ACK_TIMEOUT_S)
            except (ConnectionClosed, asyncio.TimeoutError):
                pass

        await self._ws.close()
        self._reader.cancel()
        await asyncio.gather(self._reader, return_exceptions=True)


class SttClient:
    """Opens STT sessions against the /stt endpoint."""

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        connect: Callable[..., Any] = ws_connect,
        handshake_timeout_s: float = STT_HANDSHAKE_TIMEOUT_S,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._connect = connect
        self._handshake_timeout_s = handshake_timeout_s

    async def start_session(self, language: str = STT_DEFAULT_LANGUAGE) -> SttSession:
        """
        Connect and complete the start-stt handshake.

        Raises:
            HandshakeTimeout if stt-started does not arrive in time.
            VendorError if the server answers with stt-error.
        """
        ws = await self._connect(self._url)
        try:
            session_id = await asyncio.wait_for(
                self._handshake(ws, language),
                self._handshake_timeout_s,
            )
        except asyncio.TimeoutError as e:
            await ws.close()
            raise HandshakeTimeout(
                f"STT session not established within {self._handshake_timeout_s}s"
            ) from e
        except (VendorError, ConnectionClosed):
            await ws.close()
            raise

        log_event({
            "event_type": "STT_CLIENT_SESSION_STARTED",
            "session_id": session_id,
            "language": language,
        })

        return SttSession(
            ws=ws,
            session_id=session_id,
            language=language,
            loop=asyncio.get_running_loop(),
        )

    async def _handshake(self, ws: Any, language: str) -> str:
        await ws.send(json.dumps(make_message(SttEvent.START, {
            "language": language,
            "apiKey": self._api_key,
        })))

        while True:
            raw = await ws.recv()
            if not isinstance(raw, str):
                continue
            try:
                envelope = parse_envelope(raw)
            except EnvelopeError:
                continue

            if envelope.event == SttEvent.STARTED.value:
                return str(envelope.data.get("sessionId", ""))
            if envelope.event == SttEvent.ERROR.value:
                raise VendorError(str(envelope.data.get("error", "STT session failed")))
