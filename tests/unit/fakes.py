# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
from typing import Any

from avatar.vendor import VendorAck
from errors import VendorError
from stt.base import EventSink, Recognized, Recognizing, SpeechRecognizer


class ScriptedRecognizer(SpeechRecognizer):
    """
    Emits a growing partial transcript per chunk and one final result
    every `final_every` chunks.
    """

    def __init__(
        self,
        *,
        phrase: str = "你好世界測試",
        final_every: int = 10,
        confidence: float = 0.92,
        fail_start: bool = False,
    ) -> None:
        self.phrase = phrase
        self.final_every = final_every
        self.confidence = confidence
        self.fail_start = fail_start

        self.language: str | None = None
        self.chunks: list[bytes] = []
        self.started = False
        self.stopped = False
        self._emit: EventSink | None = None

    async def start(self, *, language: str, emit: EventSink) -> None:
        if self.fail_start:
            raise VendorError("recognizer refused")
        self.language = language
        self._emit = emit
        self.started = True

    async def send_audio(self, pcm_bytes: bytes) -> None:
        assert self._emit is not None
        self.chunks.append(pcm_bytes)
        n = len(self.chunks) % self.final_every or self.final_every
        if n < self.final_every:
            prefix = self.phrase[: max(1, len(self.phrase) * n // self.final_every)]
            await self._emit(Recognizing(text=prefix, language=self.language or ""))
        else:
            await self._emit(Recognized(
                text=self.phrase,
                language=self.language or "",
                confidence=self.confidence,
            ))

    async def stop(self) -> None:
        self.stopped = True


class FakeSocket:
    """Minimal websockets-like connection for client-side tests."""

    def __init__(self, incoming: list[Any] | None = None) -> None:
        self.sent: list[Any] = []
        self.closed = False
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        for item in incoming or []:
            self._incoming.put_nowait(item)

    def push(self, item: Any) -> None:
        self._incoming.put_nowait(item)

    async def send(self, payload: Any) -> None:
        self.sent.append(payload)

    async def recv(self) -> Any:
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(_CLOSED)

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> Any:
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


_CLOSED = object()


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVendor:
    """Stands in for AvatarVendorClient; records calls, returns scripted acks."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.create_ack = VendorAck(code=100, message="success", data={
            "session_id": "remote-1",
            "url": "wss://livekit.test",
            "access_token": "lk-token",
            "ice_servers": [{"urls": ["stun:stun.test"]}],
            "realtime_endpoint": "wss://realtime.test",
        })
        self.speak_ack = VendorAck(code=100, message="success", data={})
        self.stop_ack = VendorAck(code=100, message="success", data={})
        self.raise_on: dict[str, VendorError] = {}
        # When set, speak() waits on it before acknowledging.
        self.speak_gate: asyncio.Event | None = None
        self.token = "client-token"

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if name in self.raise_on:
            raise self.raise_on[name]

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def create_session(self, *, avatar_id: str, voice_id: str | None) -> VendorAck:
        self._record("create_session", avatar_id=avatar_id, voice_id=voice_id)
        return self.create_ack

    async def speak(self, *, remote_session_id: str, text: str) -> VendorAck:
        self._record("speak", remote_session_id=remote_session_id, text=text)
        if self.speak_gate is not None:
            await self.speak_gate.wait()
        return self.speak_ack

    async def stop(self, *, remote_session_id: str) -> VendorAck:
        self._record("stop", remote_session_id=remote_session_id)
        return self.stop_ack

    async def create_token(self, *, api_key: str) -> str:
        self._record("create_token", api_key=api_key)
        return self.token
