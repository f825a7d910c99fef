# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any

import pytest

from errors import HandshakeTimeout, VendorError
from fakes import FakeSocket
from stt.client import SttClient


class ServerSocket(FakeSocket):
    """Acknowledges start-stt / stop-stt like the /stt endpoint does."""

    def __init__(self, *, start_reply: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.start_reply = start_reply

    async def send(self, payload: Any) -> None:
        await super().send(payload)
        if not isinstance(payload, str):
            return
        event = json.loads(payload)["event"]
        if event == "start-stt" and self.start_reply is not None:
            self.push(json.dumps(self.start_reply))
        elif event == "stop-stt":
            self.push(json.dumps({"event": "stt-stopped", "data": {}}))


def _client(ws: FakeSocket, **kwargs: Any) -> SttClient:
    async def connect(url: str) -> FakeSocket:
        assert url == "ws://test/stt"
        return ws

    return SttClient("ws://test/stt", connect=connect, **kwargs)


STARTED = {"event": "stt-started", "data": {"sessionId": "stt_abc"}}


def test_handshake_sends_start_and_returns_session():
    async def scenario() -> None:
        ws = ServerSocket(start_reply=STARTED)

        session = await _client(ws, api_key="k").start_session(language="zh-TW")

        assert json.loads(ws.sent[0]) == {"event": "start-stt", "data": {"language": "zh-TW", "apiKey": "k"}}
        assert session.session_id == "stt_abc"
        assert session.active
        await session.stop()

    asyncio.run(scenario())


def test_audio_is_framed_with_sequence_numbers_from_one():
    async def scenario() -> None:
        ws = ServerSocket(start_reply=STARTED)
        session = await _client(ws).start_session()

        session.send_audio(b"\x01\x00")
        session.send_audio(b"\x02\x00")
        await session.stop()

        chunks = [p for p in ws.sent if isinstance(p, bytes)]
        assert chunks == [b"\x01\x00\x00\x00\x01\x00", b"\x02\x00\x00\x00\x02\x00"]

        # stop-stt is sent after the queued audio
        texts = [json.loads(p)["event"] for p in ws.sent if isinstance(p, str)]
        assert texts == ["start-stt", "stop-stt"]
        assert ws.closed

    asyncio.run(scenario())


def test_send_audio_after_stop_is_dropped():
    async def scenario() -> None:
        ws = ServerSocket(start_reply=STARTED)
        session = await _client(ws).start_session()
        await session.stop()
        await session.stop()

        session.send_audio(b"\x01\x00")
        await asyncio.sleep(0.01)

        assert not session.active
        assert not [p for p in ws.sent if isinstance(p, bytes)]

    asyncio.run(scenario())


def test_callbacks_receive_partials_and_results():
    async def scenario() -> None:
        ws = ServerSocket(start_reply=STARTED)
        session = await _client(ws).start_session()
        partials: list[str] = []
        finals: list[dict[str, Any]] = []
        errors: list[str] = []
        session.on_recognizing(lambda d: partials.append(d["text"]))
        session.on_result(finals.append)
        session.on_error(errors.append)

        ws.push(json.dumps({"event": "stt-recognizing", "data": {"text": "你好", "confidence": 0}}))
        ws.push(json.dumps({"event": "stt-result", "data": {"text": "你好世界", "confidence": 0.9}}))
        ws.push(json.dumps({"event": "stt-error", "data": {"error": "hiccup"}}))
        await asyncio.sleep(0.01)

        assert partials == ["你好"]
        assert finals == [{"text": "你好世界", "confidence": 0.9}]
        assert errors == ["hiccup"]
        await session.stop()

    asyncio.run(scenario())


def test_handshake_timeout_closes_socket():
    async def scenario() -> None:
        ws = ServerSocket(start_reply=None)

        with pytest.raises(HandshakeTimeout):
            await _client(ws, handshake_timeout_s=0.05).start_session()

        assert ws.closed

    asyncio.run(scenario())


def test_handshake_error_raises_vendor_error():
    async def scenario() -> None:
        ws = ServerSocket(start_reply={"event": "stt-error", "data": {"error": "Invalid API Key"}})

        with pytest.raises(VendorError, match="Invalid API Key"):
            await _client(ws).start_session()

        assert ws.closed

    asyncio.run(scenario())
