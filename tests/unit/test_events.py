# pylint: disable=missing-module-docstring,missing-function-docstring

import json

import pytest

from protocol.events import (
    AvatarEvent,
    EnvelopeError,
    GatewayResult,
    SttEvent,
    make_message,
    parse_envelope,
)


def test_make_message_uses_wire_names():
    assert make_message(SttEvent.STARTED, {"sessionId": "stt_1"}) == {
        "event": "stt-started",
        "data": {"sessionId": "stt_1"},
    }
    assert make_message(AvatarEvent.STATUS_UPDATE) == {"event": "session-status-update", "data": {}}


def test_parse_envelope_defaults_missing_data():
    envelope = parse_envelope(json.dumps({"event": "stop-stt"}))

    assert envelope.event == "stop-stt"
    assert envelope.data == {}


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        json.dumps(["start-stt"]),
        json.dumps({"data": {}}),
        json.dumps({"event": "start-stt", "data": [1, 2]}),
    ],
)
def test_parse_envelope_rejects_malformed(payload):
    with pytest.raises(EnvelopeError):
        parse_envelope(payload)


def test_gateway_result_preserves_order():
    result = GatewayResult.of(make_message("a"), make_message("b"))

    assert [m["event"] for m in result.outbound_json] == ["a", "b"]
    assert GatewayResult().outbound_json == ()
