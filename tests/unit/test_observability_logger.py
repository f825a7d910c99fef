# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

from observability import logger


def test_log_event_emits_valid_jsonl(log_lines: list[str]) -> None:
    """
    - log_event emits exactly one JSONL line
    - payload keys are preserved
    - ts_ms is added when the caller omits it
    """
    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    assert len(log_lines) == 1
    decoded = json.loads(log_lines[0])
    assert decoded["event_type"] == "TEST"
    assert decoded["value"] == 123
    assert isinstance(decoded["ts_ms"], int)


def test_log_event_keeps_caller_timestamp(log_lines: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "ts_ms": 42})

    assert json.loads(log_lines[0])["ts_ms"] == 42


def test_log_event_keeps_non_ascii_text(log_lines: list[str]) -> None:
    logger.log_event({"event_type": "STT_RESULT", "text": "你好世界"})

    assert "你好世界" in log_lines[0]


def test_log_event_never_raises_on_unserializable(log_lines: list[str]) -> None:
    logger.log_event({"event_type": "BAD", "obj": object()})

    decoded = json.loads(log_lines[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert "BAD" in decoded["original_event_repr"]


def test_level_filter_drops_lower_levels(log_lines: list[str]) -> None:
    logger.configure(level="WARNING")

    logger.log_event({"event_type": "QUIET", "level": "DEBUG"})
    logger.log_event({"event_type": "DEFAULT_INFO"})
    logger.log_event({"event_type": "LOUD", "level": "ERROR"})

    assert [json.loads(line)["event_type"] for line in log_lines] == ["LOUD"]


def test_plain_text_output(log_lines: list[str]) -> None:
    logger.configure(level="DEBUG", json_output=False)

    logger.log_event({"event_type": "MIC_STARTED", "capture_rate": 48000.0})

    assert log_lines == ["MIC_STARTED capture_rate=48000.0"]
