# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any, Callable

import pytest

from observability import logger


@pytest.fixture(autouse=True)
def _reset_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    # create_app() reconfigures the module-level logger; keep tests isolated.
    monkeypatch.setattr(logger, "_min_level", logger._LEVELS["DEBUG"])  # pylint: disable=protected-access
    monkeypatch.setattr(logger, "_json_output", True)
    monkeypatch.setattr(logger, "_print", lambda line: None)


@pytest.fixture
def log_lines(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    return captured


@pytest.fixture
def logged(log_lines: list[str]) -> Callable[[], list[dict[str, Any]]]:
    """Returns a function that decodes everything logged so far."""
    return lambda: [json.loads(line) for line in log_lines]
