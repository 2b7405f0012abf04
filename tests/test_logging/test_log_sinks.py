import json
from datetime import UTC, datetime

import pytest
import structlog

from appwrite_agent.config import Config
from appwrite_agent.logging import (
    ExecutionLog,
    configure_logging,
    emit,
    get_logger,
    set_system_log_sink,
)


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch):
    lines: list[str] = []
    monkeypatch.setattr("appwrite_agent.config._config", Config(logging={"format": "json"}))
    set_system_log_sink(lines.append)
    configure_logging()
    yield lines
    set_system_log_sink(None)
    structlog.reset_defaults()


def test_system_log_sink_receives_rendered_lines(captured: list[str]):
    get_logger("sink-test").info("Tool finished", tool="listDatabases")

    record = json.loads(captured[-1])
    assert record["event"] == "Tool finished"
    assert record["tool"] == "listDatabases"
    assert record["level"] == "info"


def test_execution_log_keeps_entries_and_forwards():
    forwarded: list[str] = []
    sink = ExecutionLog(listener=lambda ts, text: forwarded.append(text))

    emit(sink, "AI session ready.")
    sink(datetime(2026, 1, 1, 9, 30, 5, tzinfo=UTC), "Resetting AI session.")
    emit(None, "dropped")

    assert forwarded == ["AI session ready.", "Resetting AI session."]
    assert sink.lines()[-1] == "[09:30:05] Resetting AI session."
