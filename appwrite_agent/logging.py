"""Logging configuration for the Appwrite agent."""

import logging
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable

import structlog

from appwrite_agent.config import get_config

_system_log_sink: Callable[[str], None] | None = None

LogSink = Callable[[datetime, str], None]


class _SinkWriter:
    """File-like sink for structlog that forwards lines to a callback."""

    def __init__(self, sink: Callable[[str], None]):
        self._sink = sink
        self._buffer = ""

    def write(self, text: str) -> int:
        self._buffer += text
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            if line:
                self._sink(line)
        return len(text)

    def flush(self) -> None:
        if self._buffer:
            self._sink(self._buffer)
            self._buffer = ""


def set_system_log_sink(sink: Callable[[str], None] | None) -> None:
    """Set optional sink for system logs (used by the interactive CLI)."""
    global _system_log_sink
    _system_log_sink = sink


def configure_logging() -> None:
    """Configure structured logging."""
    config = get_config()

    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.logging.format == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(
            file=_SinkWriter(_system_log_sink) if _system_log_sink else sys.stderr
        ),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


@dataclass
class LogEntry:
    """One line of the user-facing execution log."""

    timestamp: datetime
    text: str


@dataclass
class ExecutionLog:
    """Append-only execution log shown next to the chat.

    Instances are callable so they can be passed wherever a ``LogSink`` is
    expected. Every entry is mirrored to structlog and forwarded to the
    optional ``listener``.
    """

    listener: LogSink | None = None
    entries: list[LogEntry] = field(default_factory=list)

    def __call__(self, timestamp: datetime, text: str) -> None:
        self.entries.append(LogEntry(timestamp=timestamp, text=text))
        log.debug("Execution log", text=text)
        if self.listener is not None:
            self.listener(timestamp, text)

    def write(self, text: str) -> None:
        """Append an entry stamped with the current UTC time."""
        self(datetime.now(UTC), text)

    def lines(self) -> list[str]:
        """Render entries as ``[HH:MM:SS] text`` lines."""
        return [
            f"[{entry.timestamp.strftime('%H:%M:%S')}] {entry.text}"
            for entry in self.entries
        ]


def emit(sink: LogSink | None, text: str) -> None:
    """Write one entry to an optional log sink."""
    if sink is None:
        return
    sink(datetime.now(UTC), text)


# Create module-level logger
log = get_logger(__name__)
