"""
Structured Logging

JSON-structured logging with context propagation.

Design decisions:
- Structured JSON output
- Log level filtering
- Request context (request/organization/user/chat ids) carried in a contextvar
- Handlers are process-wide; every module logger shares them
"""

import contextvars
import json
import sys
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        return cls[name.upper()]


_CONTEXT_FIELDS = ("request_id", "organization_id", "user_id", "chat_id")


@dataclass
class LogRecord:
    """A structured log record."""

    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    logger_name: str = "quarry"

    # Structured data
    data: dict[str, Any] = field(default_factory=dict)

    # Error info
    error: str | None = None
    error_type: str | None = None
    stack_trace: str | None = None

    # Request context
    request_id: str | None = None
    organization_id: str | None = None
    user_id: str | None = None
    chat_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "level": LogLevel(self.level).name,
            "logger": self.logger_name,
            "message": self.message,
        }

        if self.data:
            result["data"] = self.data

        if self.error:
            result["error"] = {
                "message": self.error,
                "type": self.error_type,
                "stack_trace": self.stack_trace,
            }

        for name in _CONTEXT_FIELDS:
            value = getattr(self, name)
            if value:
                result[name] = value

        return result

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class LogHandler:
    """Base class for log handlers."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG):
        self.level = level

    def should_handle(self, level: LogLevel) -> bool:
        return level >= self.level

    def handle(self, record: LogRecord) -> None:
        """Handle a log record."""

    def close(self) -> None:
        """Release any resources held by the handler."""


class ConsoleHandler(LogHandler):
    """Outputs logs to console."""

    def __init__(
        self,
        level: LogLevel = LogLevel.DEBUG,
        stream: TextIO | None = None,
        json_output: bool = True,
    ):
        super().__init__(level)
        self.stream = stream or sys.stderr
        self.json_output = json_output

    def handle(self, record: LogRecord) -> None:
        if not self.should_handle(record.level):
            return

        print(record.to_json() if self.json_output else self._format_text(record), file=self.stream)

    @staticmethod
    def _format_text(record: LogRecord) -> str:
        parts = [
            record.timestamp.strftime("%H:%M:%S.%f")[:-3],
            f"{LogLevel(record.level).name:<8}",
            f"{record.logger_name}:",
            record.message,
        ]
        ids = " ".join(f"{name}={getattr(record, name)}" for name in _CONTEXT_FIELDS if getattr(record, name))
        if ids:
            parts.append(f"[{ids}]")
        if record.data:
            parts.append(" ".join(f"{k}={v}" for k, v in record.data.items()))
        if record.error:
            parts.append(f"error={record.error_type}: {record.error}")
        return " ".join(parts)


class FileHandler(LogHandler):
    """Appends JSON lines to a file."""

    def __init__(
        self,
        filename: str,
        level: LogLevel = LogLevel.DEBUG,
    ):
        super().__init__(level)
        self.filename = filename
        self._file: TextIO | None = None

    def handle(self, record: LogRecord) -> None:
        if not self.should_handle(record.level):
            return

        if self._file is None:
            self._file = open(self.filename, "a", encoding="utf-8")

        self._file.write(record.to_json() + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None


class BufferHandler(LogHandler):
    """Buffers logs in memory for testing."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG, max_records: int = 1000):
        super().__init__(level)
        self.records: list[LogRecord] = []
        self._max_records = max_records

    def handle(self, record: LogRecord) -> None:
        if not self.should_handle(record.level):
            return

        self.records.append(record)

        if len(self.records) > self._max_records:
            self.records = self.records[-self._max_records :]

    def messages(self, level: LogLevel | None = None) -> list[str]:
        return [r.message for r in self.records if level is None or r.level == level]

    def clear(self) -> None:
        self.records.clear()


# Context variables for log enrichment
_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


@dataclass
class _LoggingState:
    level: LogLevel = LogLevel.INFO
    handlers: list[LogHandler] = field(default_factory=lambda: [ConsoleHandler()])


_state = _LoggingState()


class StructuredLogger:
    """
    Main structured logging interface.

    Loggers created through get_logger() read level and handlers from
    the process-wide state, so configure_logging() affects loggers that
    were created at import time.
    """

    def __init__(
        self,
        name: str = "quarry",
        level: LogLevel | None = None,
        handlers: list[LogHandler] | None = None,
    ):
        self.name = name
        self._level = level
        self._handlers = handlers

    @property
    def level(self) -> LogLevel:
        return self._level if self._level is not None else _state.level

    @property
    def handlers(self) -> list[LogHandler]:
        return self._handlers if self._handlers is not None else _state.handlers

    def _log(
        self,
        level: LogLevel,
        message: str,
        data: dict[str, Any] | None = None,
        error: BaseException | None = None,
        **extra: Any,
    ) -> None:
        if level < self.level:
            return

        context = _log_context.get()

        record = LogRecord(
            level=level,
            message=message,
            logger_name=self.name,
            data={**(data or {}), **extra},
            **{name: context.get(name) for name in _CONTEXT_FIELDS},
        )

        if error is not None:
            record.error = str(error)
            record.error_type = type(error).__name__
            if error.__traceback__ is not None:
                record.stack_trace = "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                )

        for handler in self.handlers:
            try:
                handler.handle(record)
            except Exception:
                pass  # Don't let logging errors affect main flow

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, error: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, error=error, **kwargs)

    def error(self, message: str, error: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, error=error, **kwargs)

    def critical(self, message: str, error: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.CRITICAL, message, error=error, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log the exception currently being handled at ERROR level."""
        self.error(message, error=sys.exc_info()[1], **kwargs)

    @staticmethod
    @contextmanager
    def context(**kwargs: Any):
        """
        Context manager for adding context to logs.

        Usage:
            with logger.context(request_id="123", user_id="user1"):
                logger.info("Processing request")
        """
        current = _log_context.get()
        token = _log_context.set({**current, **kwargs})

        try:
            yield
        finally:
            _log_context.reset(token)

    @staticmethod
    def set_context(**kwargs: Any) -> None:
        """Set context values that persist until changed."""
        current = _log_context.get()
        _log_context.set({**current, **kwargs})

    @staticmethod
    def clear_context() -> None:
        _log_context.set({})


def get_logger(name: str = "quarry") -> StructuredLogger:
    """Get a logger bound to the process-wide handlers."""
    return StructuredLogger(name=name)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    json_output: bool = True,
    log_file: str | None = None,
    handlers: list[LogHandler] | None = None,
) -> StructuredLogger:
    """
    Configure process-wide logging and return the root logger.

    Passing explicit handlers replaces the console/file defaults.
    """
    if isinstance(level, str):
        level = LogLevel.from_name(level)

    if handlers is None:
        handlers = [ConsoleHandler(level=level, json_output=json_output)]
        if log_file:
            handlers.append(FileHandler(log_file, level=level))

    for old in _state.handlers:
        if old not in handlers:
            old.close()

    _state.level = level
    _state.handlers = handlers

    return get_logger("quarry")
