"""
Observability Module

Structured logging with request context.
"""

from quarry.observability.logging import (
    BufferHandler,
    ConsoleHandler,
    FileHandler,
    LogHandler,
    LogLevel,
    LogRecord,
    StructuredLogger,
    configure_logging,
    get_logger,
)

__all__ = [
    "BufferHandler",
    "ConsoleHandler",
    "FileHandler",
    "LogHandler",
    "LogLevel",
    "LogRecord",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
