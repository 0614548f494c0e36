"""Structured logging for the dashboard manager.

Records are key-value structured and rendered as JSON (for CloudWatch Logs),
logfmt or a colored console line. Every record carries the service name of
the entry point that emitted it.

Entry points bind per-invocation fields (the triggering event, the action)
with ``log_context`` so every record emitted while handling that invocation
carries them.

Usage:
    >>> from ondemand.infrastructure.logging import (
    ...     configure_logging, get_logger, log_context,
    ... )
    >>>
    >>> configure_logging(level="debug", format="json", service="dashboard")
    >>> logger = get_logger(__name__)
    >>> with log_context(action={"type": "Activate", "dashboardName": "Sales"}):
    ...     logger.info("Execute action")
"""

from __future__ import annotations

import json
import os
import sys
import threading
import traceback
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, TextIO


# =============================================================================
# Log Levels
# =============================================================================


class LogLevel(IntEnum):
    """Severities, with TRACE below DEBUG for per-dashboard plans."""

    TRACE = 5
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_string(cls, level: str) -> "LogLevel":
        """Parse a level name; unknown names fall back to INFO."""
        mapping = {
            "trace": cls.TRACE,
            "debug": cls.DEBUG,
            "info": cls.INFO,
            "warning": cls.WARNING,
            "warn": cls.WARNING,
            "error": cls.ERROR,
            "critical": cls.CRITICAL,
            "fatal": cls.CRITICAL,
        }
        return mapping.get(level.lower(), cls.INFO)


# =============================================================================
# Log Record
# =============================================================================


@dataclass
class LogRecord:
    """One emitted log line before formatting.

    ``fields`` holds the merged bound, context and call-time fields.
    """

    timestamp: datetime
    level: LogLevel
    message: str
    logger_name: str
    fields: dict[str, Any] = field(default_factory=dict)
    exception: BaseException | None = None
    service: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the JSON document shape."""
        data = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.name.lower(),
            "message": self.message,
            "logger": self.logger_name,
            **self.fields,
        }

        if self.service:
            data["service"] = self.service
        if self.exception:
            data["exception"] = {
                "type": type(self.exception).__name__,
                "message": str(self.exception),
                "traceback": traceback.format_exception(
                    type(self.exception),
                    self.exception,
                    self.exception.__traceback__,
                ),
            }

        return data


# =============================================================================
# Log Context
# =============================================================================


# ContextVar for async support: concurrent tasks each see their own fields
_context_stack: ContextVar[tuple[dict[str, Any], ...]] = ContextVar(
    "log_context_stack", default=()
)


class LogContext:
    """Task- and thread-local context for structured logging.

    Every record emitted inside a ``log_context`` block carries its fields.
    Each asyncio task and thread starts from a copy of the creating context.

    Example:
        >>> with log_context(event={"action": {"type": "ScheduledJob"}}):
        ...     logger.info("Start")  # includes event
        ...     with log_context(dashboard="Sales"):
        ...         logger.info("Archived")  # includes event and dashboard
    """

    @classmethod
    def get_current(cls) -> dict[str, Any]:
        """Merge the stack, inner levels winning."""
        result: dict[str, Any] = {}
        for ctx in _context_stack.get():
            result.update(ctx)
        return result

    @classmethod
    def push(cls, **fields: Any) -> Token[tuple[dict[str, Any], ...]]:
        """Push fields and return the reset token."""
        return _context_stack.set((*_context_stack.get(), fields))

    @classmethod
    def pop(cls, token: Token[tuple[dict[str, Any], ...]] | None = None) -> dict[str, Any]:
        """Pop the innermost level and return its fields."""
        stack = _context_stack.get()
        if not stack:
            return {}
        if token is not None:
            _context_stack.reset(token)
        else:
            _context_stack.set(stack[:-1])
        return stack[-1]

    @classmethod
    def clear(cls) -> None:
        """Drop every level."""
        _context_stack.set(())


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block."""
    token = LogContext.push(**fields)
    try:
        yield
    finally:
        LogContext.pop(token)


# =============================================================================
# Log Formatters
# =============================================================================


class LogFormatter(ABC):
    """Abstract base class for log formatters."""

    @abstractmethod
    def format(self, record: LogRecord) -> str:
        """Render a record as one line of text."""


class JSONFormatter(LogFormatter):
    """JSON log formatter.

    Outputs logs as JSON objects, one per line, which is what CloudWatch
    Logs Insights queries expect.
    """

    def __init__(self, *, sort_keys: bool = False) -> None:
        self._sort_keys = sort_keys

    def format(self, record: LogRecord) -> str:
        """Render as a single-line JSON object."""
        return json.dumps(
            record.to_dict(),
            sort_keys=self._sort_keys,
            ensure_ascii=False,
            default=str,
        )


class LogfmtFormatter(LogFormatter):
    """Logfmt formatter.

    Example output:
        ts=2024-01-15T10:30:00Z level=info msg="Execute action" dashboard=Sales
    """

    def format(self, record: LogRecord) -> str:
        parts = [
            f"ts={record.timestamp.isoformat()}",
            f"level={record.level.name.lower()}",
            f'msg="{self._escape(record.message)}"',
            f"logger={record.logger_name}",
        ]
        if record.service:
            parts.append(f"service={record.service}")

        for key, value in record.fields.items():
            parts.append(f"{key}={self._format_value(value)}")

        if record.exception:
            parts.append(f'error="{self._escape(str(record.exception))}"')

        return " ".join(parts)

    def _escape(self, value: str) -> str:
        """Escape backslashes, quotes and newlines."""
        return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")

    def _format_value(self, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        elif isinstance(value, (int, float)):
            return str(value)
        elif isinstance(value, str):
            if " " in value or '"' in value or "=" in value:
                return f'"{self._escape(value)}"'
            return value
        else:
            return f'"{self._escape(json.dumps(value, default=str))}"'


class ConsoleFormatter(LogFormatter):
    """Console formatter for local runs of the CLI.

    Example output:
        2024-01-15 10:30:00 INFO  [ondemand.stores.tiering.manager] Applied rules changed=True
    """

    COLORS = {
        LogLevel.TRACE: "\033[90m",
        LogLevel.DEBUG: "\033[36m",
        LogLevel.INFO: "\033[32m",
        LogLevel.WARNING: "\033[33m",
        LogLevel.ERROR: "\033[31m",
        LogLevel.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        *,
        color: bool = True,
        timestamp_format: str = "%Y-%m-%d %H:%M:%S",
    ) -> None:
        self._color = color and sys.stderr.isatty()
        self._timestamp_format = timestamp_format

    def format(self, record: LogRecord) -> str:
        level = record.level.name.ljust(5)
        if self._color:
            level = f"{self.COLORS.get(record.level, '')}{level}{self.RESET}"

        parts = [
            record.timestamp.strftime(self._timestamp_format),
            level,
            f"[{record.logger_name}]",
            record.message,
        ]
        if record.fields:
            parts.append(" ".join(f"{k}={v}" for k, v in record.fields.items()))

        result = " ".join(parts)

        if record.exception:
            tb = "".join(
                traceback.format_exception(
                    type(record.exception),
                    record.exception,
                    record.exception.__traceback__,
                )
            )
            result = f"{result}\n{tb}"

        return result


def create_formatter(format: str) -> LogFormatter:
    """Create a formatter by name ("console", "json", "logfmt")."""
    if format == "json":
        return JSONFormatter()
    elif format == "logfmt":
        return LogfmtFormatter()
    return ConsoleFormatter()


# =============================================================================
# Log Handlers
# =============================================================================


class LogHandler(ABC):
    """Abstract base class for log handlers."""

    def __init__(
        self,
        formatter: LogFormatter | None = None,
        level: LogLevel = LogLevel.TRACE,
    ) -> None:
        self._formatter = formatter or ConsoleFormatter()
        self._level = level
        self._lock = threading.Lock()

    def should_handle(self, record: LogRecord) -> bool:
        """Whether the record meets this handler's threshold."""
        return record.level >= self._level

    @abstractmethod
    def emit(self, record: LogRecord) -> None:
        """Write a record that passed the threshold."""

    def handle(self, record: LogRecord) -> None:
        """Emit under the handler lock; the scheduler thread logs concurrently."""
        if self.should_handle(record):
            with self._lock:
                self.emit(record)


class ConsoleHandler(LogHandler):
    """Handler that writes to a stream (stderr by default).

    Logs go to stderr so command output on stdout stays machine readable.
    """

    def __init__(self, *, stream: TextIO | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._stream = stream

    def emit(self, record: LogRecord) -> None:
        """Write log to the stream."""
        stream = self._stream or sys.stderr
        stream.write(self._formatter.format(record) + "\n")
        stream.flush()


class MemoryHandler(LogHandler):
    """Handler that keeps records in memory, for tests."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.records: list[LogRecord] = []

    def emit(self, record: LogRecord) -> None:
        self.records.append(record)

    def messages(self) -> list[str]:
        """Messages of the captured records."""
        return [r.message for r in self.records]


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """Named logger that merges bound, context and call-time fields.

    Example:
        >>> logger = StructuredLogger("ondemand.manager")
        >>> logger.add_handler(ConsoleHandler(formatter=JSONFormatter()))
        >>> logger.info("Execute action", dashboard="Sales")
    """

    def __init__(
        self,
        name: str,
        *,
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
        service: str = "",
    ) -> None:
        self._name = name
        self._level = level
        self._handlers: list[LogHandler] = handlers or []
        self._service = service
        self._bound_fields: dict[str, Any] = {}

    @property
    def name(self) -> str:
        """Get logger name."""
        return self._name

    @property
    def level(self) -> LogLevel:
        """Get log level."""
        return self._level

    def add_handler(self, handler: LogHandler) -> None:
        """Attach another handler to this logger only."""
        self._handlers.append(handler)

    def _reconfigure(
        self, level: LogLevel, handlers: list[LogHandler], service: str
    ) -> None:
        self._level = level
        self._handlers = list(handlers)
        self._service = service

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Return a copy that stamps ``fields`` on every record."""
        new_logger = StructuredLogger(
            self._name,
            level=self._level,
            handlers=self._handlers,
            service=self._service,
        )
        new_logger._bound_fields = {**self._bound_fields, **fields}
        return new_logger

    def is_enabled_for(self, level: LogLevel) -> bool:
        """Check if a level would be emitted."""
        return level >= self._level

    def _log(
        self,
        level: LogLevel,
        message: str,
        exception: BaseException | None = None,
        **fields: Any,
    ) -> None:
        if level < self._level:
            return

        # bound -> context -> call-time
        merged_fields = {
            **self._bound_fields,
            **LogContext.get_current(),
            **fields,
        }

        record = LogRecord(
            timestamp=datetime.now(timezone.utc),
            level=level,
            message=message,
            logger_name=self._name,
            fields=merged_fields,
            exception=exception,
            service=self._service,
        )

        for handler in self._handlers:
            handler.handle(record)

    def trace(self, message: str, **fields: Any) -> None:
        """Log at TRACE level."""
        self._log(LogLevel.TRACE, message, **fields)

    def debug(self, message: str, **fields: Any) -> None:
        """Log at DEBUG level."""
        self._log(LogLevel.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        """Log at INFO level."""
        self._log(LogLevel.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        """Log at WARNING level."""
        self._log(LogLevel.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        """Log at ERROR level."""
        self._log(LogLevel.ERROR, message, **fields)

    def critical(self, message: str, **fields: Any) -> None:
        """Log at CRITICAL level."""
        self._log(LogLevel.CRITICAL, message, **fields)

    def exception(
        self,
        message: str,
        exc: BaseException | None = None,
        **fields: Any,
    ) -> None:
        """Log at ERROR with ``exc`` or the exception being handled."""
        if exc is None:
            exc = sys.exc_info()[1]
        self._log(LogLevel.ERROR, message, exception=exc, **fields)


# =============================================================================
# Global Logger Management
# =============================================================================

_loggers: dict[str, StructuredLogger] = {}
_default_handlers: list[LogHandler] = []
_default_level: LogLevel = LogLevel.INFO
_default_service: str = ""
_lock = threading.Lock()


def configure_logging(
    *,
    level: LogLevel | str | None = None,
    format: str | None = None,
    service: str | None = None,
    handlers: list[LogHandler] | None = None,
) -> None:
    """Set the process-wide level, output and service name.

    Loggers created before this call are reconfigured in place, so module
    level ``logger = get_logger(__name__)`` references pick up the change.

    Args:
        level: Default log level (env ``LOG_LEVEL``, default INFO).
        format: Output format "console", "json" or "logfmt"
            (env ``LOG_FORMAT``, default console).
        service: Service name stamped on records (env ``SERVICE_NAME``).
        handlers: Custom handlers (overrides format).
    """
    global _default_handlers, _default_level, _default_service

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = LogLevel.from_string(level)
    if format is None:
        format = os.getenv("LOG_FORMAT", "console")
    if service is None:
        service = os.getenv("SERVICE_NAME", "")

    with _lock:
        _default_level = level
        _default_service = service
        _default_handlers = handlers or [ConsoleHandler(formatter=create_formatter(format))]
        for logger in _loggers.values():
            logger._reconfigure(_default_level, _default_handlers, _default_service)


def get_logger(name: str) -> StructuredLogger:
    """Return the shared logger for ``name``, creating it on first use."""
    with _lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(
                name,
                level=_default_level,
                handlers=list(_default_handlers),
                service=_default_service,
            )
        return _loggers[name]


def reset_logging() -> None:
    """Reset logging to environment defaults."""
    LogContext.clear()
    configure_logging()


# Environment defaults until an entry point configures logging
configure_logging()
