"""
Structured Logging

Per-component loggers emitting JSON records enriched with request context.

Design decisions:
- One shared logger per pipeline component, held in a registry
- Records carry keyword data plus whatever context is active
- configure_logging() retargets every component logger at once
- A failing handler never breaks the operation being logged
"""

import contextvars
import json
import sys
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, TextIO


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "mnemosyne_log_context", default={}
)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """
    Attach values to every record logged inside the block.

    Usage:
        with log_context(request_id="123", operation="search"):
            logger.info("Searching")
    """
    token = _context.set({**_context.get(), **values})
    try:
        yield
    finally:
        _context.reset(token)


@dataclass
class LogRecord:
    """One structured log event from a component."""

    level: LogLevel
    message: str
    component: str
    data: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    error: str | None = None
    error_type: str | None = None
    stack_trace: str | None = None

    @property
    def request_id(self) -> str | None:
        return self.context.get("request_id")

    @property
    def operation(self) -> str | None:
        return self.context.get("operation")

    def attach_error(self, error: Any) -> None:
        """Record an exception with its traceback, or a plain error description."""
        self.error = str(error)
        if isinstance(error, BaseException):
            self.error_type = type(error).__name__
            self.stack_trace = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.name,
            "component": self.component,
            "message": self.message,
            **self.context,
        }
        if self.data:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = {
                "message": self.error,
                "type": self.error_type,
                "stack_trace": self.stack_trace,
            }
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_text(self) -> str:
        line = (
            f"[{self.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.level.name:8s} {self.component}: {self.message}"
        )
        if self.data:
            line += f" | {self.data}"
        if self.error is not None:
            line += f" | ERROR: {self.error}"
        return line


class LogHandler:
    """Level-filtered sink for records."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG):
        self.level = level

    def handle(self, record: LogRecord) -> None:
        if record.level >= self.level:
            self.emit(record)

    def emit(self, record: LogRecord) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class ConsoleHandler(LogHandler):
    """Writes one line per record, JSON or human-readable."""

    def __init__(
        self,
        level: LogLevel = LogLevel.DEBUG,
        stream: TextIO | None = None,
        json_output: bool = True,
    ):
        super().__init__(level)
        self.stream = stream
        self.json_output = json_output

    def emit(self, record: LogRecord) -> None:
        line = record.to_json() if self.json_output else record.to_text()
        print(line, file=self.stream or sys.stderr)


class FileHandler(LogHandler):
    """Appends JSON lines to a file, opened on first use."""

    def __init__(self, filename: str, level: LogLevel = LogLevel.DEBUG):
        super().__init__(level)
        self.filename = filename
        self._file: TextIO | None = None

    def emit(self, record: LogRecord) -> None:
        if self._file is None:
            self._file = open(self.filename, "a", encoding="utf-8")
        self._file.write(record.to_json() + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


class BufferHandler(LogHandler):
    """Keeps the most recent records in memory, for tests."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG, max_records: int = 1000):
        super().__init__(level)
        self.records: list[LogRecord] = []
        self._max_records = max_records

    def emit(self, record: LogRecord) -> None:
        self.records.append(record)
        del self.records[: -self._max_records]

    def messages(self, level: LogLevel | None = None) -> list[str]:
        """Messages captured, optionally at a single level."""
        return [r.message for r in self.records if level is None or r.level == level]

    def clear(self) -> None:
        self.records.clear()


class StructuredLogger:
    """Logger for one component; keyword arguments become record data."""

    def __init__(
        self,
        name: str = "mnemosyne",
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
    ):
        self.name = name
        self.level = level
        self.handlers = handlers if handlers is not None else [ConsoleHandler()]

    context = staticmethod(log_context)

    def _log(self, level: LogLevel, message: str, error: Any = None, **data: Any) -> None:
        if level < self.level:
            return

        record = LogRecord(
            level=level,
            message=message,
            component=self.name,
            data=data,
            context=dict(_context.get()),
        )
        if error is not None:
            record.attach_error(error)

        for handler in self.handlers:
            try:
                handler.handle(record)
            except Exception as e:
                print(f"Log handler {type(handler).__name__} failed: {e}", file=sys.stderr)

    def debug(self, message: str, **data: Any) -> None:
        self._log(LogLevel.DEBUG, message, **data)

    def info(self, message: str, **data: Any) -> None:
        self._log(LogLevel.INFO, message, **data)

    def warning(self, message: str, **data: Any) -> None:
        self._log(LogLevel.WARNING, message, **data)

    def error(self, message: str, error: Any = None, **data: Any) -> None:
        self._log(LogLevel.ERROR, message, error=error, **data)


class LoggerRegistry:
    """Shared component loggers and the level and handlers they follow."""

    def __init__(self):
        self._loggers: dict[str, StructuredLogger] = {}
        self.level = LogLevel.INFO
        self.handlers: list[LogHandler] = [ConsoleHandler()]

    def get(self, name: str) -> StructuredLogger:
        logger = self._loggers.get(name)
        if logger is None:
            logger = StructuredLogger(name, self.level, list(self.handlers))
            self._loggers[name] = logger
        return logger

    def configure(self, level: LogLevel, handlers: list[LogHandler]) -> None:
        for handler in self.handlers:
            if handler not in handlers:
                handler.close()

        self.level = level
        self.handlers = handlers
        for logger in self._loggers.values():
            logger.level = level
            logger.handlers = list(handlers)


_registry = LoggerRegistry()


def get_logger(name: str = "mnemosyne") -> StructuredLogger:
    """Shared logger for a component."""
    return _registry.get(name)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    json_output: bool = True,
    log_file: str | None = None,
) -> StructuredLogger:
    """Point every component logger at fresh handlers; returns the root logger."""
    if isinstance(level, str):
        level = LogLevel[level.upper()]

    handlers: list[LogHandler] = [ConsoleHandler(level=level, json_output=json_output)]
    if log_file:
        handlers.append(FileHandler(log_file, level=level))

    _registry.configure(level, handlers)
    return get_logger()
