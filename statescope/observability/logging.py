"""Structured logging for statescope.

This module provides:
- JSON-formatted log output for machine consumption
- Human-readable colored output for development
- Bound loggers carrying exploration fields (session, explorer, state)
- ContextVar-backed log context that follows asyncio tasks

Example:
    Basic usage::

        from statescope.observability.logging import get_logger

        logger = get_logger("statescope.engine")
        logger.info("State discovered", state_id="state_1a2b", depth=2)

    Bound logger::

        session_logger = logger.bind(session_id="session_9f8e")
        session_logger.info("Exploring")  # Always includes session_id

    With context::

        with log_context(session_id="session_9f8e"):
            logger.info("Restoring context")
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

_context_fields: ContextVar[dict[str, Any] | None] = ContextVar(
    "statescope_log_context", default=None
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Each record becomes one JSON object with the timestamp, level, logger
    name, message, the active log context and the record's structured data.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "level_num": record.levelno,
            "message": record.getMessage(),
            "logger": record.name,
        }

        context = _context_fields.get()
        if context:
            log_data["context"] = dict(context)

        structured_data = getattr(record, "structured_data", None)
        if structured_data:
            log_data["data"] = dict(structured_data)

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str, ensure_ascii=False)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        if sys.platform == "win32":
            return os.environ.get("ANSICON") is not None or "WT_SESSION" in os.environ
        return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human reading."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            level = f"{color}{record.levelname:8}{self.RESET}"
        else:
            level = f"{record.levelname:8}"

        base = f"{timestamp} {level} [{record.name}] {record.getMessage()}"

        context = _context_fields.get()
        if context:
            base += f" | context={json.dumps(dict(context), default=str)}"

        structured_data = getattr(record, "structured_data", None)
        if structured_data:
            base += f" | data={json.dumps(structured_data, default=str)}"

        if record.exc_info:
            base += f"\n{self.formatException(record.exc_info)}"

        return base


class StructuredLogger:
    """Logger with structured key-value logging.

    Example:
        >>> logger = StructuredLogger("statescope.store")
        >>> logger.info("State inserted", state_id="state_1a2b")
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        json_format: bool = True,
        stream: Any | None = None,
    ) -> None:
        self.name = name
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level)
        self._logger.handlers.clear()
        self._logger.propagate = False

        self._handler = logging.StreamHandler(stream or sys.stderr)
        self._handler.setLevel(level)

        if json_format:
            self._formatter: logging.Formatter = StructuredFormatter()
        else:
            self._formatter = HumanReadableFormatter()

        self._handler.setFormatter(self._formatter)
        self._logger.addHandler(self._handler)
        self._json_format = json_format

    def _log(self, level: int, message: str, exc_info: Any = None, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            self.name,
            level,
            "",
            0,
            message,
            (),
            exc_info,
        )
        record.structured_data = kwargs  # type: ignore[attr-defined]
        self._logger.handle(record)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, exc_info: Any = True, **kwargs: Any) -> None:
        """Log an exception with traceback.

        Args:
            message: Log message.
            exc_info: Exception info (True for current, or exception tuple).
            **kwargs: Additional structured data.
        """
        self._log(
            logging.ERROR,
            message,
            exc_info=sys.exc_info() if exc_info is True else exc_info,
            **kwargs,
        )

    def bind(self, **kwargs: Any) -> BoundLogger:
        """Create a logger that adds ``kwargs`` to every message."""
        return BoundLogger(self, kwargs)

    def set_level(self, level: int | str) -> None:
        if isinstance(level, str):
            level = getattr(logging, level.upper(), logging.INFO)
        self._logger.setLevel(level)
        self._handler.setLevel(level)

    def get_level(self) -> int:
        return self._logger.level


class BoundLogger:
    """Logger with pre-bound fields.

    Created by StructuredLogger.bind(), includes the bound fields
    in every log message.
    """

    def __init__(self, logger: StructuredLogger, fields: dict[str, Any]) -> None:
        self._logger = logger
        self._fields = fields

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self._fields)

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        merged = {**self._fields, **kwargs}
        self._logger._log(level, message, **merged)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, exc_info: Any = True, **kwargs: Any) -> None:
        merged = {**self._fields, **kwargs}
        self._logger.exception(message, exc_info=exc_info, **merged)

    def bind(self, **kwargs: Any) -> BoundLogger:
        """Create a new bound logger with additional fields."""
        return BoundLogger(self._logger, {**self._fields, **kwargs})


_loggers: dict[str, StructuredLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(
    name: str = "statescope",
    level: int | str | None = None,
    json_format: bool | None = None,
) -> StructuredLogger:
    """Get or create a structured logger.

    Loggers are cached by name, so subsequent calls with the same name
    return the same instance.

    Args:
        name: Logger name (typically module or component name).
        level: Minimum log level. If None, uses STATESCOPE_LOG_LEVEL (default WARNING).
        json_format: Use JSON format. If None, uses STATESCOPE_JSON_LOGS env var.
    """
    if json_format is None:
        json_format = os.environ.get("STATESCOPE_JSON_LOGS", "false").lower() == "true"

    if level is None:
        level = os.environ.get("STATESCOPE_LOG_LEVEL", "WARNING")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    with _loggers_lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(name=name, level=level, json_format=json_format)
        return _loggers[name]


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
) -> None:
    """Set level and format on every statescope logger created so far.

    Example:
        >>> configure_logging(level="DEBUG", json_format=True)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    formatter: logging.Formatter = (
        StructuredFormatter() if json_format else HumanReadableFormatter()
    )
    with _loggers_lock:
        for logger in _loggers.values():
            logger.set_level(level)
            logger._handler.setFormatter(formatter)
            logger._json_format = json_format


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Context manager for temporary log context.

    Adds the specified fields to all log messages within the context,
    then restores the previous context on exit.
    """
    current = dict(_context_fields.get() or {})
    current.update(kwargs)
    token = _context_fields.set(current)
    try:
        yield
    finally:
        _context_fields.reset(token)


def get_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    current = _context_fields.get()
    return dict(current) if current else {}
