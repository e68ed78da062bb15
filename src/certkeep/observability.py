"""Structured logging for certkeep.

Every logger lives under the ``certkeep`` namespace. Records carry an
optional ``context`` dict (the key being stored or locked, a timeout) and
an optional ``duration_ms``, which :class:`StructuredFormatter` renders as
one JSON object per line.
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

ROOT_LOGGER = "certkeep"


class LogLevel(str, Enum):
    """Log levels matching Python's logging module."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StructuredFormatter(logging.Formatter):
    """Formats log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "logger": record.name,
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict) and context:
            entry["context"] = context

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["error"] = {"type": type(exc).__name__, "message": str(exc)}

        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            entry["duration_ms"] = round(duration_ms, 3)

        return json.dumps(entry, default=str)


class StructuredLogger:
    """Thin wrapper that attaches context and durations to log records.

    The library never installs a handler itself; records propagate to the
    one set up by :func:`configure_logging`, or to the application's.

    Example:
        logger = get_logger("certkeep.locks")
        logger.debug("Lock acquired", context={"key": "issue_cert_example.com"})
    """

    def __init__(self, name: str) -> None:
        self.logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        message: str,
        context: dict[str, Any] | None,
        error: BaseException | None,
        duration_ms: float | None,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        extra = {"context": context or {}, "duration_ms": duration_ms}
        exc_info = (type(error), error, error.__traceback__) if error is not None else None
        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log at DEBUG level."""
        self._log(logging.DEBUG, message, context, None, duration_ms)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log at WARNING level, with the exception that caused it if any."""
        self._log(logging.WARNING, message, context, error, duration_ms)


class Timer:
    """Measures how long a block took, e.g. a lock wait.

    ``duration_ms`` can be read inside the block for the time so far.
    """

    def __init__(self) -> None:
        self._start = 0.0
        self._end: float | None = None

    @property
    def duration_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return (end - self._start) * 1000

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, *args: Any) -> None:
        self._end = time.perf_counter()


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format: str = "json",
) -> None:
    """Send certkeep's log records to stdout.

    Replaces any handler a previous call installed.

    Args:
        level: Minimum log level
        format: Output format ("json" or "text")
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level.value)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
    root.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module (typically ``__name__``)."""
    return StructuredLogger(name)
