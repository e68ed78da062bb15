"""Tests for structured logging."""

import json
import logging
import time

import pytest

from certkeep.observability import (
    LogLevel,
    StructuredFormatter,
    StructuredLogger,
    Timer,
    configure_logging,
    get_logger,
)


def make_record(msg, **attrs):
    record = logging.LogRecord(
        name="certkeep.locks",
        level=logging.DEBUG,
        pathname="locks.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=attrs.pop("exc_info", None),
    )
    for name, value in attrs.items():
        setattr(record, name, value)
    return record


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_formats_as_json(self):
        """A plain record becomes one JSON object."""
        parsed = json.loads(StructuredFormatter().format(make_record("Lock released")))

        assert parsed["level"] == "DEBUG"
        assert parsed["message"] == "Lock released"
        assert parsed["logger"] == "certkeep.locks"
        assert "timestamp" in parsed
        assert "context" not in parsed
        assert "duration_ms" not in parsed

    def test_includes_context_and_duration(self):
        """Per-record context and durations are rendered."""
        record = make_record(
            "Lock acquired",
            context={"key": "issue_cert_example.com"},
            duration_ms=12.5,
        )

        parsed = json.loads(StructuredFormatter().format(record))

        assert parsed["context"] == {"key": "issue_cert_example.com"}
        assert parsed["duration_ms"] == 12.5

    def test_includes_error(self):
        """Exception info is reported as type and message."""
        try:
            raise RuntimeError("backend down")
        except RuntimeError as e:
            record = make_record("Exists check failed", exc_info=(type(e), e, e.__traceback__))

        parsed = json.loads(StructuredFormatter().format(record))

        assert parsed["error"] == {"type": "RuntimeError", "message": "backend down"}


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_warning_carries_context_and_error(self, caplog: pytest.LogCaptureFixture) -> None:
        """Context and the causing exception reach the log record."""
        logger = StructuredLogger("certkeep.test_warning")
        error = ValueError("bad value")

        with caplog.at_level(logging.WARNING, logger="certkeep.test_warning"):
            logger.warning("Exists check failed", context={"key": "k"}, error=error)

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.levelname == "WARNING"
        assert record.context == {"key": "k"}
        assert record.exc_info[1] is error

    def test_debug_is_skipped_when_disabled(self, caplog: pytest.LogCaptureFixture) -> None:
        """Nothing is emitted below the configured level."""
        logger = StructuredLogger("certkeep.test_debug")

        with caplog.at_level(logging.INFO, logger="certkeep.test_debug"):
            logger.debug("Lock is held, waiting", context={"key": "k"})

        assert caplog.records == []

    def test_level_is_inherited(self):
        """The library does not set levels on module loggers."""
        assert get_logger("certkeep.test_inherit").logger.level == logging.NOTSET


class TestTimer:
    """Tests for Timer."""

    def test_measures_duration(self):
        """Measures elapsed time and stops on exit."""
        with Timer() as timer:
            time.sleep(0.05)

        assert 40 <= timer.duration_ms < 200
        stopped = timer.duration_ms
        time.sleep(0.01)
        assert timer.duration_ms == stopped

    def test_reports_running_duration(self):
        """duration_ms can be read before the block ends."""
        with Timer() as timer:
            time.sleep(0.02)
            assert timer.duration_ms >= 15


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_configures_package_logger(self):
        """Sets the level and a single JSON handler on the certkeep logger."""
        configure_logging(level=LogLevel.DEBUG, format="json")
        configure_logging(level=LogLevel.DEBUG, format="json")

        root = logging.getLogger("certkeep")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_text_format(self):
        """The text format uses a plain formatter."""
        configure_logging(level=LogLevel.INFO, format="text")

        root = logging.getLogger("certkeep")
        assert not isinstance(root.handlers[0].formatter, StructuredFormatter)
