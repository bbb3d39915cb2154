"""
StealthPay - Logging Tests
============================
Unit tests for structured logging helpers.
"""

import itertools
import json
import logging
import sys

from stealth_pay import logging_setup
from stealth_pay.logging_setup import (
    ColoredTextFormatter,
    JSONFormatter,
    PerformanceLogger,
    get_logger,
    setup_logging,
)


def make_record(message="Scan completed", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="stealthpay.scanner",
        level=level,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Test JSON and console formatters"""

    def test_json_fields(self):
        """Test JSON structure"""
        data = json.loads(JSONFormatter().format(make_record(extra_data={"matches": 2})))

        assert data["level"] == "INFO"
        assert data["logger"] == "stealthpay.scanner"
        assert data["message"] == "Scan completed"
        assert data["extra_data"] == {"matches": 2}
        assert data["timestamp"].endswith("Z")

    def test_json_exception(self):
        """Test exception serialization"""
        try:
            raise ValueError("bad chunk")
        except ValueError:
            record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad chunk"

    def test_json_without_extra(self):
        """Test include_extra=False"""
        data = json.loads(JSONFormatter(include_extra=False).format(make_record(extra_data={"k": 1})))

        assert "extra_data" not in data

    def test_colored_text(self):
        """Test console line"""
        line = ColoredTextFormatter().format(make_record(extra_data={"k": 1}))

        assert "stealthpay.scanner: Scan completed" in line
        assert "{'k': 1}" in line


class TestStealthPayLogger:
    """Test context enrichment"""

    def test_context_merged(self, caplog):
        """Test context is added to every record"""
        caplog.set_level(logging.DEBUG, logger="stealthpay")
        logger = get_logger("scanner")

        logger.set_context(chain_id=84532)
        logger.info("Chunk scanned", extra_data={"from": 0})

        assert caplog.records[-1].extra_data == {"chain_id": 84532, "from": 0}

        logger.clear_context()
        logger.info("Chunk scanned")

        assert not hasattr(caplog.records[-1], "extra_data")

    def test_category_name(self):
        """Test category loggers hang under the root logger"""
        assert get_logger("sweep").name == "stealthpay.sweep"


class TestPerformanceLogger:
    """Test duration tracking"""

    def test_below_threshold(self, caplog):
        """Test fast operation logs at DEBUG"""
        caplog.set_level(logging.DEBUG, logger="stealthpay")

        with PerformanceLogger(get_logger("scanner"), "scan_chunk", threshold_ms=60_000) as perf:
            pass

        record = caplog.records[-1]
        assert record.levelno == logging.DEBUG
        assert record.extra_data["operation"] == "scan_chunk"
        assert perf.elapsed_ms >= 0

    def test_above_threshold(self, caplog, monkeypatch):
        """Test slow operation logs a warning"""
        caplog.set_level(logging.DEBUG, logger="stealthpay")
        ticks = itertools.count(0.0, 2.0)
        monkeypatch.setattr(logging_setup.time, "perf_counter", lambda: next(ticks))

        with PerformanceLogger(get_logger("scanner"), "scan_chunk", threshold_ms=1000, extra_data={"to": 9999}):
            pass

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.extra_data["duration_ms"] == 2000.0
        assert record.extra_data["to"] == 9999


class TestSetupLogging:
    """Test handler configuration"""

    def test_file_handlers(self, tmp_path):
        """Test JSON log file and error-only file"""
        logger = setup_logging(log_level="DEBUG", log_to_file=True, log_dir=tmp_path, enable_console=False)

        get_logger("sweep").info("Sweep completed", extra_data={"amount": 10})
        logger.error("Sweep failed")
        for handler in logging.getLogger("stealthpay").handlers:
            handler.flush()

        lines = (tmp_path / "stealthpay.log").read_text().splitlines()
        first = json.loads(lines[0])
        assert first["logger"] == "stealthpay.sweep"
        assert first["extra_data"] == {"amount": 10}
        assert len(lines) == 2

        errors = (tmp_path / "stealthpay_errors.log").read_text().splitlines()
        assert len(errors) == 1
        assert json.loads(errors[0])["message"] == "Sweep failed"

    def test_level(self):
        """Test level applied to root logger"""
        setup_logging(log_level="warning", enable_console=False)

        assert logging.getLogger("stealthpay").level == logging.WARNING
        assert logging.getLogger("stealthpay").handlers == []
