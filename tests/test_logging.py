"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import structlog

from renewals.core.logging import _NOISE_LOGGERS, configure_logging

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _reset_logging():
    """Restore the root logger between tests."""
    yield
    root = logging.getLogger()
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


class TestConfigureLogging:
    def test_text_format_installs_console_renderer(self):
        configure_logging(fmt="text")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_format_installs_json_renderer(self):
        configure_logging(fmt="json")
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_noise_loggers_suppressed(self):
        configure_logging()
        for name in _NOISE_LOGGERS:
            assert logging.getLogger(name).level >= logging.WARNING

    @pytest.mark.parametrize("level, expected", [("debug", logging.DEBUG), ("bogus", logging.INFO)])
    def test_log_level_applied(self, level, expected):
        configure_logging(level=level)
        assert logging.getLogger().level == expected

    def test_reconfiguring_does_not_duplicate_handlers(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1


class TestLogFile:
    def test_file_handler_is_json(self, tmp_path: Path):
        log_file = tmp_path / "nested" / "renewals.log"
        configure_logging(fmt="text", log_file=log_file)
        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1
        formatter = file_handlers[0].formatter
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_records_are_written_as_json_lines(self, tmp_path: Path):
        log_file = tmp_path / "renewals.log"
        configure_logging(fmt="json", log_file=log_file)
        logging.getLogger("renewals.test").info("renewal %s saved", "7")
        for handler in logging.getLogger().handlers:
            handler.flush()

        data = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert data["event"] == "renewal 7 saved"
        assert data["level"] == "info"
        assert data["logger"] == "renewals.test"
