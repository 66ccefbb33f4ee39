"""
Tests for logging setup.
"""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import colorlog
import pytest

from foundry.core.logging_config import parse_level, setup_backend_logging

TEST_LOGGER = "foundry.test_logging"


@pytest.fixture
def restore_logger():
    """Put back the test logger's state after a test."""
    log = logging.getLogger(TEST_LOGGER)
    saved = (list(log.handlers), log.level, log.propagate)
    yield
    handlers, level, propagate = saved
    for handler in log.handlers:
        if handler not in handlers:
            handler.close()
    log.handlers[:] = handlers
    log.setLevel(level)
    log.propagate = propagate


class TestParseLevel:
    """Tests for parse_level."""

    @pytest.mark.unit
    def test_known_names(self) -> None:
        """Level names are case-insensitive."""
        assert parse_level("debug") == logging.DEBUG
        assert parse_level(" WARNING ") == logging.WARNING

    @pytest.mark.unit
    def test_unknown_name_falls_back_to_info(self) -> None:
        """An unrecognized level name means INFO."""
        assert parse_level("chatty") == logging.INFO


class TestBackendLogging:
    """Tests for setup_backend_logging."""

    @pytest.mark.unit
    def test_named_logger_gets_file_and_console(self, tmp_path: Path, restore_logger) -> None:
        """The logger writes to a rotating file and a colored console and stops propagating."""
        log_file = tmp_path / "logs" / "backend.log"

        setup_backend_logging("DEBUG", log_file=log_file, loggers=[TEST_LOGGER])
        log = logging.getLogger(TEST_LOGGER)
        log.debug("hello file")
        for handler in log.handlers:
            handler.flush()

        assert len(log.handlers) == 2
        assert any(isinstance(h, RotatingFileHandler) for h in log.handlers)
        assert any(isinstance(h.formatter, colorlog.ColoredFormatter) for h in log.handlers)
        assert log.level == logging.DEBUG
        assert log.propagate is False
        assert "hello file" in log_file.read_text(encoding="utf-8")

    @pytest.mark.unit
    def test_repeated_setup_replaces_handlers(self, tmp_path: Path, restore_logger) -> None:
        """Calling setup twice leaves one set of handlers."""
        log_file = tmp_path / "backend.log"

        setup_backend_logging("INFO", log_file=log_file, loggers=[TEST_LOGGER])
        setup_backend_logging("WARNING", log_file=log_file, loggers=[TEST_LOGGER])

        log = logging.getLogger(TEST_LOGGER)
        assert len(log.handlers) == 2
        assert log.level == logging.WARNING
