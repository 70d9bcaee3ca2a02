"""Tests for logging setup."""

import logging

import pytest
from rich.logging import RichHandler

from downloadsorter.config import LoggingSettings
from downloadsorter.utils.logging import get_console, get_logger, setup_logging


@pytest.fixture
def quiet_logging():
    """Leave logging without handlers that hold files open."""
    yield
    setup_logging(LoggingSettings(console_enabled=False, file_enabled=False))


class TestGetLogger:
    """Tests for get_logger."""

    def test_module_names_are_children(self):
        """Test that module loggers hang off the package logger."""
        assert get_logger().name == "downloadsorter"
        assert get_logger("downloadsorter.mover.mover").name == "downloadsorter.mover.mover"
        assert get_logger("custom").name == "downloadsorter.custom"

    def test_does_not_propagate(self):
        """Test that records stay out of the root logger."""
        assert get_logger().propagate is False


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_file_log(self, tmp_path, quiet_logging):
        """Test that records reach the rotating log file with the thread name."""
        setup_logging(LoggingSettings(level="debug", log_dir=tmp_path / "logs", console_enabled=False))

        get_logger("downloadsorter.watcher.dispatcher").debug("relocated report.pdf")
        for handler in get_logger().handlers:
            handler.flush()

        content = (tmp_path / "logs" / "downloadsorter.log").read_text(encoding="utf-8")
        assert "relocated report.pdf" in content
        assert "MainThread" in content
        assert "downloadsorter.watcher.dispatcher" in content

    def test_reconfigure_replaces_handlers(self, tmp_path, quiet_logging):
        """Test that calling setup twice does not stack handlers."""
        settings = LoggingSettings(log_dir=tmp_path, console_enabled=True, file_enabled=False)

        setup_logging(settings)
        setup_logging(settings)

        handlers = get_logger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], RichHandler)
        assert handlers[0].console is get_console()

    def test_level_applied(self, quiet_logging):
        """Test that the configured level is set on the package logger."""
        setup_logging(LoggingSettings(level="WARNING", console_enabled=False, file_enabled=False))

        assert get_logger().level == logging.WARNING
        assert not get_logger("downloadsorter.mover").isEnabledFor(logging.INFO)
