"""
Unit tests for remoteview.logger module.

Tests cover:
- FileHandler creation when file is specified
- StreamHandler creation when console=True
- Log level setting and unknown level fallback
- Repeated setup does not duplicate handlers
- paramiko loggers are kept at WARNING or above
- Log format validation (timestamp, level, thread name)
"""

import logging
from pathlib import Path

import pytest

from remoteview.config import LogConfig
from remoteview.logger import LOG_FORMAT, NOISY_LOGGERS, setup_logging


@pytest.fixture(autouse=True)
def reset_root_logger():
    yield
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root_logger.handlers.clear()


class TestSetupLoggingFileHandler:
    """Tests for file handler creation."""

    def test_file_handler_created_when_file_specified(self, tmp_path: Path):
        log_file = tmp_path / "test.log"
        setup_logging(LogConfig(level="INFO", file=str(log_file), console=False))

        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1
        assert Path(file_handlers[0].baseFilename) == log_file

    def test_file_handler_not_created_when_file_empty(self):
        setup_logging(LogConfig(level="INFO", file="", console=True))

        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
        ]
        assert file_handlers == []

    def test_file_handler_creates_parent_directories(self, tmp_path: Path):
        nested_log_file = tmp_path / "subdir" / "nested" / "test.log"
        setup_logging(LogConfig(level="INFO", file=str(nested_log_file), console=False))
        assert nested_log_file.parent.exists()

    def test_messages_are_formatted(self, tmp_path: Path):
        log_file = tmp_path / "format.log"
        root_logger = setup_logging(LogConfig(level="INFO", file=str(log_file), console=False))

        logging.getLogger("remoteview.cache").info("cache ready")
        for handler in root_logger.handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert " - INFO - MainThread - cache ready" in content


class TestSetupLoggingConsoleHandler:
    """Tests for console handler creation."""

    def _stream_handlers(self):
        return [
            h
            for h in logging.getLogger().handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]

    def test_console_handler_created_when_console_true(self):
        setup_logging(LogConfig(level="INFO", file="", console=True))
        assert len(self._stream_handlers()) == 1

    def test_console_handler_not_created_when_console_false(self, tmp_path: Path):
        setup_logging(LogConfig(level="INFO", file=str(tmp_path / "x.log"), console=False))
        assert self._stream_handlers() == []

    def test_repeated_setup_does_not_duplicate(self):
        setup_logging(LogConfig(level="INFO", file="", console=True))
        setup_logging(LogConfig(level="INFO", file="", console=True))
        assert len(self._stream_handlers()) == 1


class TestSetupLoggingLevels:
    """Tests for level handling."""

    def test_debug_level(self):
        root_logger = setup_logging(LogConfig(level="debug", file="", console=True))
        assert root_logger.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        root_logger = setup_logging(LogConfig(level="chatty", file="", console=True))
        assert root_logger.level == logging.INFO

    def test_paramiko_is_quieted(self):
        setup_logging(LogConfig(level="DEBUG", file="", console=True))
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_log_format_fields(self):
        assert "%(asctime)s" in LOG_FORMAT
        assert "%(levelname)s" in LOG_FORMAT
        assert "%(threadName)s" in LOG_FORMAT
