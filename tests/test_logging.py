"""Tests for logging setup."""

import logging

import pytest

from core.logging import LOG_FILE_NAME, ROOT_LOGGER_NAME, LinuxLogger, get_logger


@pytest.fixture
def root_logger(monkeypatch):
    """The songstream logger with no handlers and no LinuxLogger yet."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    saved_handlers, saved_level = root.handlers[:], root.level
    monkeypatch.setattr(LinuxLogger, '_instance', None)
    monkeypatch.delenv('SONGSTREAM_DEBUG', raising=False)
    root.handlers = []
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


class TestLinuxLogger:
    """Test LinuxLogger class."""

    def test_get_logger_installs_nothing(self, root_logger):
        logger = get_logger('core.player')
        assert logger.name == 'songstream.core.player'
        assert get_logger() is root_logger
        assert LinuxLogger._instance is None
        assert root_logger.handlers == []

    def test_configured_directory_used_after_early_loggers(self, root_logger, temp_dir):
        early = get_logger('core.early')
        setup = LinuxLogger(log_dir=temp_dir / 'logs')

        assert setup.log_file == temp_dir / 'logs' / LOG_FILE_NAME
        early.info("hello from %s", 'early')
        assert 'hello from early' in setup.log_file.read_text(encoding='utf-8')

    def test_first_instance_wins(self, root_logger, temp_dir):
        first = LinuxLogger(log_dir=temp_dir / 'first')
        handlers = list(root_logger.handlers)
        LinuxLogger(log_dir=temp_dir / 'second')

        assert LinuxLogger._instance is first
        assert root_logger.handlers == handlers
        assert not (temp_dir / 'second').exists()

    def test_debug_env(self, root_logger, temp_dir, monkeypatch):
        monkeypatch.setenv('SONGSTREAM_DEBUG', '1')
        LinuxLogger(log_dir=temp_dir / 'logs')
        assert root_logger.level == logging.DEBUG
