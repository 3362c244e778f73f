"""Tests for src.utils.logging_factory module."""

import logging
from unittest.mock import patch

import pytest

from src.config import Config
from src.utils.logging_factory import ENGINE_LOGGERS, LoggingFactory, get_logger


@pytest.fixture(autouse=True)
def reset_factory():
    """Reset LoggingFactory state around each test."""
    LoggingFactory._initialized = False
    LoggingFactory._log_dir = None
    levels = {name: logging.getLogger(name).level for name in ("",) + ENGINE_LOGGERS}
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if isinstance(handler, logging.FileHandler):
            handler.close()
            root.removeHandler(handler)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)
    LoggingFactory._initialized = False
    LoggingFactory._log_dir = None


class TestLoggingFactoryInitialize:
    """Tests for LoggingFactory.initialize() method."""

    def test_initialize_without_log_dir_writes_no_file(self, tmp_path):
        """No log directory means no file handler."""
        with patch("src.utils.logging_factory.logging.basicConfig") as basic_config:
            LoggingFactory.initialize()

        assert LoggingFactory._initialized is True
        assert LoggingFactory._log_dir is None
        handlers = basic_config.call_args.kwargs["handlers"]
        assert not any(isinstance(h, logging.FileHandler) for h in handlers)

    def test_initialize_creates_log_file(self, tmp_path):
        """A log directory is created along with engine.log."""
        log_dir = tmp_path / "nested" / "logs"
        LoggingFactory.initialize(log_dir=log_dir)

        assert LoggingFactory._log_dir == log_dir
        assert (log_dir / "engine.log").exists()

    def test_initialize_passes_level_and_format(self):
        custom_format = "%(levelname)s - %(message)s"
        with patch("src.utils.logging_factory.logging.basicConfig") as basic_config:
            LoggingFactory.initialize(level=logging.DEBUG, format_string=custom_format)

        kwargs = basic_config.call_args.kwargs
        assert kwargs["level"] == logging.DEBUG
        assert kwargs["format"] == custom_format

    def test_initialize_uses_given_handlers(self):
        """Explicit handlers replace the default StreamHandler."""
        handler = logging.NullHandler()
        with patch("src.utils.logging_factory.logging.basicConfig") as basic_config:
            LoggingFactory.initialize(handlers=[handler])

        assert basic_config.call_args.kwargs["handlers"] == [handler]

    def test_initialize_idempotent(self, tmp_path):
        """Second call is ignored."""
        log_dir1 = tmp_path / "logs1"
        log_dir2 = tmp_path / "logs2"

        LoggingFactory.initialize(log_dir=log_dir1)
        LoggingFactory.initialize(log_dir=log_dir2)

        assert LoggingFactory._log_dir == log_dir1
        assert not log_dir2.exists()


class TestLoggingFactoryFromConfig:
    """Tests for initialize_from_config."""

    def test_file_logging_disabled(self, tmp_path):
        config = Config(log_dir=tmp_path / "logs", log_to_file=False, log_level="WARNING")
        with patch.object(LoggingFactory, "initialize") as initialize:
            LoggingFactory.initialize_from_config(config)

        initialize.assert_called_once_with(
            log_dir=None,
            level=logging.WARNING,
            format_string=config.log_format,
            handlers=None,
        )

    def test_file_logging_enabled(self, tmp_path):
        config = Config(log_dir=tmp_path / "logs", log_to_file=True)
        with patch.object(LoggingFactory, "initialize") as initialize:
            LoggingFactory.initialize_from_config(config)

        assert initialize.call_args.kwargs["log_dir"] == tmp_path / "logs"

    def test_unknown_level_falls_back_to_info(self):
        config = Config(log_level="CHATTY")
        with patch.object(LoggingFactory, "initialize") as initialize:
            LoggingFactory.initialize_from_config(config)

        assert initialize.call_args.kwargs["level"] == logging.INFO


class TestLoggingFactoryLevels:
    """Tests for level control helpers."""

    def test_get_logger_auto_initializes(self):
        with patch.object(LoggingFactory, "initialize") as initialize:
            logger = LoggingFactory.get_logger("src.orchestration.registry")

        initialize.assert_called_once()
        assert logger.name == "src.orchestration.registry"

    def test_module_get_logger_delegates(self):
        LoggingFactory._initialized = True
        assert get_logger("src.cli") is logging.getLogger("src.cli")

    def test_set_level(self):
        LoggingFactory.set_level("src.orchestration", logging.ERROR)
        assert logging.getLogger("src.orchestration").level == logging.ERROR

    @pytest.mark.parametrize("verbose,expected", [(True, logging.DEBUG), (False, logging.INFO)])
    def test_configure_verbose(self, verbose, expected):
        LoggingFactory.configure_verbose(verbose)

        assert logging.getLogger().level == expected
        for name in ENGINE_LOGGERS:
            assert logging.getLogger(name).level == expected
