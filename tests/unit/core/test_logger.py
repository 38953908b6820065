"""Tests for logging setup."""

import logging

import pytest

from sinoman.core.logger import DATE_FORMAT, setup_logger


@pytest.fixture
def logger_name(request):
    name = f"sinoman-test.{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class TestSetupLogger:

    def test_console_handler(self, logger_name):
        logger = setup_logger(logger_name, "debug")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)
        assert logger.handlers[0].formatter.datefmt == DATE_FORMAT

    def test_warn_alias(self, logger_name):
        """Audit level names are accepted as logging levels."""
        assert setup_logger(logger_name, "warn").level == logging.WARNING

    def test_invalid_level(self, logger_name):
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logger(logger_name, "loud")

    def test_no_duplicate_handlers(self, logger_name):
        setup_logger(logger_name)
        logger = setup_logger(logger_name, "error")

        assert len(logger.handlers) == 1
        assert logger.level == logging.ERROR

    def test_child_loggers_propagate(self, logger_name, caplog):
        setup_logger(logger_name, "info")

        with caplog.at_level(logging.INFO):
            logging.getLogger(f"{logger_name}.audit").info("koperasi ready")

        assert "koperasi ready" in caplog.text
