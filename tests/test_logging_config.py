"""Tests for logging_config.py utility functions."""

import os
import sys
import logging
from unittest.mock import patch
from images_queue.core.logging_config import (
    setup_logger,
    get_logger,
    set_debug_logging,
)


class TestSetupLogger:
    """Tests for setup_logger function."""

    def test_setup_logger_default_parameters(self):
        """Test setup_logger with default parameters."""
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("LOG_LEVEL", None)
            test_logger = setup_logger(name="test-defaults")
        assert test_logger.name == "test-defaults"
        assert test_logger.level == logging.INFO
        assert len(test_logger.handlers) == 1
        assert not test_logger.propagate

    def test_setup_logger_custom_level(self):
        """Test setup_logger with custom log level."""
        test_logger = setup_logger(name="test-custom-level", level="DEBUG")
        assert test_logger.level == logging.DEBUG

    def test_setup_logger_invalid_level_falls_back_to_info(self):
        test_logger = setup_logger(name="test-invalid-level", level="CHATTY")
        assert test_logger.level == logging.INFO

    def test_setup_logger_env_level_override(self):
        """Test setup_logger reading level from environment variable."""
        with patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}):
            test_logger = setup_logger(name="test-env-level")
            assert test_logger.level == logging.WARNING

    def test_setup_logger_structured_format(self):
        """Test setup_logger with structured format."""
        with patch.dict(os.environ, {"LOG_FORMAT": "structured"}):
            test_logger = setup_logger(name="test-structured", format_type="structured")
        format_string = test_logger.handlers[0].formatter._fmt
        assert "%(filename)s" in format_string
        assert "%(lineno)d" in format_string
        assert "%(funcName)s" in format_string

    def test_setup_logger_env_format_override(self):
        """Test setup_logger format override via environment variable."""
        with patch.dict(os.environ, {"LOG_FORMAT": "simple"}):
            test_logger = setup_logger(name="test-env-format", format_type="structured")
        format_string = test_logger.handlers[0].formatter._fmt
        assert "%(filename)s" not in format_string
        assert "%(message)s" in format_string

    def test_setup_logger_no_duplicate_handlers(self):
        """Test that setup_logger doesn't add duplicate handlers."""
        test_logger1 = setup_logger(name="test-no-duplicates")
        test_logger2 = setup_logger(name="test-no-duplicates")

        assert test_logger1 is test_logger2
        assert len(test_logger1.handlers) == 1

    def test_setup_logger_handler_uses_stdout(self):
        test_logger = setup_logger(name="test-stdout")
        assert test_logger.handlers[0].stream is sys.stdout


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_default_name(self):
        assert get_logger().name == "images-queue"

    def test_get_logger_custom_name(self):
        assert get_logger(name="test-get-logger").name == "test-get-logger"

    def test_get_logger_returns_configured_logger(self):
        test_logger = get_logger(name="test-configured")
        assert len(test_logger.handlers) == 1
        assert not test_logger.propagate


class TestSetDebugLogging:
    """Tests for set_debug_logging function."""

    def test_switches_named_and_root_logger_to_debug(self):
        root = logging.getLogger()
        previous_root_level = root.level
        try:
            set_debug_logging("test-debug-switch")
            assert logging.getLogger("test-debug-switch").level == logging.DEBUG
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous_root_level)
