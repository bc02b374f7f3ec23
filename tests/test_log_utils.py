import io
import logging
import os
from unittest.mock import patch

import pytest
from rich.logging import RichHandler

from tofudl import log_utils
from tofudl.constants import DEBUG_LOG_FORMAT, INFO_LOG_FORMAT, LOG_DATE_FORMAT

pytestmark = [pytest.mark.unit, pytest.mark.infrastructure]


class TestLogUtils:
    """Test suite for log_utils module."""

    def setup_method(self):
        """Reset logger state before each test."""
        for handler in log_utils.logger.handlers[:]:
            log_utils.logger.removeHandler(handler)
            handler.close()
        log_utils._file_handler = None
        log_utils._initialize_logger()

    def teardown_method(self):
        if log_utils._file_handler is not None:
            log_utils.logger.removeHandler(log_utils._file_handler)
            log_utils._file_handler.close()
            log_utils._file_handler = None

    def test_logger_initialization(self):
        """Logger has a single Rich console handler and does not propagate."""
        assert log_utils.logger.name == "tofudl"
        assert not log_utils.logger.propagate
        assert len(log_utils.logger.handlers) == 1
        assert isinstance(log_utils.logger.handlers[0], RichHandler)

    def test_logger_initialization_with_env_var(self):
        with patch.dict(os.environ, {"TOFUDL_LOG_LEVEL": "DEBUG"}):
            log_utils._initialize_logger()
            assert log_utils.logger.level == logging.DEBUG
            assert log_utils.logger.handlers[0].level == logging.DEBUG

    def test_logger_initialization_with_invalid_env_var(self):
        with patch.dict(os.environ, {"TOFUDL_LOG_LEVEL": "LOUD"}):
            log_utils._initialize_logger()
            assert log_utils.logger.level == logging.INFO

    def test_set_log_level(self):
        log_utils.set_log_level("debug")
        assert log_utils.logger.level == logging.DEBUG

        log_utils.set_log_level("WARNING")
        assert log_utils.logger.level == logging.WARNING

    def test_set_log_level_invalid(self):
        original_level = log_utils.logger.level
        log_utils.set_log_level("INVALID_LEVEL")
        assert log_utils.logger.level == original_level

    def test_rich_handler_keeps_bare_formatter(self):
        log_utils.set_log_level("DEBUG")
        assert log_utils.logger.handlers[0].formatter._fmt == "%(message)s"

    def test_set_log_level_with_standard_handler(self):
        """Non-Rich handlers switch between the INFO and DEBUG formats."""
        standard_handler = logging.StreamHandler(io.StringIO())
        log_utils.logger.addHandler(standard_handler)
        try:
            log_utils.set_log_level("INFO")
            assert standard_handler.formatter._fmt == INFO_LOG_FORMAT
            assert standard_handler.formatter.datefmt == LOG_DATE_FORMAT

            log_utils.set_log_level("DEBUG")
            assert standard_handler.formatter._fmt == DEBUG_LOG_FORMAT
        finally:
            log_utils.logger.removeHandler(standard_handler)

    def test_add_file_logging(self, tmp_path):
        log_dir = tmp_path / "nested" / "logs"

        log_utils.add_file_logging(log_dir, "INFO")
        log_utils.logger.info("written to file")
        log_utils._file_handler.flush()

        assert log_utils._file_handler in log_utils.logger.handlers
        assert "written to file" in (log_dir / "tofudl.log").read_text()

    def test_add_file_logging_replaces_existing(self, tmp_path):
        log_utils.add_file_logging(tmp_path, "INFO")
        first_handler = log_utils._file_handler

        log_utils.add_file_logging(tmp_path, "DEBUG")

        assert log_utils._file_handler is not first_handler
        assert log_utils._file_handler.level == logging.DEBUG
        assert len(log_utils.logger.handlers) == 2

    def test_add_file_logging_invalid_level_defaults_to_info(self, tmp_path):
        log_utils.add_file_logging(tmp_path, "CHATTY")
        assert log_utils._file_handler.level == logging.INFO

    def test_rotating_file_handler_configuration(self, tmp_path):
        log_utils.add_file_logging(tmp_path, "INFO")

        handler = log_utils._file_handler
        assert handler.maxBytes == 10 * 1024 * 1024
        assert handler.backupCount == 5
        assert handler.encoding == "utf-8"
