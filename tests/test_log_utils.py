"""Tests for log_utils module."""

import logging
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.logging import RichHandler

from roomsync import log_utils


@pytest.fixture(autouse=True)
def reset_logging_state():
    yield
    log_utils.configure_logging(None)


def fresh_logger_name(request):
    return f"roomsync-test-{request.node.name}"


class TestLogConfiguration:
    def test_configure_logging_default(self):
        log_utils.configure_logging()
        assert log_utils.config is None

    def test_configure_logging_stores_config(self):
        test_config = {"logging": {"debug": {"aiohttp": True}}}
        log_utils.configure_logging(test_config)

        assert log_utils.config == test_config
        assert logging.getLogger("aiohttp.client").level == logging.DEBUG

    def test_component_silenced_by_default(self):
        log_utils.configure_logging({"logging": {}})
        assert logging.getLogger("aiohttp").level == logging.CRITICAL + 1

    def test_component_level_by_name(self):
        log_utils.configure_logging({"logging": {"debug": {"aiohttp": "warning"}}})
        assert logging.getLogger("aiohttp.access").level == logging.WARNING


class TestLogDirectory:
    @patch("roomsync.auth.get_config_dir")
    def test_get_log_dir(self, mock_get_config_dir):
        mock_get_config_dir.return_value = Path("/test/config")
        assert log_utils.get_log_dir() == Path("/test/config/logs")

    @pytest.mark.parametrize(
        "value, expected",
        [(1, 1024 * 1024), ("2048B", 2048), (None, 10 * 1024 * 1024)],
    )
    def test_max_log_bytes(self, value, expected):
        assert log_utils._max_log_bytes(value) == expected


class TestLoggerCreation:
    def test_rich_handler_by_default(self, request):
        logger = log_utils.get_logger(fresh_logger_name(request))

        assert logger.level == logging.INFO
        assert any(isinstance(h, RichHandler) for h in logger.handlers)

    def test_plain_handler_without_color(self, request):
        log_utils.configure_logging({"logging": {"color_enabled": False, "level": "debug"}})

        logger = log_utils.get_logger(fresh_logger_name(request))

        assert logger.level == logging.DEBUG
        assert not any(isinstance(h, RichHandler) for h in logger.handlers)

    def test_handlers_attached_once(self, request):
        name = fresh_logger_name(request)
        first = log_utils.get_logger(name)
        count = len(first.handlers)

        assert log_utils.get_logger(name).handlers == first.handlers
        assert len(first.handlers) == count

    def test_file_logging_opt_in(self, request, tmp_path):
        log_file = tmp_path / "logs" / "test.log"
        log_utils.configure_logging(
            {"logging": {"log_to_file": True, "filename": str(log_file)}}
        )

        logger = log_utils.get_logger(fresh_logger_name(request))
        logger.info("hello file")
        for handler in logger.handlers:
            handler.flush()

        assert log_file.exists()
        assert "hello file" in log_file.read_text()
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
