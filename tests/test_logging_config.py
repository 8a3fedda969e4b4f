"""Tests for the logging setup helpers."""

import logging
import sys

import pytest

from image_upscaler.core.logging_config import (
    LOG_FORMATS,
    PACKAGE_LOGGER,
    get_logger,
    setup_logger,
)


@pytest.fixture
def logger_name(request):
    """A unique logger name per test, removed afterwards."""
    name = f"test-logging.{request.node.name}"
    yield name
    logging.getLogger(name).handlers.clear()


class TestSetupLogger:
    def test_defaults(self):
        logger = setup_logger()
        assert logger.name == PACKAGE_LOGGER
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_level_parameter_wins_over_env(self, logger_name, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert setup_logger(logger_name, level="debug").level == logging.DEBUG

    def test_level_from_env(self, logger_name, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        assert setup_logger(logger_name).level == logging.WARNING

    @pytest.mark.parametrize("level", ["INVALID_LEVEL", "getLogger"])
    def test_unknown_level_falls_back_to_info(self, logger_name, level):
        assert setup_logger(logger_name, level=level).level == logging.INFO

    def test_structured_format_carries_call_site(self, logger_name):
        formatter = setup_logger(logger_name).handlers[0].formatter
        assert formatter._fmt == LOG_FORMATS["structured"]
        assert "%(lineno)d" in formatter._fmt

    def test_env_selects_simple_format(self, logger_name, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "SIMPLE")
        formatter = setup_logger(logger_name).handlers[0].formatter
        assert formatter._fmt == LOG_FORMATS["simple"]

    def test_repeat_setup_reapplies_level_only(self, logger_name):
        first = setup_logger(logger_name, level="INFO")
        second = setup_logger(logger_name, level="DEBUG")
        assert first is second
        assert len(second.handlers) == 1
        assert second.level == logging.DEBUG

    def test_writes_to_stdout(self, logger_name):
        assert setup_logger(logger_name).handlers[0].stream is sys.stdout


class TestGetLogger:
    def test_plain_name_is_configured(self, logger_name):
        logger = get_logger(logger_name.replace(".", "-"))
        assert len(logger.handlers) == 1
        logger.handlers.clear()

    def test_component_logger_propagates_to_package_logger(self):
        component = get_logger(f"{PACKAGE_LOGGER}.storage")
        assert component.handlers == []
        assert component.propagate
        assert len(logging.getLogger(PACKAGE_LOGGER).handlers) == 1
