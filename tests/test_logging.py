"""Tests for logging configuration."""

import logging

import structlog

from iris_revenue.config import configure_logging


class TestConfigureLogging:
    """Tests for configure_logging."""

    def teardown_method(self):
        structlog.reset_defaults()
        for name in ("httpx", "httpcore"):
            logging.getLogger(name).setLevel(logging.NOTSET)

    def test_transport_loggers_quiet_by_default(self):
        configure_logging(level="INFO", format="console")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_transport_loggers_visible_at_debug(self):
        configure_logging(level="DEBUG", format="json")

        assert logging.getLogger("httpx").level == logging.DEBUG

    def test_json_renderer_selected(self):
        configure_logging(level="INFO", format="json")

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert structlog.processors.dict_tracebacks in processors

    def test_console_renderer_selected(self):
        configure_logging(level="INFO", format="console")

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
