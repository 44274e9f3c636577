"""Tests for appupgrade.logging."""

from __future__ import annotations

import logging
from unittest.mock import patch

import structlog

from appupgrade.config import Settings
from appupgrade.logging import get_logger, setup_logging


def _settings(level: str = "info", environment: str = "production") -> Settings:
    return Settings(_env_file=None, log={"level": level}, environment=environment)


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_uses_configured_level(self) -> None:
        with patch("appupgrade.logging.logging.basicConfig") as basic_config:
            setup_logging(_settings("debug"))

        assert basic_config.call_args.kwargs["level"] == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self) -> None:
        with patch("appupgrade.logging.logging.basicConfig") as basic_config:
            setup_logging(_settings("chatty"))

        assert basic_config.call_args.kwargs["level"] == logging.INFO

    def test_quiets_http_libraries(self) -> None:
        with patch("appupgrade.logging.logging.basicConfig"):
            setup_logging(_settings("debug"))

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
        assert logging.getLogger("aiohttp.access").level == logging.WARNING

    def test_json_renderer_in_production(self) -> None:
        with patch("appupgrade.logging.logging.basicConfig"):
            setup_logging(_settings())

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer_in_development(self) -> None:
        with patch("appupgrade.logging.logging.basicConfig"):
            setup_logging(_settings(environment="development"))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_defaults_to_cached_settings(self) -> None:
        with (
            patch("appupgrade.logging.get_settings", return_value=_settings("warning")) as getter,
            patch("appupgrade.logging.logging.basicConfig") as basic_config,
        ):
            setup_logging()

        getter.assert_called_once()
        assert basic_config.call_args.kwargs["level"] == logging.WARNING


class TestGetLogger:
    """Tests for get_logger()."""

    def test_returns_usable_logger(self) -> None:
        logger = get_logger("appupgrade.test")
        assert hasattr(logger, "info")
        assert hasattr(logger, "warning")
