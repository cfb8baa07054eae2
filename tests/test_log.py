"""
Tests for logging setup and the CLI entry point.
"""

import pytest
import structlog

from shopify_throttled import __version__, get_logger, main, setup_logging


@pytest.fixture(autouse=True)
def restore_structlog():
    yield
    structlog.reset_defaults()


class TestSetupLogging:

    @pytest.mark.parametrize("fmt", ["console", "json"])
    def test_configures_renderer(self, fmt):
        setup_logging("DEBUG", fmt)
        processors = structlog.get_config()["processors"]
        renderer = structlog.dev.ConsoleRenderer if fmt == "console" else structlog.processors.JSONRenderer
        assert isinstance(processors[-1], renderer)

    def test_logger_accepts_context(self):
        setup_logging("INFO", "json")
        get_logger("tests").info("hello", shop="test-shop.myshopify.com")


class TestMain:

    def test_prints_version_and_presets(self, capsys, monkeypatch):
        monkeypatch.setenv("SHOPIFY_LOG_LEVEL", "WARNING")
        main()
        out = capsys.readouterr().out
        assert __version__ in out
        assert "throttle:standard" in out
        assert "poll:large_export" in out
