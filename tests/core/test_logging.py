# tests/core/test_logging.py
"""Tests for structured logging configuration."""

import json
import logging

import pytest
import structlog

from siteagent.core.config import LoggingSettings
from siteagent.core.logging import bind_site, configure_logging, get_logger

JSON = LoggingSettings(json_output=True)


def _last_line(capsys: pytest.CaptureFixture[str]) -> dict:
    return json.loads(capsys.readouterr().out.strip().split("\n")[-1])


@pytest.fixture(autouse=True)
def _clear_context():
    yield
    structlog.contextvars.clear_contextvars()


class TestLogging:
    def test_logger_outputs_structured(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(JSON)
        get_logger("siteagent.test").info("workflow finished", resource_type="vpc")

        data = _last_line(capsys)
        assert data["event"] == "workflow finished"
        assert data["resource_type"] == "vpc"
        assert data["logger"] == "siteagent.test"
        assert "_record" not in data

    def test_site_identity_on_every_line(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(JSON, site_id="site-0001", is_master=False)
        get_logger("test").info("structlog line")
        logging.getLogger("siteagent.test.stdlib").warning("stdlib line")

        lines = [json.loads(line) for line in capsys.readouterr().out.strip().split("\n")[-2:]]
        assert [line["site_id"] for line in lines] == ["site-0001", "site-0001"]
        assert [line["role"] for line in lines] == ["replica", "replica"]

    def test_unregistered_site(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(JSON)
        get_logger("test").info("hello")

        data = _last_line(capsys)
        assert data["site_id"] == "unregistered"
        assert data["role"] == "master"

    def test_rebinding_replaces_identity(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(JSON, site_id="site-a")
        bind_site("site-b", is_master=True)
        get_logger("test").info("hello")

        assert _last_line(capsys)["site_id"] == "site-b"

    def test_logger_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(LoggingSettings())
        get_logger("test").info("workflow finished", resource_type="vpc")

        out = capsys.readouterr().out
        assert "workflow finished" in out
        assert not out.strip().startswith("{")

    def test_json_override(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(LoggingSettings(), json_output=True)
        get_logger("test").info("hello")

        assert _last_line(capsys)["event"] == "hello"

    def test_noisy_third_party_loggers_silenced(self) -> None:
        configure_logging(LoggingSettings(), level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG
        for name in ("httpx", "httpcore", "watchdog", "azure.identity", "urllib3"):
            assert logging.getLogger(name).getEffectiveLevel() >= logging.WARNING, name

    def test_level_from_settings(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(LoggingSettings(level="WARNING", json_output=True))
        get_logger("test").info("hidden")

        assert "hidden" not in capsys.readouterr().out
