"""Tests for structlog configuration helpers."""

import json
import logging

import pytest
import structlog
from backplane.logging import bind_context, clear_context, configure_logging, get_logger


@pytest.fixture(autouse=True)
def _restore_structlog():
    saved = structlog.get_config()
    yield
    clear_context()
    structlog.configure(**saved)


def _last_event(caplog) -> dict:
    return json.loads(caplog.records[-1].getMessage())


class TestConfigureLogging:
    def test_renders_json(self, caplog) -> None:
        configure_logging("info")

        with caplog.at_level(logging.INFO):
            get_logger("backplane.test").info("backend_initialized", backend_id="Shop")

        event = _last_event(caplog)
        assert event["event"] == "backend_initialized"
        assert event["backend_id"] == "Shop"
        assert event["level"] == "info"
        assert event["logger"] == "backplane.test"
        assert "timestamp" in event

    def test_level_from_settings(self, monkeypatch) -> None:
        calls = []
        monkeypatch.setenv("BACKPLANE_LOG_LEVEL", "warning")
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))

        configure_logging()

        assert calls == [{"level": logging.WARNING, "format": "%(message)s"}]

    def test_explicit_numeric_level(self, monkeypatch) -> None:
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))

        configure_logging(logging.DEBUG)

        assert calls[0]["level"] == logging.DEBUG


class TestContext:
    def test_bound_fields_attached(self, caplog) -> None:
        configure_logging("info")
        bind_context(backend_id="Shop", phase="merge")

        with caplog.at_level(logging.INFO):
            get_logger("backplane.test").info("requirements_merged")

        event = _last_event(caplog)
        assert event["backend_id"] == "Shop"
        assert event["phase"] == "merge"

    def test_clear_context(self, caplog) -> None:
        configure_logging("info")
        bind_context(backend_id="Shop")
        clear_context()

        with caplog.at_level(logging.INFO):
            get_logger("backplane.test").info("requirements_merged")

        assert "backend_id" not in _last_event(caplog)
