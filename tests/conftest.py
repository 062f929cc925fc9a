"""Root test configuration."""

import logging

import pytest
import structlog
from backplane.config import get_settings
from backplane.providers import global_registry
from backplane.scope import ConstructScope


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch):
    """Keep settings and the global provider registry from leaking between tests."""
    for name in (
        "BACKPLANE_DEFAULT_ENVIRONMENT",
        "BACKPLANE_DEFAULT_LOCATION",
        "BACKPLANE_CONFIG_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    global_registry.clear()
    yield
    global_registry.clear()
    get_settings.cache_clear()


@pytest.fixture
def scope() -> ConstructScope:
    return ConstructScope("app")
