"""Root test configuration."""

import logging
import os

import pytest
import structlog
from meshguard.config.settings import get_settings


def pytest_configure(config):
    """Route structlog through stdlib at WARNING so pipeline logs stay quiet."""
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
def fresh_settings(monkeypatch):
    """Isolate tests from MESHGUARD_* variables and the cached settings."""
    for name in list(os.environ):
        if name.startswith("MESHGUARD_"):
            monkeypatch.delenv(name)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
