"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests.
"""

from unittest.mock import patch

import pytest

from persevere.config import Settings
from persevere.retry.engine import RetryEngine


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults.

    Metrics are disabled so tests do not depend on the global Prometheus
    registry. Override specific settings in individual tests as needed.
    """
    return Settings(
        APP_NAME="persevere (Test)",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",
        DEFAULT_MAX_RETRIES=0,
        BACKOFF_BASE=2.0,
        BACKOFF_MAX_JITTER=1.0,
        BACKOFF_MAX_DELAY=None,
        HTTP_TIMEOUT=5.0,
        PROMETHEUS_ENABLED=False,
    )


@pytest.fixture
def engine(test_settings: Settings) -> RetryEngine:
    """Fresh RetryEngine built from test settings."""
    return RetryEngine.build(test_settings)


@pytest.fixture
def no_sleep():
    """Patch the engine's sleep so backoff tests run instantly.

    Yields the mock; ``no_sleep.call_args_list`` holds the requested waits.
    """
    with patch("persevere.retry.engine.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def create_flaky_work():
    """Factory fixture for work functions that fail a number of times first.

    Usage:
        def test_something(create_flaky_work):
            work = create_flaky_work(failures=2, error=ValueError, result="ok")
            work()  # raises ValueError
            work.calls  # 1
    """
    def _create(failures: int = 1, error: type[Exception] = ValueError, result="ok"):
        def work():
            work.calls += 1
            if work.calls <= failures:
                raise error(f"failure {work.calls}")
            return result

        work.calls = 0
        return work

    return _create
