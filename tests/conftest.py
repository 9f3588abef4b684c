"""
Pytest Configuration and Shared Test Fixtures

This module provides reusable fixtures for all tests. All fixtures defined
here are automatically available to all test files.
"""

import pytest

from search_dispatch.backends.base import BackendConfig
from search_dispatch.backends.fake_backend import FakeBackend
from search_dispatch.core.config.settings import Settings
from search_dispatch.core.observability.events import EventBus, EventChannel


# ============================================================================
# Time Control
# ============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """
    Explicit settings for dispatch tests.

    Fast retries, no background probing in practice (long interval) and no
    configured backends; tests register FakeBackends directly.
    """
    return Settings(
        BACKENDS={},
        MAX_CONCURRENT_REQUESTS=5,
        MAX_QUEUE_SIZE=100,
        QUEUE_REQUEST_TIMEOUT=5.0,
        SEARCH_DEADLINE=5.0,
        RATE_LIMIT_BURST_ALLOWANCE=0,
        RETRY_MAX_ATTEMPTS=2,
        RETRY_BASE_DELAY=0.01,
        RETRY_MAX_DELAY=0.05,
        HEALTH_CHECK_INTERVAL=3600.0,
        FALLBACK_ENABLED=True,
        CACHE_ENABLED=False,
        LOG_LEVEL="WARNING",
        LOG_FORMAT="console",
    )


# ============================================================================
# Backend Factories
# ============================================================================


@pytest.fixture
def make_backend():
    """
    Factory for FakeBackends.

    Usage:
        backend = make_backend("wiki", priority=10, results=3)
        flaky = make_backend("slow", script=[BackendTimeoutError("t")])
    """

    def _make(
        backend_id: str,
        priority: int = 1,
        rate_limit: int = 100,
        timeout: float = 1.0,
        retry_attempts: int = 0,
        enabled: bool = True,
        retry_base_delay: float | None = 0.01,
        **fake_kwargs,
    ) -> FakeBackend:
        config = BackendConfig(
            id=backend_id,
            priority=priority,
            rate_limit=rate_limit,
            timeout=timeout,
            max_retry_attempts=retry_attempts,
            enabled=enabled,
            retry_base_delay=retry_base_delay,
        )
        return FakeBackend(config, **fake_kwargs)

    return _make


# ============================================================================
# Event Fixtures
# ============================================================================


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def event_channel(event_bus):
    """EventChannel subscribed to the shared bus; drain() to inspect events."""
    channel = EventChannel(maxsize=1000)
    event_bus.subscribe(channel)
    return channel
