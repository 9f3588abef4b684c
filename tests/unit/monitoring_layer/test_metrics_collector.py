"""
Unit Tests for the Prometheus Event Observer

Tests that dispatch events are translated into Prometheus metrics.
"""

import pytest

from search_dispatch.core.observability.events import EventBus, EventType
from search_dispatch.monitoring.metrics_collector import PrometheusEventObserver


@pytest.fixture
def metrics(settings):
    return PrometheusEventObserver(settings=settings)


@pytest.fixture
def bus(metrics):
    bus = EventBus()
    bus.subscribe(metrics)
    return bus


def sample(metrics, name, **labels):
    return metrics.registry.get_sample_value(name, labels or None)


@pytest.mark.unit
class TestEventTranslation:
    def test_rate_limit_counter(self, metrics, bus):
        bus.publish(EventType.RATE_LIMIT_EXCEEDED, "wiki")
        bus.publish(EventType.RATE_LIMIT_EXCEEDED, "wiki")
        assert sample(metrics, "search_rate_limit_exceeded_total", backend="wiki") == 2.0

    def test_backend_failure_counter(self, metrics, bus):
        bus.publish(EventType.BACKEND_FAILED, "wiki", error_type="NetworkError")
        assert (
            sample(metrics, "search_backend_failures_total", backend="wiki", error_type="NetworkError")
            == 1.0
        )

    def test_health_state_gauge(self, metrics, bus):
        bus.publish(EventType.BACKEND_STATE_CHANGED, "wiki", previous="healthy", state="unhealthy")
        assert sample(metrics, "search_backend_health_state", backend="wiki") == 2.0

        bus.publish(EventType.BACKEND_RECOVERED, "wiki", previous="unhealthy")
        assert sample(metrics, "search_backend_recoveries_total", backend="wiki") == 1.0

    def test_queue_metrics(self, metrics, bus):
        bus.publish(EventType.REQUEST_QUEUED, "wiki", queue_depth=3)
        assert sample(metrics, "search_queue_depth") == 3.0

        bus.publish(EventType.REQUEST_COMPLETED, "wiki", success=True, duration=0.2, queue_depth=0)
        assert sample(metrics, "search_requests_completed_total", backend="wiki", status="success") == 1.0
        assert sample(metrics, "search_backend_request_duration_seconds_count", backend="wiki") == 1.0
        assert sample(metrics, "search_queue_depth") == 0.0

    def test_exposition(self, metrics, bus):
        bus.publish(EventType.BACKEND_FAILED, "wiki", error_type="BackendTimeoutError")
        body = metrics.get_prometheus_metrics().decode()
        assert "search_backend_failures_total" in body
        assert "search_dispatch_app_info" in body
        assert metrics.get_content_type().startswith("text/plain")

    def test_collectors_are_independent(self, settings):
        first = PrometheusEventObserver(settings=settings)
        second = PrometheusEventObserver(settings=settings)
        assert first.registry is not second.registry
