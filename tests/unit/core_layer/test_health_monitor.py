"""
Unit Tests for HealthMonitor

Tests health classification thresholds, counter decay, transition events
and active probing of unhealthy backends.
"""

import pytest

from search_dispatch.core.config.constants import HealthState
from search_dispatch.core.exceptions import BackendTimeoutError
from search_dispatch.core.observability.events import EventType
from search_dispatch.core.resilience.health_monitor import (
    HealthMonitor,
    HealthRecord,
    HealthThresholds,
    classify,
)


@pytest.fixture
def monitor(clock, event_bus, make_backend):
    monitor = HealthMonitor(window_seconds=60, event_bus=event_bus, clock=clock)
    monitor.register_backend(make_backend("wiki", priority=10))
    monitor.register_backend(make_backend("arxiv", priority=5))
    return monitor


@pytest.mark.unit
class TestClassification:
    def test_cold_start_is_healthy(self, monitor):
        assert monitor.get_state("wiki") == HealthState.HEALTHY

    def test_three_consecutive_errors_degrade(self, monitor):
        for _ in range(3):
            monitor.record_error("wiki", BackendTimeoutError("slow"))
        assert monitor.get_state("wiki") == HealthState.DEGRADED

    def test_six_consecutive_errors_make_unhealthy(self, monitor):
        for _ in range(6):
            monitor.record_error("wiki")
        assert monitor.get_state("wiki") == HealthState.UNHEALTHY

    def test_success_resets_consecutive_errors(self, monitor):
        for _ in range(5):
            monitor.record_error("wiki")
        monitor.record_success("wiki", 0.1)
        record = monitor.get_record("wiki")
        assert record.consecutive_errors == 0
        assert monitor.get_state("wiki") == HealthState.HEALTHY

    def test_high_error_rate_degrades_after_min_samples(self, monitor):
        # 6 errors, 4 successes, never more than two errors in a row
        for ok in [False, False, True, False, False, True, False, False, True, True]:
            monitor.record("wiki", success=ok)
        record = monitor.get_record("wiki")
        assert record.samples == 10
        assert record.error_rate > 0.5
        assert record.consecutive_errors < 3
        assert monitor.get_state("wiki") == HealthState.DEGRADED

    def test_error_rate_ignored_below_min_samples(self):
        record = HealthRecord(backend_id="x", window_start=0.0, error_count=5, success_count=1)
        assert classify(record, HealthThresholds()) == HealthState.HEALTHY

    def test_unknown_backend_outcomes_are_ignored(self, monitor):
        monitor.record_error("missing")
        assert monitor.get_state("missing") is None

    def test_last_error_is_recorded(self, monitor):
        monitor.record_error("wiki", BackendTimeoutError("took too long"))
        assert monitor.get_record("wiki").last_error == "BackendTimeoutError: took too long"


@pytest.mark.unit
class TestHealthyBackends:
    def test_unhealthy_and_disabled_are_excluded(self, clock, make_backend):
        monitor = HealthMonitor(clock=clock)
        monitor.register_backend(make_backend("a"))
        monitor.register_backend(make_backend("b"))
        monitor.register_backend(make_backend("c", enabled=False))
        for _ in range(6):
            monitor.record_error("b")
        assert [b.id for b in monitor.get_healthy_backends()] == ["a"]

    def test_degraded_backends_are_still_usable(self, monitor):
        for _ in range(3):
            monitor.record_error("wiki")
        assert "wiki" in [b.id for b in monitor.get_healthy_backends()]


@pytest.mark.unit
class TestDecayAndMetrics:
    def test_counters_halve_at_window_rollover(self, monitor, clock):
        for _ in range(4):
            monitor.record_success("wiki")
        for _ in range(2):
            monitor.record_error("wiki")
        clock.advance(60)
        monitor.record_success("wiki")
        record = monitor.get_record("wiki")
        assert record.success_count == 3  # 4 // 2 + 1
        assert record.error_count == 1

    def test_response_time_average(self, monitor):
        monitor.record_success("wiki", response_time=1.0)
        monitor.record_success("wiki", response_time=2.0)
        assert monitor.get_record("wiki").average_response_time == pytest.approx(1.1)

    def test_monitoring_stats(self, monitor):
        for _ in range(3):
            monitor.record_error("arxiv")
        stats = monitor.get_monitoring_stats()
        assert stats["total_backends"] == 2
        assert stats["healthy"] == 1
        assert stats["degraded"] == 1
        assert stats["unhealthy"] == 0
        assert monitor.get_health_metrics()["arxiv"]["state"] == "degraded"


@pytest.mark.unit
class TestTransitionEvents:
    def test_state_change_publishes_event(self, monitor, event_channel):
        for _ in range(3):
            monitor.record_error("wiki")
        events = event_channel.drain()
        assert [e.type for e in events] == [EventType.BACKEND_STATE_CHANGED]
        assert events[0].data == {"previous": "healthy", "state": "degraded"}

    def test_recovery_publishes_recovered(self, monitor, event_channel):
        for _ in range(3):
            monitor.record_error("wiki")
        monitor.record_success("wiki")
        types = [e.type for e in event_channel.drain()]
        assert types == [
            EventType.BACKEND_STATE_CHANGED,
            EventType.BACKEND_STATE_CHANGED,
            EventType.BACKEND_RECOVERED,
        ]

    def test_reset_backend_health(self, monitor, event_channel):
        for _ in range(6):
            monitor.record_error("wiki")
        monitor.reset_backend_health("wiki")
        assert monitor.get_state("wiki") == HealthState.HEALTHY
        assert monitor.get_record("wiki").error_count == 0
        assert EventType.BACKEND_RECOVERED in [e.type for e in event_channel.drain()]


@pytest.mark.unit
class TestActiveProbing:
    @pytest.mark.asyncio
    async def test_probe_success_recovers_backend(self, clock, make_backend):
        monitor = HealthMonitor(clock=clock)
        backend = make_backend("wiki")
        monitor.register_backend(backend)
        for _ in range(6):
            monitor.record_error("wiki")

        result = await monitor.perform_health_check()

        assert result == {"wiki": HealthState.HEALTHY}
        assert backend.calls == ["health check"]

    @pytest.mark.asyncio
    async def test_probe_failure_is_recorded(self, clock, make_backend):
        monitor = HealthMonitor(clock=clock)
        backend = make_backend("wiki", script=[BackendTimeoutError("still down")])
        monitor.register_backend(backend)
        for _ in range(3):
            monitor.record_error("wiki")

        await monitor.perform_health_check()

        assert monitor.get_record("wiki").consecutive_errors == 4

    @pytest.mark.asyncio
    async def test_healthy_backends_are_not_probed(self, monitor):
        assert await monitor.perform_health_check() == {}

    @pytest.mark.asyncio
    async def test_start_and_stop_monitoring(self, monitor):
        monitor.start_monitoring(interval=3600)
        assert monitor.is_monitoring
        await monitor.stop_monitoring()
        assert not monitor.is_monitoring
