"""
Unit Tests for RateLimiter

Tests fixed-window admission with burst allowance, window rollover, the
adaptive multiplier and caller-scoped entries.
"""

import pytest

from search_dispatch.core.observability.events import EventType
from search_dispatch.core.resilience.rate_limiter import RateLimiter


@pytest.fixture
def limiter(clock, event_bus):
    limiter = RateLimiter(
        default_window_seconds=60,
        default_burst_allowance=0,
        adaptive_enabled=True,
        adaptive_threshold=0.8,
        event_bus=event_bus,
        clock=clock,
    )
    limiter.configure_backend("wiki", rate_limit=5, window_seconds=60, burst_allowance=2)
    return limiter


@pytest.mark.unit
class TestAdmission:
    def test_admits_up_to_limit_plus_burst(self, limiter):
        admitted = [limiter.allow("wiki") for _ in range(7)]
        assert admitted == [True] * 7
        assert limiter.allow("wiki") is False

    def test_burst_is_counted(self, limiter):
        for _ in range(6):
            limiter.allow("wiki")
        entry = limiter.get_entry("wiki")
        assert entry.count == 6
        assert entry.burst_used == 1

    def test_window_rollover_resets_count(self, limiter, clock):
        for _ in range(7):
            limiter.allow("wiki")
        assert limiter.allow("wiki") is False

        clock.advance(60)
        assert limiter.allow("wiki") is True
        assert limiter.get_entry("wiki").count == 1
        assert limiter.get_entry("wiki").burst_used == 0

    def test_still_rejected_just_before_window_end(self, limiter, clock):
        for _ in range(7):
            limiter.allow("wiki")
        clock.advance(59.9)
        assert limiter.allow("wiki") is False

    def test_rejection_publishes_event(self, limiter, event_channel):
        for _ in range(8):
            limiter.allow("wiki")
        events = [e for e in event_channel.drain() if e.type == EventType.RATE_LIMIT_EXCEEDED]
        assert len(events) == 1
        assert events[0].backend_id == "wiki"
        assert events[0].data["limit"] == 5

    def test_unknown_backend_uses_defaults(self, clock):
        limiter = RateLimiter(default_rate_limit=2, default_burst_allowance=0, clock=clock)
        assert limiter.allow("new") is True
        assert limiter.allow("new") is True
        assert limiter.allow("new") is False

    def test_remaining_and_reset_time(self, limiter, clock):
        limiter.allow("wiki")
        limiter.allow("wiki")
        assert limiter.get_remaining("wiki") == 5
        clock.advance(15)
        assert limiter.get_reset_time("wiki") == pytest.approx(45)

    def test_remaining_counts_unused_burst(self, limiter, clock):
        for _ in range(5):
            limiter.allow("wiki")
        assert limiter.get_remaining("wiki") == 2

        admitted = sum(limiter.allow("wiki") for _ in range(4))
        assert admitted == 2
        assert limiter.get_remaining("wiki") == 0

        clock.advance(60)
        assert limiter.get_remaining("wiki") == 7


@pytest.mark.unit
class TestAdaptiveMultiplier:
    def test_multiplier_grows_on_high_success_rate(self, limiter):
        for _ in range(10):
            limiter.record_result("wiki", success=True)
        assert limiter.get_entry("wiki").adaptive_multiplier == pytest.approx(1.1)

    def test_multiplier_shrinks_on_low_success_rate(self, limiter):
        for _ in range(10):
            limiter.record_result("wiki", success=False)
        assert limiter.get_entry("wiki").adaptive_multiplier == pytest.approx(0.9)

    def test_no_adjustment_below_min_samples(self, limiter):
        for _ in range(9):
            limiter.record_result("wiki", success=True)
        assert limiter.get_entry("wiki").adaptive_multiplier == 1.0

    def test_multiplier_bounds(self, limiter):
        for _ in range(200):
            limiter.record_result("wiki", success=True)
        assert limiter.get_entry("wiki").adaptive_multiplier == pytest.approx(2.0)

        limiter.reset("wiki")
        for _ in range(200):
            limiter.record_result("wiki", success=False)
        assert limiter.get_entry("wiki").adaptive_multiplier == pytest.approx(0.5)

    def test_effective_limit_follows_multiplier(self, limiter):
        for _ in range(200):
            limiter.record_result("wiki", success=True)
        # 5 * 2.0
        assert limiter.get_entry("wiki").effective_limit == 10

    def test_effective_limit_never_below_one(self, clock):
        limiter = RateLimiter(default_burst_allowance=0, clock=clock)
        limiter.configure_backend("tiny", rate_limit=1)
        for _ in range(50):
            limiter.record_result("tiny", success=False)
        assert limiter.get_entry("tiny").effective_limit == 1

    def test_disabled_adaptive_keeps_multiplier(self, clock):
        limiter = RateLimiter(adaptive_enabled=False, clock=clock)
        for _ in range(20):
            limiter.record_result("wiki", success=True)
        assert limiter.get_entry("wiki").adaptive_multiplier == 1.0

    def test_rollover_retains_80_percent_of_outcomes(self, limiter, clock):
        for _ in range(5):
            limiter.record_result("wiki", success=True)
        for _ in range(3):
            limiter.record_result("wiki", success=False)
        clock.advance(60)
        limiter.allow("wiki")
        entry = limiter.get_entry("wiki")
        assert entry.success_count == 4
        assert entry.failure_count == 2


@pytest.mark.unit
class TestCallerScopes:
    def test_callers_have_independent_windows(self, limiter):
        for _ in range(7):
            assert limiter.allow("wiki", caller="alice") is True
        assert limiter.allow("wiki", caller="alice") is False
        assert limiter.allow("wiki", caller="bob") is True

    def test_cleanup_removes_only_idle_caller_entries(self, limiter, clock):
        limiter.allow("wiki")
        limiter.allow("wiki", caller="alice")
        clock.advance(121)
        assert limiter.cleanup_expired() == 1
        assert limiter.get_entry("wiki", caller="alice") is None
        assert limiter.get_entry("wiki") is not None

    def test_stats_filter_by_backend(self, limiter):
        limiter.allow("wiki")
        limiter.allow("wiki", caller="alice")
        limiter.allow("other")
        stats = limiter.get_stats("wiki")
        assert set(stats) == {"wiki", "wiki:alice"}
        assert stats["wiki"]["remaining"] == 6

    def test_reconfigure_updates_existing_entries(self, limiter):
        limiter.allow("wiki")
        limiter.configure_backend("wiki", rate_limit=1, burst_allowance=0)
        assert limiter.allow("wiki") is False
