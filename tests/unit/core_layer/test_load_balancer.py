"""
Unit Tests for LoadBalancer

Tests every selection strategy, source restriction and fallback choice.
"""

import pytest

from search_dispatch.core.config.constants import LoadBalancingStrategy
from search_dispatch.core.resilience.health_monitor import HealthMonitor
from search_dispatch.core.resilience.load_balancer import LoadBalancer
from search_dispatch.models.search import SearchOptions


@pytest.fixture
def backends(make_backend):
    return [
        make_backend("low", priority=1),
        make_backend("high", priority=10),
        make_backend("mid", priority=5),
    ]


@pytest.fixture
def monitor(clock, backends):
    monitor = HealthMonitor(clock=clock)
    for backend in backends:
        monitor.register_backend(backend)
    return monitor


def ids(backends):
    return [b.id for b in backends]


@pytest.mark.unit
class TestHealthBased:
    def test_orders_by_priority(self, monitor, backends):
        balancer = LoadBalancer(monitor, max_sources=3)
        assert ids(balancer.select(backends)) == ["high", "mid", "low"]

    def test_degraded_backends_rank_last(self, monitor, backends):
        for _ in range(3):
            monitor.record_error("high")
        balancer = LoadBalancer(monitor, max_sources=3)
        assert ids(balancer.select(backends)) == ["mid", "low", "high"]

    def test_max_sources_caps_selection(self, monitor, backends):
        balancer = LoadBalancer(monitor, max_sources=3)
        assert ids(balancer.select(backends, SearchOptions(max_sources=2))) == ["high", "mid"]

    def test_empty_candidates(self, monitor):
        assert LoadBalancer(monitor).select([]) == []


@pytest.mark.unit
class TestSourceRestriction:
    def test_sources_narrow_candidates(self, monitor, backends):
        balancer = LoadBalancer(monitor)
        selected = balancer.select(backends, SearchOptions(sources=["low", "mid"]))
        assert ids(selected) == ["mid", "low"]

    def test_unmatched_sources_are_ignored(self, monitor, backends):
        balancer = LoadBalancer(monitor, max_sources=3)
        selected = balancer.select(backends, SearchOptions(sources=["nowhere"]))
        assert ids(selected) == ["high", "mid", "low"]


@pytest.mark.unit
class TestOtherStrategies:
    def test_round_robin_rotates(self, monitor, backends):
        balancer = LoadBalancer(monitor, strategy=LoadBalancingStrategy.ROUND_ROBIN, max_sources=1)
        picks = [ids(balancer.select(backends))[0] for _ in range(4)]
        assert picks == ["low", "high", "mid", "low"]

    def test_least_connections(self, monitor, backends):
        balancer = LoadBalancer(
            monitor, strategy=LoadBalancingStrategy.LEAST_CONNECTIONS, max_sources=3
        )
        balancer.record_connection("high")
        balancer.record_connection("high")
        balancer.record_connection("mid")
        assert ids(balancer.select(backends)) == ["low", "mid", "high"]

        balancer.release_connection("high")
        balancer.release_connection("high")
        balancer.release_connection("high")
        assert balancer.get_connections("high") == 0

    def test_weighted_is_reproducible_with_seed(self, monitor, backends):
        first = LoadBalancer(monitor, strategy=LoadBalancingStrategy.WEIGHTED, seed=42)
        second = LoadBalancer(monitor, strategy=LoadBalancingStrategy.WEIGHTED, seed=42)
        runs_a = [ids(first.select(backends)) for _ in range(5)]
        runs_b = [ids(second.select(backends)) for _ in range(5)]
        assert runs_a == runs_b

    def test_weighted_favours_high_priority(self, monitor, backends):
        balancer = LoadBalancer(
            monitor, strategy=LoadBalancingStrategy.WEIGHTED, max_sources=1, seed=7
        )
        firsts = [ids(balancer.select(backends))[0] for _ in range(300)]
        assert firsts.count("high") > firsts.count("low")

    def test_selected_backends_are_distinct(self, monitor, backends):
        balancer = LoadBalancer(monitor, strategy=LoadBalancingStrategy.WEIGHTED, max_sources=3)
        for _ in range(20):
            selected = ids(balancer.select(backends))
            assert len(selected) == len(set(selected)) == 3


@pytest.mark.unit
class TestFallback:
    def test_highest_priority_healthy_backend(self, monitor):
        balancer = LoadBalancer(monitor)
        assert balancer.get_fallback("low").id == "high"

    def test_excluded_and_degraded_are_skipped(self, monitor):
        for _ in range(3):
            monitor.record_error("mid")
        balancer = LoadBalancer(monitor)
        assert balancer.get_fallback("low", exclude={"high"}) is None

    def test_stats_track_selections(self, monitor, backends):
        balancer = LoadBalancer(monitor, max_sources=1)
        balancer.select(backends)
        stats = balancer.get_stats()
        assert stats["strategy"] == "health-based"
        assert stats["selections"] == {"high": 1}
