"""
Integration Tests: Dispatcher over FakeBackends

Exercises the full search path (selection, queue, rate limiting, retries,
health tracking, merge) with real timeouts and instant retry sleeps.
"""

import asyncio

import pytest

from search_dispatch.core.config.constants import HealthState
from search_dispatch.core.observability.events import EventType
from search_dispatch.core.resilience.retry_executor import RetryExecutor
from search_dispatch.models.search import SearchOptions
from search_dispatch.services.dispatcher import build_dispatcher


@pytest.mark.integration
class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_timing_out_backend_is_degraded_and_others_answer(
        self, settings, make_backend, sleep_recorder, event_bus, event_channel
    ):
        always_slow = make_backend("a", priority=10, timeout=0.02, retry_attempts=2, latency=1.0)
        reliable = make_backend("b", priority=5, results=3)
        dispatcher = build_dispatcher(
            settings=settings,
            backends=[always_slow, reliable],
            event_bus=event_bus,
            retry_executor=RetryExecutor(sleep=sleep_recorder),
        )

        results = await dispatcher.search("distributed systems", SearchOptions(max_sources=2))

        assert len(results) == 3
        assert {r.source_backend_id for r in results} == {"b"}

        record = dispatcher.health_monitor.get_record("a")
        assert record.error_count == 3
        assert record.state == HealthState.DEGRADED
        assert len(always_slow.calls) == 3
        assert sleep_recorder.delays == pytest.approx([0.01, 0.02])

        types = [e.type for e in event_channel.drain()]
        assert EventType.BACKEND_FAILED in types
        assert EventType.BACKEND_STATE_CHANGED in types

        await dispatcher.shutdown()

    @pytest.mark.asyncio
    async def test_degraded_backend_ranks_last_and_recovers(self, settings, make_backend):
        from search_dispatch.core.exceptions import BackendError

        flaky = make_backend(
            "flaky", priority=10, script=[BackendError("x"), BackendError("x"), BackendError("x")]
        )
        steady = make_backend("steady", priority=1)
        dispatcher = build_dispatcher(settings=settings, backends=[flaky, steady])

        for i in range(3):
            await dispatcher.search(f"q{i}", SearchOptions(max_sources=1))

        assert dispatcher.health_monitor.get_state("flaky") == HealthState.DEGRADED
        selected = dispatcher.load_balancer.select(
            dispatcher.health_monitor.get_healthy_backends(), SearchOptions(max_sources=2)
        )
        assert [b.id for b in selected] == ["steady", "flaky"]

        await dispatcher.health_monitor.perform_health_check()
        assert dispatcher.health_monitor.get_state("flaky") == HealthState.HEALTHY

    @pytest.mark.asyncio
    async def test_load_burst_respects_concurrency_cap(self, settings, make_backend):
        capped = settings.model_copy(
            update={"MAX_CONCURRENT_REQUESTS": 2, "MAX_QUEUE_SIZE": 50}
        )
        backends = [make_backend(f"b{i}", latency=0.005, results=1) for i in range(3)]
        dispatcher = build_dispatcher(settings=capped, backends=backends)

        peak = 0

        async def watch():
            nonlocal peak
            while True:
                peak = max(peak, dispatcher.concurrency_queue.active_count)
                await asyncio.sleep(0.001)

        watcher = asyncio.create_task(watch())
        try:
            results = await asyncio.gather(
                *(dispatcher.search(f"burst {i}", SearchOptions(priority=i % 3)) for i in range(10))
            )
        finally:
            watcher.cancel()

        assert all(len(r) == 3 for r in results)
        assert 1 <= peak <= 2
        stats = dispatcher.concurrency_queue.get_stats()
        assert stats["total_started"] == 30
        assert stats["active_count"] == 0
