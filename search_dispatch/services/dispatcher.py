#!/usr/bin/env python3
"""
Search Dispatcher

Fans one query out to several search backends and merges what comes back.

REQUEST FLOW:
-------------
1. Validate the query; answer from the result cache when enabled
2. Ask the HealthMonitor for usable backends (NoBackendsAvailableError if none)
3. Let the LoadBalancer pick and order up to ``max_sources`` of them
4. Submit one task per backend to the ConcurrencyQueue. Each task:
   a. asks the RateLimiter for admission (rejected -> skip, zero results)
   b. calls the backend through the RetryExecutor, feeding every attempt
      into HealthMonitor and RateLimiter
   c. on terminal failure publishes ``backend_failed`` and, when enabled,
      tries one fallback backend chosen by the LoadBalancer (never more
      than one hop)
5. Wait for every task, bounded by the search deadline. Work still queued
   at the deadline is cancelled; work in flight finishes in the background
   and its results are discarded
6. Merge: walk outcomes in backend priority order, keep the first result per
   URL, stamp aggregation metadata, sort by descending relevance (stable)

ERROR POLICY:
-------------
A backend failure never fails the search; it becomes "zero results from that
backend". Only systemic conditions reach the caller:
- InvalidQueryError: blank or oversized query
- NoBackendsAvailableError: nothing healthy to ask
- QueueFullError: no backend succeeded and at least one was refused admission

Author: System Architect
Date: 2025-12-18
"""

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from search_dispatch.backends.base import SearchBackend
from search_dispatch.backends.registry import BackendRegistry, register_backends
from search_dispatch.core.config.constants import (
    MAX_QUERY_LENGTH,
    RESULT_SOURCE_TAG,
    Stage,
)
from search_dispatch.core.config.settings import Settings, get_settings
from search_dispatch.core.exceptions import (
    InvalidQueryError,
    NoBackendsAvailableError,
    QueueError,
    QueueFullError,
)
from search_dispatch.core.logging.logger import (
    clear_request_id,
    get_logger,
    log_stage,
    set_request_id,
)
from search_dispatch.core.observability.events import EventBus, EventType
from search_dispatch.core.resilience.concurrency_queue import ConcurrencyQueue
from search_dispatch.core.resilience.health_monitor import HealthMonitor, HealthThresholds
from search_dispatch.core.resilience.load_balancer import LoadBalancer
from search_dispatch.core.resilience.rate_limiter import RateLimiter
from search_dispatch.core.resilience.retry_executor import RetryExecutor, RetryPolicy
from search_dispatch.models.search import AggregationMetadata, ResultItem, SearchOptions
from search_dispatch.services.result_cache import ResultCache

logger = get_logger(__name__)


@dataclass
class BackendOutcome:
    """What one selected backend (or its fallback) contributed to a search."""

    backend: SearchBackend
    results: list[ResultItem] = field(default_factory=list)
    success: bool = False
    rate_limited: bool = False
    queue_refused: bool = False
    fallback_from: str | None = None
    error: str | None = None


@dataclass
class _SearchState:
    search_id: str
    selected_ids: set[str]
    request_ids: list[str] = field(default_factory=list)
    fallbacks_used: set[str] = field(default_factory=set)


class Dispatcher:
    """
    Multi-backend search orchestrator.

    STAGE-4: Dispatch

    All collaborators are explicit instances; use build_dispatcher() to wire
    them from settings.

    Usage:
        dispatcher = build_dispatcher(settings)
        await dispatcher.start()
        results = await dispatcher.search("rust async runtimes", SearchOptions(max_sources=2))
        await dispatcher.shutdown()
    """

    def __init__(
        self,
        registry: BackendRegistry,
        health_monitor: HealthMonitor,
        load_balancer: LoadBalancer,
        rate_limiter: RateLimiter,
        retry_executor: RetryExecutor,
        concurrency_queue: ConcurrencyQueue,
        event_bus: EventBus,
        settings: Settings,
        result_cache: ResultCache | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.health_monitor = health_monitor
        self.load_balancer = load_balancer
        self.rate_limiter = rate_limiter
        self.retry_executor = retry_executor
        self.concurrency_queue = concurrency_queue
        self.event_bus = event_bus
        self.settings = settings
        self.result_cache = result_cache
        self._clock = clock

        self._policies: dict[str, RetryPolicy] = {}
        self._background: set[asyncio.Task] = set()
        self._started = False
        self._searches = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Freeze the registry and start background health probing.

        STAGE-0.4: Dispatcher startup
        """
        if self._started:
            return
        self.registry.freeze()
        self.health_monitor.start_monitoring(self.settings.HEALTH_CHECK_INTERVAL)
        self._started = True
        logger.info(
            "Dispatcher started",
            stage=Stage.INITIALIZATION.value,
            backends=self.registry.ids(),
            strategy=self.load_balancer.strategy.value,
        )

    async def shutdown(self) -> None:
        """
        Stop probing, cancel queued work and abandoned tasks, close clients.

        STAGE-6.1: Dispatcher shutdown
        """
        await self.health_monitor.stop_monitoring()
        cancelled = self.concurrency_queue.clear_queue()

        background = list(self._background)
        for task in background:
            task.cancel()
        if background:
            await asyncio.gather(*background, return_exceptions=True)
        self._background.clear()

        await self.registry.close_all()
        self._started = False
        logger.info(
            "Dispatcher shut down",
            stage=Stage.CLEANUP.value,
            queued_cancelled=cancelled,
            background_cancelled=len(background),
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: str, options: SearchOptions | None = None) -> list[ResultItem]:
        """
        Run one search across the selected backends.

        Returns:
            list[ResultItem]: Merged results; empty when every backend failed

        Raises:
            InvalidQueryError: Blank or oversized query
            NoBackendsAvailableError: No healthy backend
            QueueFullError: Nothing succeeded and the queue refused work
        """
        options = options or SearchOptions()
        set_request_id(options.search_id)
        started = self._clock()
        self._searches += 1
        try:
            query = self._validate_query(query)

            cache_key = None
            if self.result_cache is not None and options.use_cache:
                cache_key = ResultCache.generate_cache_key(query, options)
                cached = await self.result_cache.get(cache_key)
                if cached is not None:
                    log_stage(logger, "2.1", "Result cache hit", results=len(cached))
                    return cached

            healthy = self.health_monitor.get_healthy_backends()
            if not healthy:
                raise NoBackendsAvailableError(
                    "No healthy search backends available",
                    request_id=options.search_id,
                    details={"registered": self.registry.ids()},
                ).with_suggestion("Check backend health with GET /api/v1/status")

            selected = self.load_balancer.select(healthy, options)
            if not selected:
                raise NoBackendsAvailableError(
                    "Load balancer selected no backends", request_id=options.search_id
                )

            log_stage(
                logger,
                Stage.BACKEND_SELECTION.value,
                "Backends selected",
                selected=[b.id for b in selected],
                healthy=len(healthy),
            )

            outcomes = await self._fan_out(query, options, selected)
            results = self._merge(query, outcomes)

            if not any(o.success for o in outcomes) and any(o.queue_refused for o in outcomes):
                raise QueueFullError(
                    "Concurrency queue refused every backend request",
                    request_id=options.search_id,
                    details={"refused": [o.backend.id for o in outcomes if o.queue_refused]},
                )

            if cache_key is not None and results:
                await self.result_cache.set(cache_key, results)

            logger.info(
                "Search completed",
                stage=Stage.MERGE.value,
                results=len(results),
                backends_succeeded=sum(1 for o in outcomes if o.success),
                backends_selected=len(selected),
                duration=round(self._clock() - started, 4),
            )
            return results
        finally:
            clear_request_id()

    def _validate_query(self, query: str) -> str:
        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError("Query must be a non-empty string")
        query = query.strip()
        if len(query) > MAX_QUERY_LENGTH:
            raise InvalidQueryError(
                f"Query longer than {MAX_QUERY_LENGTH} characters",
                details={"length": len(query), "max_length": MAX_QUERY_LENGTH},
            )
        return query

    async def _fan_out(
        self, query: str, options: SearchOptions, selected: list[SearchBackend]
    ) -> list[BackendOutcome]:
        """
        Submit one queued task per backend and collect outcomes until the deadline.

        STAGE-4.1: Fan-out
        """
        state = _SearchState(search_id=options.search_id, selected_ids={b.id for b in selected})
        tasks: dict[asyncio.Task, SearchBackend] = {
            asyncio.create_task(self._submit(backend, query, options, state)): backend
            for backend in selected
        }
        deadline = options.deadline or self.settings.SEARCH_DEADLINE

        try:
            done, pending = await asyncio.wait(tasks, timeout=deadline)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        if pending:
            cancelled = sum(
                1 for request_id in state.request_ids
                if self.concurrency_queue.cancel_request(request_id)
            )
            logger.warning(
                "Search deadline reached, returning partial results",
                stage="4.2",
                deadline=deadline,
                pending=[tasks[t].id for t in pending],
                queued_cancelled=cancelled,
            )
            for task in pending:
                self._background.add(task)
                task.add_done_callback(self._on_background_done)

        # Preserve selection order; merge re-orders by priority
        return [task.result() for task in tasks if task in done]

    async def _submit(
        self, backend: SearchBackend, query: str, options: SearchOptions, state: _SearchState
    ) -> BackendOutcome:
        """Task boundary: nothing raised below escapes as anything but an outcome."""
        request_id = f"{state.search_id}:{backend.id}"
        state.request_ids.append(request_id)
        try:
            return await self.concurrency_queue.execute(
                lambda: self._call_with_fallback(backend, query, options, state),
                priority=options.priority,
                timeout=options.queue_timeout,
                request_id=request_id,
                label=backend.id,
                success_of=lambda outcome: outcome.success,
            )
        except QueueFullError as e:
            return BackendOutcome(backend=backend, queue_refused=True, error=e.message)
        except QueueError as e:
            logger.info(
                "Backend request left the queue without running",
                stage="Q.6",
                backend_id=backend.id,
                reason=type(e).__name__,
            )
            return BackendOutcome(backend=backend, error=e.message)
        except Exception as e:
            logger.error(
                "Unexpected error at backend task boundary",
                stage="4.9",
                backend_id=backend.id,
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )
            return BackendOutcome(backend=backend, error=str(e))

    async def _call_with_fallback(
        self, backend: SearchBackend, query: str, options: SearchOptions, state: _SearchState
    ) -> BackendOutcome:
        outcome = await self._call_backend(backend, query, options)
        if outcome.success or outcome.rate_limited or not self.settings.FALLBACK_ENABLED:
            return outcome

        fallback = self.load_balancer.get_fallback(
            backend.id, exclude=state.selected_ids | state.fallbacks_used
        )
        if fallback is None:
            return outcome

        state.fallbacks_used.add(fallback.id)
        logger.warning(
            "Attempting fallback",
            stage="4.4",
            backend_id=backend.id,
            fallback=fallback.id,
        )
        if self.settings.FALLBACK_DELAY > 0:
            await asyncio.sleep(self.settings.FALLBACK_DELAY)

        fallback_outcome = await self._call_backend(fallback, query, options)
        fallback_outcome.fallback_from = backend.id
        return fallback_outcome

    async def _call_backend(
        self, backend: SearchBackend, query: str, options: SearchOptions
    ) -> BackendOutcome:
        """
        Admission check plus retried call for a single backend.

        STAGE-4.3: Backend call
        """
        if not self.rate_limiter.allow(backend.id, options.caller):
            return BackendOutcome(backend=backend, rate_limited=True, error="rate limited")

        def on_attempt(success: bool, error: BaseException | None, elapsed: float) -> None:
            self.health_monitor.record(backend.id, success, response_time=elapsed, error=error)
            self.rate_limiter.record_result(backend.id, success, options.caller)

        self.load_balancer.record_connection(backend.id)
        try:
            results = await self.retry_executor.run(
                lambda: backend.search(query, options),
                self._policy_for(backend),
                on_attempt=on_attempt,
                label=backend.id,
            )
        except Exception as e:
            logger.warning(
                "Backend failed after retries",
                stage="4.3",
                backend_id=backend.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            self.event_bus.publish(
                EventType.BACKEND_FAILED,
                backend.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return BackendOutcome(backend=backend, error=str(e))
        finally:
            self.load_balancer.release_connection(backend.id)

        return BackendOutcome(backend=backend, results=list(results or []), success=True)

    def _policy_for(self, backend: SearchBackend) -> RetryPolicy:
        policy = self._policies.get(backend.id)
        if policy is None:
            policy = RetryPolicy.for_backend(backend.config, self.settings.retry)
            self._policies[backend.id] = policy
        return policy

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def _merge(self, query: str, outcomes: Iterable[BackendOutcome]) -> list[ResultItem]:
        """
        Deduplicate by URL in backend priority order, then sort by relevance.

        STAGE-5.1: Merge
        """
        ordered = sorted(
            (o for o in outcomes if o.success), key=lambda o: o.backend.priority, reverse=True
        )
        aggregated_at = datetime.now(timezone.utc)
        merged: dict[str, ResultItem] = {}

        for outcome in ordered:
            for item in outcome.results:
                if item.url in merged:
                    continue
                source_backend_id = item.source_backend_id or outcome.backend.id
                merged[item.url] = item.model_copy(
                    update={
                        "source_backend_id": source_backend_id,
                        "aggregation_metadata": AggregationMetadata(
                            query=query,
                            aggregated_at=aggregated_at,
                            source_backend_id=source_backend_id,
                            source=RESULT_SOURCE_TAG,
                        ),
                    }
                )

        return sorted(merged.values(), key=lambda item: item.relevance_score, reverse=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        """
        Operational snapshot for dashboards.

        STAGE-S.1: Status report
        """
        backend_ids = self.registry.ids()
        per_backend_health = {}
        for backend_id in backend_ids:
            state = self.health_monitor.get_state(backend_id)
            per_backend_health[backend_id] = state.value if state is not None else None

        return {
            "total_backends": len(backend_ids),
            "healthy_backends": len(self.health_monitor.get_healthy_backends()),
            "per_backend_health": per_backend_health,
            "per_backend_rate_limit_remaining": {
                backend_id: self.rate_limiter.get_remaining(backend_id) for backend_id in backend_ids
            },
            "queue_depth": self.concurrency_queue.queue_depth,
            "active_count": self.concurrency_queue.active_count,
            "searches": self._searches,
            "background_tasks": len(self._background),
            "health": self.health_monitor.get_monitoring_stats(),
            "load_balancer": self.load_balancer.get_stats(),
            "queue": self.concurrency_queue.get_stats(),
            "cache": self.result_cache.stats() if self.result_cache is not None else None,
        }

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Abandoned backend task failed", stage="6.3", error=str(error))


def build_dispatcher(
    settings: Settings | None = None,
    backends: Iterable[SearchBackend] | None = None,
    event_bus: EventBus | None = None,
    retry_executor: RetryExecutor | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> Dispatcher:
    """
    Wire a Dispatcher and its collaborators from settings.

    STAGE-0.3: Component wiring

    Args:
        settings: Configuration (defaults to get_settings())
        backends: Pre-built backend clients; when None they are created from
            ``settings.BACKENDS``
        event_bus: Shared bus for observers (a new one by default)
        retry_executor: Custom executor, e.g. with a fake sleep in tests
        clock: Monotonic clock for the time-based components
    """
    settings = settings or get_settings()
    event_bus = event_bus or EventBus()

    registry = BackendRegistry()
    if backends is None:
        register_backends(registry, settings)
    else:
        for backend in backends:
            registry.register(backend)

    health_monitor = HealthMonitor(
        thresholds=HealthThresholds(
            degraded_threshold=settings.HEALTH_DEGRADED_THRESHOLD,
            unhealthy_threshold=settings.HEALTH_UNHEALTHY_THRESHOLD,
            failover_threshold=settings.HEALTH_FAILOVER_THRESHOLD,
            min_samples=settings.HEALTH_MIN_SAMPLES,
        ),
        window_seconds=settings.HEALTH_WINDOW_SECONDS,
        check_interval=settings.HEALTH_CHECK_INTERVAL,
        event_bus=event_bus,
        clock=clock,
    )
    rate_limiter = RateLimiter(
        default_window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        default_burst_allowance=settings.RATE_LIMIT_BURST_ALLOWANCE,
        adaptive_enabled=settings.RATE_LIMIT_ADAPTIVE_ENABLED,
        adaptive_threshold=settings.RATE_LIMIT_ADAPTIVE_THRESHOLD,
        event_bus=event_bus,
        clock=clock,
    )
    for backend in registry.all():
        health_monitor.register_backend(backend)
        rate_limiter.configure_backend(
            backend.id,
            rate_limit=backend.config.rate_limit,
            window_seconds=backend.config.window_seconds,
            burst_allowance=backend.config.burst_allowance,
        )

    load_balancer = LoadBalancer(
        health_monitor,
        strategy=settings.LB_STRATEGY,
        max_sources=settings.LB_MAX_SOURCES,
        seed=settings.LB_SEED,
    )
    concurrency_queue = ConcurrencyQueue(
        max_concurrent=settings.MAX_CONCURRENT_REQUESTS,
        max_queue_size=settings.MAX_QUEUE_SIZE,
        request_timeout=settings.QUEUE_REQUEST_TIMEOUT,
        task_timeout=settings.TASK_EXECUTION_TIMEOUT,
        event_bus=event_bus,
        clock=clock,
    )
    result_cache = (
        ResultCache(max_size=settings.CACHE_MAX_SIZE, ttl=settings.CACHE_TTL, clock=clock)
        if settings.CACHE_ENABLED
        else None
    )

    return Dispatcher(
        registry=registry,
        health_monitor=health_monitor,
        load_balancer=load_balancer,
        rate_limiter=rate_limiter,
        retry_executor=retry_executor or RetryExecutor(clock=clock),
        concurrency_queue=concurrency_queue,
        event_bus=event_bus,
        settings=settings,
        result_cache=result_cache,
        clock=clock,
    )
