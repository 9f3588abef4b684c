"""
Backend Load Balancer

Chooses which backends a search fans out to, and which backend takes over
when one fails.

Strategies:
- round-robin: rotate the starting point through the candidates on every call
- weighted: priority-proportional sampling without replacement
  (Efraimidis-Spirakis keys, weight = max(priority, 1)); seeded for tests
- least-connections: fewest in-flight requests first, ties by priority
- health-based: HEALTHY before DEGRADED, then priority (default)

The candidate list passed to select() already excludes UNHEALTHY backends.
``options.sources`` narrows the candidates; a restriction that matches
nothing is ignored rather than producing an empty selection.

Author: System Architect
Date: 2025-12-17
"""

import random
from typing import Any

from search_dispatch.backends.base import SearchBackend
from search_dispatch.core.config.constants import (
    DEFAULT_MAX_SOURCES,
    HealthState,
    LoadBalancingStrategy,
    Stage,
)
from search_dispatch.core.logging.logger import get_logger
from search_dispatch.core.resilience.health_monitor import HealthMonitor
from search_dispatch.models.search import SearchOptions

logger = get_logger(__name__)


class LoadBalancer:
    """
    Backend selection and failover.

    Usage:
        balancer = LoadBalancer(health_monitor, strategy=LoadBalancingStrategy.WEIGHTED, seed=7)
        chosen = balancer.select(health_monitor.get_healthy_backends(), options)

        fallback = balancer.get_fallback("arxiv", exclude={"pubmed"})
    """

    def __init__(
        self,
        health_monitor: HealthMonitor,
        strategy: LoadBalancingStrategy = LoadBalancingStrategy.HEALTH_BASED,
        max_sources: int = DEFAULT_MAX_SOURCES,
        seed: int | None = None,
        rng: random.Random | None = None,
    ):
        self._health = health_monitor
        self.strategy = LoadBalancingStrategy(strategy)
        self.max_sources = max_sources
        self._rng = rng or random.Random(seed)
        self._rr_index = 0
        self._connections: dict[str, int] = {}
        self._selections: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(
        self, healthy_backends: list[SearchBackend], options: SearchOptions | None = None
    ) -> list[SearchBackend]:
        """
        Pick up to ``max_sources`` distinct backends for one search.

        STAGE-3.1: Backend selection
        """
        options = options or SearchOptions()
        candidates = list(healthy_backends)

        if options.sources:
            wanted = set(options.sources)
            restricted = [b for b in candidates if b.id in wanted]
            if restricted:
                candidates = restricted
            else:
                logger.info(
                    "Requested sources unavailable, using all healthy backends",
                    stage=Stage.LOAD_BALANCER.value,
                    requested=options.sources,
                )

        limit = options.max_sources or self.max_sources
        if not candidates:
            return []

        if self.strategy == LoadBalancingStrategy.ROUND_ROBIN:
            ordered = self._round_robin(candidates)
        elif self.strategy == LoadBalancingStrategy.WEIGHTED:
            ordered = self._weighted(candidates)
        elif self.strategy == LoadBalancingStrategy.LEAST_CONNECTIONS:
            ordered = self._least_connections(candidates)
        else:
            ordered = self._health_based(candidates)

        selected = ordered[:limit]
        for backend in selected:
            self._selections[backend.id] = self._selections.get(backend.id, 0) + 1

        logger.debug(
            "Backends selected",
            stage="LB.1",
            strategy=self.strategy.value,
            selected=[b.id for b in selected],
            candidates=len(candidates),
        )
        return selected

    def _round_robin(self, candidates: list[SearchBackend]) -> list[SearchBackend]:
        start = self._rr_index % len(candidates)
        self._rr_index += 1
        return candidates[start:] + candidates[:start]

    def _weighted(self, candidates: list[SearchBackend]) -> list[SearchBackend]:
        # key = u ** (1 / w); descending keys give a weighted sample without replacement
        keyed = [
            (self._rng.random() ** (1.0 / max(backend.priority, 1)), backend)
            for backend in candidates
        ]
        keyed.sort(key=lambda pair: pair[0], reverse=True)
        return [backend for _, backend in keyed]

    def _least_connections(self, candidates: list[SearchBackend]) -> list[SearchBackend]:
        return sorted(candidates, key=lambda b: (self._connections.get(b.id, 0), -b.priority))

    def _health_based(self, candidates: list[SearchBackend]) -> list[SearchBackend]:
        def rank(backend: SearchBackend) -> tuple[int, int]:
            state = self._health.get_state(backend.id)
            return (0 if state in (HealthState.HEALTHY, None) else 1, -backend.priority)

        return sorted(candidates, key=rank)

    # ------------------------------------------------------------------
    # Failover
    # ------------------------------------------------------------------

    def get_fallback(
        self, current_backend_id: str, exclude: set[str] | list[str] | tuple = ()
    ) -> SearchBackend | None:
        """
        Highest-priority HEALTHY backend other than the current one.

        STAGE-LB.2: Fallback selection
        """
        excluded = set(exclude) | {current_backend_id}
        candidates = [
            backend
            for backend in self._health.get_healthy_backends()
            if backend.id not in excluded
            and self._health.get_state(backend.id) == HealthState.HEALTHY
        ]
        if not candidates:
            logger.info(
                "No fallback backend available", stage="LB.2", current=current_backend_id
            )
            return None

        fallback = max(candidates, key=lambda b: b.priority)
        logger.info(
            "Fallback backend chosen",
            stage="LB.2",
            current=current_backend_id,
            fallback=fallback.id,
        )
        return fallback

    # ------------------------------------------------------------------
    # In-flight accounting
    # ------------------------------------------------------------------

    def record_connection(self, backend_id: str) -> None:
        self._connections[backend_id] = self._connections.get(backend_id, 0) + 1

    def release_connection(self, backend_id: str) -> None:
        current = self._connections.get(backend_id, 0)
        self._connections[backend_id] = max(0, current - 1)

    def get_connections(self, backend_id: str) -> int:
        return self._connections.get(backend_id, 0)

    def get_stats(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "max_sources": self.max_sources,
            "active_connections": dict(self._connections),
            "selections": dict(self._selections),
        }
