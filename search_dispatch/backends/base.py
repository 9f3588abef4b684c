#!/usr/bin/env python3
"""
Search Backend Abstract Class

This module defines the boundary between the dispatch core and concrete
search backend clients (HTTP APIs, local indexes, fakes).

Architectural Decision: Abstract base class for a uniform client contract
- search() returns ResultItems or raises a typed BackendError
- Retries, rate limiting and health tracking live in the dispatch core,
  never inside a client
- health_check() defaults to a one-result probe search

Author: System Architect
Date: 2025-12-15
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from search_dispatch.core.config.constants import HEALTH_PROBE_QUERY
from search_dispatch.core.config.settings import BackendSettings
from search_dispatch.core.logging.logger import get_logger
from search_dispatch.models.search import ResultItem, SearchOptions

logger = get_logger(__name__)


@dataclass(frozen=True)
class BackendConfig:
    """
    Immutable configuration of one backend.

    Attributes:
        id: Backend identifier (unique in the registry)
        priority: Higher is preferred during selection, fallback and merge
        rate_limit: Requests allowed per window
        timeout: Per-attempt timeout in seconds
        max_retry_attempts: Retries after the first attempt
        enabled: Disabled backends are never selected
        window_seconds: Rate limit window override
        burst_allowance: Burst override
        retry_base_delay / retry_max_delay / backoff_multiplier: Retry overrides
        retry_preset: Named retry preset (arxiv, pubmed, github, searx, default)
        base_url: Endpoint for HTTP clients
        options: Client specific options
    """

    id: str
    priority: int = 1
    rate_limit: int = 60
    timeout: float = 10.0
    max_retry_attempts: int = 3
    enabled: bool = True
    window_seconds: float | None = None
    burst_allowance: int | None = None
    retry_base_delay: float | None = None
    retry_max_delay: float | None = None
    backoff_multiplier: float | None = None
    retry_preset: str | None = None
    base_url: str | None = None
    options: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @classmethod
    def from_settings(cls, backend_id: str, settings: BackendSettings) -> "BackendConfig":
        return cls(
            id=backend_id,
            priority=settings.priority,
            rate_limit=settings.rate_limit,
            timeout=settings.timeout,
            max_retry_attempts=settings.retry_attempts,
            enabled=settings.enabled,
            window_seconds=settings.window_seconds,
            burst_allowance=settings.burst_allowance,
            retry_base_delay=settings.retry_base_delay,
            retry_max_delay=settings.retry_max_delay,
            backoff_multiplier=settings.backoff_multiplier,
            retry_preset=settings.retry_preset,
            base_url=settings.base_url,
            options=dict(settings.options),
        )


class SearchBackend(ABC):
    """
    Abstract base class for search backends.

    STAGE-4: Backend client base class

    Subclasses must implement:
    - search(): One attempt against the backend

    Usage:
        class WikipediaBackend(SearchBackend):
            async def search(self, query, options):
                ...
    """

    def __init__(self, config: BackendConfig):
        self.config = config

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def priority(self) -> int:
        return self.config.priority

    @abstractmethod
    async def search(self, query: str, options: SearchOptions) -> list[ResultItem]:
        """
        Run one search attempt.

        STAGE-4.3: Backend specific search

        Raises:
            BackendError: Typed failure (network, timeout, HTTP status, 429, parse)
        """
        pass

    async def health_check(self) -> dict[str, Any]:
        """
        Probe the backend with a one-result search.

        STAGE-HM.P: Backend health probe

        Exceptions propagate; the health monitor records them as failures.
        """
        results = await self.search(HEALTH_PROBE_QUERY, SearchOptions(max_results=1))
        return {"status": "healthy", "backend": self.id, "results": len(results)}

    async def close(self) -> None:
        """Release client resources (connection pools). No-op by default."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id='{self.id}', priority={self.priority})"
