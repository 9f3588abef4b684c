#!/usr/bin/env python3
"""
In-Process Search Result Cache

LRU cache with per-entry TTL for merged search results. A repeated query
with the same result-shaping options is answered without touching any
backend.

Implementation Details:
- OrderedDict for O(1) access and LRU ordering
- asyncio.Lock around every mutation
- Entries expire lazily on read and are evicted oldest-first at capacity
- Keys are md5 over an orjson dump (sorted keys) of the normalized query
  and the options that change the result set

This cache is per process and does not survive restarts.

Author: System Architect
Date: 2025-12-18
"""

import asyncio
import hashlib
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

import orjson

from search_dispatch.core.config.constants import RESULT_CACHE_MAX_SIZE, RESULT_CACHE_TTL
from search_dispatch.core.logging.logger import get_logger
from search_dispatch.models.search import ResultItem, SearchOptions

logger = get_logger(__name__)


class ResultCache:
    """
    LRU + TTL cache of merged results.

    STAGE-2: Result cache

    Usage:
        cache = ResultCache(max_size=1000, ttl=300)
        key = ResultCache.generate_cache_key(query, options)
        cached = await cache.get(key)
    """

    def __init__(
        self,
        max_size: int = RESULT_CACHE_MAX_SIZE,
        ttl: float = RESULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._cache: OrderedDict[str, tuple[float, list[ResultItem]]] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def generate_cache_key(query: str, options: SearchOptions) -> str:
        """
        Consistent key for a query and its result-shaping options.

        STAGE-2.1: Cache key generation

        Uses MD5 for fast hashing (collision risk acceptable for cache).
        """
        data = orjson.dumps(
            {"query": query.strip().lower(), **options.cache_fields()},
            option=orjson.OPT_SORT_KEYS,
        )
        return f"search:{hashlib.md5(data).hexdigest()}"

    async def get(self, key: str) -> list[ResultItem] | None:
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            expires_at, results = entry
            if self._clock() >= expires_at:
                del self._cache[key]
                self._misses += 1
                return None

            self._cache.move_to_end(key)
            self._hits += 1
            return [item.model_copy(deep=True) for item in results]

    async def set(self, key: str, results: list[ResultItem], ttl: float | None = None) -> None:
        async with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            stored = [item.model_copy(deep=True) for item in results]
            self._cache[key] = (self._clock() + (self._ttl if ttl is None else ttl), stored)

            while len(self._cache) > self._max_size:
                self._cache.popitem(last=False)
                self._evictions += 1

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()
        logger.info("Result cache cleared", stage="2.3")

    def size(self) -> int:
        return len(self._cache)

    def stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "size": len(self._cache),
            "max_size": self._max_size,
            "ttl": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": self._hits / total if total else 0.0,
        }
