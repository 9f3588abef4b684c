"""
Unit Tests for ResultCache

Tests key normalization, TTL expiry, LRU eviction and copy isolation.
"""

import pytest

from search_dispatch.models.search import ResultItem, SearchOptions
from search_dispatch.services.result_cache import ResultCache


def results(*urls):
    return [ResultItem(url=url, title=url) for url in urls]


@pytest.mark.unit
class TestCacheKeys:
    def test_key_ignores_case_and_whitespace(self):
        options = SearchOptions()
        assert ResultCache.generate_cache_key(" Rust ", options) == ResultCache.generate_cache_key(
            "rust", options
        )

    def test_key_ignores_search_id_and_priority(self):
        a = SearchOptions(search_id="one", priority=0)
        b = SearchOptions(search_id="two", priority=9)
        assert ResultCache.generate_cache_key("q", a) == ResultCache.generate_cache_key("q", b)

    def test_key_depends_on_result_shaping_options(self):
        base = ResultCache.generate_cache_key("q", SearchOptions())
        assert base != ResultCache.generate_cache_key("q", SearchOptions(max_results=5))
        assert base != ResultCache.generate_cache_key("q", SearchOptions(language="de"))

    def test_source_order_does_not_matter(self):
        a = ResultCache.generate_cache_key("q", SearchOptions(sources=["wiki", "arxiv"]))
        b = ResultCache.generate_cache_key("q", SearchOptions(sources=["arxiv", "wiki"]))
        assert a == b
        assert a.startswith("search:")


@pytest.mark.unit
class TestCacheBehaviour:
    @pytest.mark.asyncio
    async def test_set_and_get(self, clock):
        cache = ResultCache(ttl=10, clock=clock)
        await cache.set("k", results("https://a"))
        cached = await cache.get("k")
        assert [r.url for r in cached] == ["https://a"]
        assert cache.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_entries_expire(self, clock):
        cache = ResultCache(ttl=10, clock=clock)
        await cache.set("k", results("https://a"))
        clock.advance(10)
        assert await cache.get("k") is None
        assert cache.size() == 0

    @pytest.mark.asyncio
    async def test_explicit_ttl_overrides_default(self, clock):
        cache = ResultCache(ttl=10, clock=clock)
        await cache.set("zero", results("https://a"), ttl=0)
        await cache.set("short", results("https://b"), ttl=2)

        assert await cache.get("zero") is None
        clock.advance(2)
        assert await cache.get("short") is None

    @pytest.mark.asyncio
    async def test_lru_eviction(self, clock):
        cache = ResultCache(max_size=2, ttl=100, clock=clock)
        await cache.set("a", results("https://a"))
        await cache.set("b", results("https://b"))
        await cache.get("a")
        await cache.set("c", results("https://c"))

        assert await cache.get("b") is None
        assert await cache.get("a") is not None
        assert cache.stats()["evictions"] == 1

    @pytest.mark.asyncio
    async def test_returned_items_are_copies(self, clock):
        cache = ResultCache(clock=clock)
        await cache.set("k", results("https://a"))
        first = await cache.get("k")
        first[0].raw_payload["touched"] = True
        second = await cache.get("k")
        assert second[0].raw_payload == {}

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, clock):
        cache = ResultCache(clock=clock)
        await cache.set("a", results("https://a"))
        await cache.set("b", results("https://b"))
        assert await cache.delete("a") is True
        assert await cache.delete("a") is False
        await cache.clear()
        assert cache.size() == 0
