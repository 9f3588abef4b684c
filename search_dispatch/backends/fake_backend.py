import asyncio
import random
from collections.abc import Callable
from typing import Any

from search_dispatch.backends.base import BackendConfig, SearchBackend
from search_dispatch.core.exceptions import BackendError
from search_dispatch.core.logging import get_logger
from search_dispatch.models.search import ResultItem, SearchOptions

logger = get_logger(__name__)


class FakeBackend(SearchBackend):
    """
    A fake search backend for tests and local demonstration.

    Behaviour is scripted through ``options`` (or constructor overrides):
    - ``latency``: seconds to sleep per call (or a (min, max) tuple)
    - ``failure_rate``: probability of raising ``error`` instead of answering
    - ``results``: number of synthetic results to return
    - ``script``: list of outcomes consumed one per call; an outcome is an
      exception instance (raised) or a list of ResultItems (returned). When
      exhausted, behaviour falls back to the synthetic results.
    """

    def __init__(
        self,
        config: BackendConfig,
        latency: float | tuple[float, float] | None = None,
        failure_rate: float | None = None,
        results: int | None = None,
        script: list[Any] | None = None,
        error_factory: Callable[[str], Exception] | None = None,
        rng: random.Random | None = None,
    ):
        super().__init__(config)
        opts = config.options
        self.latency = latency if latency is not None else opts.get("latency", 0.0)
        self.failure_rate = failure_rate if failure_rate is not None else opts.get("failure_rate", 0.0)
        self.results = results if results is not None else opts.get("results", 3)
        self.script = list(script or [])
        self.error_factory = error_factory or (
            lambda backend_id: BackendError("Simulated backend failure", backend_id=backend_id)
        )
        self._rng = rng or random.Random()
        self.calls: list[str] = []

    async def search(self, query: str, options: SearchOptions) -> list[ResultItem]:
        self.calls.append(query)
        await self._sleep()

        if self.script:
            outcome = self.script.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return list(outcome)

        if self.failure_rate > 0 and self._rng.random() < self.failure_rate:
            raise self.error_factory(self.id)

        count = self.results
        if options.max_results is not None:
            count = min(count, options.max_results)
        return [self._make_result(query, i) for i in range(count)]

    async def _sleep(self) -> None:
        latency = self.latency
        if isinstance(latency, tuple | list):
            latency = self._rng.uniform(latency[0], latency[1])
        if latency:
            await asyncio.sleep(latency)

    def _make_result(self, query: str, rank: int) -> ResultItem:
        slug = "-".join(query.lower().split()) or "empty"
        return ResultItem(
            url=f"https://{self.id}.example/{slug}/{rank}",
            title=f"{query} ({self.id} #{rank + 1})",
            source_backend_id=self.id,
            snippet=f"Synthetic result {rank + 1} for '{query}'",
            relevance_score=round(1.0 / (rank + 1), 4),
            raw_payload={"rank": rank, "backend": self.id},
        )
