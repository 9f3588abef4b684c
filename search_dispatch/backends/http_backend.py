"""
Generic HTTP/JSON Search Backend

Adapter for search APIs that answer a GET request with a JSON document
holding a list of hits. Field names are configured per backend through
``BackendConfig.options``:

    {
        "query_param": "q",              # query string parameter for the query
        "max_results_param": "limit",    # parameter for max_results (optional)
        "results_path": "data.items",    # dotted path to the hit list
        "url_field": "url",
        "title_field": "title",
        "snippet_field": "snippet",
        "score_field": "score",          # optional relevance score
        "params": {"format": "json"},    # extra static parameters
        "headers": {"User-Agent": "search-dispatch"}
    }

Error Translation:
-----------------
- httpx.ConnectError / NetworkError / RemoteProtocolError -> NetworkError
- httpx.TimeoutException -> BackendTimeoutError
- HTTP 429 -> RateLimitedError (Retry-After honoured when numeric)
- Other non-2xx -> BackendHTTPError(status_code)
- Undecodable or mis-shaped JSON -> InvalidResponseError

Author: System Architect
Date: 2025-12-16
"""

from typing import Any

import httpx
import orjson

from search_dispatch.backends.base import BackendConfig, SearchBackend
from search_dispatch.core.exceptions import (
    BackendHTTPError,
    BackendTimeoutError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
)
from search_dispatch.core.logging.logger import get_logger
from search_dispatch.models.search import ResultItem, SearchOptions

logger = get_logger(__name__)


class HttpJsonBackend(SearchBackend):
    """
    httpx based client for JSON search endpoints.

    The AsyncClient is created lazily and shared across calls; close() must
    be awaited on shutdown to release pooled connections.
    """

    def __init__(self, config: BackendConfig, client: httpx.AsyncClient | None = None):
        super().__init__(config)
        if not config.base_url:
            raise ValueError(f"Backend '{config.id}' of kind 'http' needs a base_url")
        self._client = client
        self._owns_client = client is None
        opts = config.options
        self.query_param: str = opts.get("query_param", "q")
        self.max_results_param: str | None = opts.get("max_results_param")
        self.results_path: str = opts.get("results_path", "results")
        self.url_field: str = opts.get("url_field", "url")
        self.title_field: str = opts.get("title_field", "title")
        self.snippet_field: str = opts.get("snippet_field", "snippet")
        self.score_field: str | None = opts.get("score_field")
        self.static_params: dict[str, Any] = dict(opts.get("params", {}))
        self.headers: dict[str, str] = dict(opts.get("headers", {}))

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                headers=self.headers,
            )
            logger.debug("HTTP client initialized", stage="4.0", backend_id=self.id)
        return self._client

    async def search(self, query: str, options: SearchOptions) -> list[ResultItem]:
        params = dict(self.static_params)
        params[self.query_param] = query
        if self.max_results_param and options.max_results:
            params[self.max_results_param] = options.max_results
        if options.language:
            params.setdefault("language", options.language)

        try:
            response = await self._get_client().get(self.config.base_url, params=params)
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(
                f"{self.id} timed out after {self.config.timeout}s", backend_id=self.id
            ) from e
        except (httpx.ConnectError, httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise NetworkError.from_exception(
                e, message=f"Cannot reach {self.id}", backend_id=self.id
            ) from e

        if response.status_code == 429:
            raise RateLimitedError(
                f"{self.id} rate limited the request",
                backend_id=self.id,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if response.status_code >= 400:
            raise BackendHTTPError(
                f"{self.id} returned HTTP {response.status_code}",
                status_code=response.status_code,
                backend_id=self.id,
                details={"response_text": response.text[:500] if response.text else None},
            )

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise InvalidResponseError.from_exception(
                e, message=f"{self.id} returned invalid JSON", backend_id=self.id
            ) from e

        return self._parse_hits(payload, options)

    def _parse_hits(self, payload: Any, options: SearchOptions) -> list[ResultItem]:
        hits = payload
        for part in self.results_path.split("."):
            if not part:
                continue
            if not isinstance(hits, dict) or part not in hits:
                raise InvalidResponseError(
                    f"{self.id} response has no '{self.results_path}'",
                    backend_id=self.id,
                )
            hits = hits[part]

        if not isinstance(hits, list):
            raise InvalidResponseError(
                f"{self.id} '{self.results_path}' is not a list", backend_id=self.id
            )

        results = []
        for hit in hits:
            if not isinstance(hit, dict) or not hit.get(self.url_field):
                continue
            score = hit.get(self.score_field) if self.score_field else None
            results.append(
                ResultItem(
                    url=str(hit[self.url_field]),
                    title=str(hit.get(self.title_field) or ""),
                    snippet=_as_text(hit.get(self.snippet_field)),
                    relevance_score=float(score) if isinstance(score, int | float) else 0.0,
                    source_backend_id=self.id,
                    raw_payload=hit,
                )
            )

        if options.max_results is not None:
            results = results[: options.max_results]
        return results

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)
