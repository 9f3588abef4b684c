"""
Search request and result models.

ResultItem is what backends return and what the dispatcher merges.
SearchOptions carries the per-call knobs for Dispatcher.search().
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class AggregationMetadata(BaseModel):
    """Provenance stamped onto every merged result."""

    model_config = {"frozen": True}

    query: str
    aggregated_at: datetime
    source_backend_id: str
    source: str


class ResultItem(BaseModel):
    """
    One search hit.

    ``url`` is the deduplication key across backends. ``raw_payload`` keeps
    the backend's original record untouched for downstream consumers.
    """

    url: str = Field(..., min_length=1)
    title: str = ""
    source_backend_id: str = ""
    snippet: str | None = None
    relevance_score: float = 0.0
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    aggregation_metadata: AggregationMetadata | None = None


class SearchOptions(BaseModel):
    """
    Per-call search options.

    Rationale: all limits are optional so the dispatcher can fall back to the
    configured defaults; ``sources`` narrows backend selection but never to
    an empty set.
    """

    model_config = {"frozen": True}

    sources: list[str] | None = Field(default=None, description="Restrict to these backend ids")
    max_sources: int | None = Field(default=None, ge=1, description="Fan-out cap")
    max_results: int | None = Field(default=None, ge=1, description="Hint passed to backends")
    priority: int = Field(default=0, description="Queue priority (lower runs first)")
    deadline: float | None = Field(default=None, gt=0, description="Overall deadline in seconds")
    queue_timeout: float | None = Field(default=None, gt=0, description="Max wait for a slot")
    use_cache: bool = True
    language: str | None = None
    time_range: str | None = None
    caller: str | None = Field(default=None, description="Caller identity for per-caller limits")
    search_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    @field_validator("sources")
    @classmethod
    def strip_sources(cls, v):
        if v is None:
            return v
        return [s.strip() for s in v if s and s.strip()]

    def cache_fields(self) -> dict[str, Any]:
        """Fields that change the result set and therefore the cache key."""
        return {
            "max_results": self.max_results,
            "language": self.language,
            "time_range": self.time_range,
            "sources": sorted(self.sources) if self.sources else None,
        }
