"""
Search Routes

POST /search fans a query out through the Dispatcher and returns the merged
result list. Systemic failures are turned into HTTP errors by the exception
handlers registered in application/app.py:

- InvalidQueryError -> 400
- NoBackendsAvailableError / QueueFullError -> 503
"""

from fastapi import APIRouter, Header
from pydantic import BaseModel, Field

from search_dispatch.application.api.dependencies import DispatcherDep
from search_dispatch.core.config.constants import HEADER_REQUEST_ID
from search_dispatch.models.search import ResultItem, SearchOptions

router = APIRouter(tags=["Search"])


class SearchRequest(BaseModel):
    """Search request body."""

    query: str = Field(..., min_length=1, max_length=2048)
    sources: list[str] | None = None
    max_sources: int | None = Field(default=None, ge=1)
    max_results: int | None = Field(default=None, ge=1)
    priority: int = 0
    deadline: float | None = Field(default=None, gt=0)
    use_cache: bool = True
    language: str | None = None
    time_range: str | None = None
    caller: str | None = None


class SearchResponse(BaseModel):
    query: str
    search_id: str
    count: int
    results: list[ResultItem]


@router.post("/search", response_model=SearchResponse)
async def search(
    body: SearchRequest,
    dispatcher: DispatcherDep,
    x_request_id: str | None = Header(default=None, alias=HEADER_REQUEST_ID),
):
    """Run one multi-backend search."""
    option_fields = body.model_dump(exclude={"query"})
    if x_request_id:
        option_fields["search_id"] = x_request_id
    options = SearchOptions(**option_fields)

    results = await dispatcher.search(body.query, options)
    return SearchResponse(
        query=body.query,
        search_id=options.search_id,
        count=len(results),
        results=results,
    )
