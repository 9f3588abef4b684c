"""
Health Check Routes

LIVENESS vs READINESS:
----------------------
- GET /health: always 200 while the process runs; reports the aggregate
  backend picture (healthy / degraded / unhealthy)
- GET /health/ready: 503 when no backend is usable, so a load balancer stops
  routing searches that could only fail with NoBackendsAvailableError
"""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from search_dispatch.application.api.dependencies import DispatcherDep

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    status: str  # "healthy", "degraded", "unhealthy"
    timestamp: str
    components: dict | None = None


def _summarize(dispatcher) -> HealthResponse:
    status = dispatcher.get_status()
    states = list(status["per_backend_health"].values())
    if status["healthy_backends"] == 0:
        overall = "unhealthy"
    elif any(state != "healthy" for state in states):
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        components={
            "backends": status["per_backend_health"],
            "queue": dispatcher.concurrency_queue.get_health_status(),
        },
    )


@router.get("", response_model=HealthResponse)
async def health_check(dispatcher: DispatcherDep):
    """Aggregate health for monitoring; never fails."""
    return _summarize(dispatcher)


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(dispatcher: DispatcherDep):
    """Readiness probe: 503 when no backend can serve a search."""
    summary = _summarize(dispatcher)
    if summary.status == "unhealthy":
        raise HTTPException(status_code=503, detail=summary.model_dump())
    return summary
