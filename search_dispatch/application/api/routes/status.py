"""
Status and Metrics Routes

- GET /status: operational snapshot (backend health, rate limit headroom,
  queue depth, active count) for dashboards
- GET /metrics: Prometheus exposition of the event-driven metrics
"""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST

from search_dispatch.application.api.dependencies import DispatcherDep, MetricsDep

router = APIRouter(tags=["Status"])
metrics_router = APIRouter(tags=["Metrics"])


@router.get("/status")
async def status(dispatcher: DispatcherDep):
    return dispatcher.get_status()


@metrics_router.get("/metrics")
async def metrics(collector: MetricsDep):
    """Prometheus scrape endpoint."""
    if collector is None:
        return Response(content=b"", media_type=CONTENT_TYPE_LATEST)
    return Response(content=collector.get_prometheus_metrics(), media_type=collector.get_content_type())
