#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Translates dispatch events into Prometheus metrics:
- Rate limit rejections per backend
- Backend failures, recoveries and current health state
- Queue admissions, completions and depth
- Backend request duration histogram

Architectural Decision: prometheus-client behind the event bus
- Components never import metrics code; they publish events
- Each collector owns a CollectorRegistry so several dispatchers (and tests)
  can coexist in one process without duplicate-metric errors

Author: System Architect
Date: 2025-12-18
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from search_dispatch.core.config.settings import Settings, get_settings
from search_dispatch.core.logging.logger import get_logger
from search_dispatch.core.observability.events import DispatchEvent, EventType

logger = get_logger(__name__)

HEALTH_STATE_VALUES = {"healthy": 0, "degraded": 1, "unhealthy": 2}


class PrometheusEventObserver:
    """
    Event observer that maintains Prometheus metrics.

    STAGE-M: Metrics collection

    Usage:
        metrics = PrometheusEventObserver()
        event_bus.subscribe(metrics)

        body = metrics.get_prometheus_metrics()
    """

    def __init__(self, registry: CollectorRegistry | None = None, settings: Settings | None = None):
        self.registry = registry or CollectorRegistry()
        settings = settings or get_settings()

        self.rate_limit_exceeded = Counter(
            "search_rate_limit_exceeded_total",
            "Requests rejected by the per-backend rate limiter",
            ["backend"],
            registry=self.registry,
        )
        self.backend_failures = Counter(
            "search_backend_failures_total",
            "Backend calls that failed after retries",
            ["backend", "error_type"],
            registry=self.registry,
        )
        self.backend_recoveries = Counter(
            "search_backend_recoveries_total",
            "Backends that returned to healthy",
            ["backend"],
            registry=self.registry,
        )
        self.backend_health = Gauge(
            "search_backend_health_state",
            "Backend health state (0=healthy, 1=degraded, 2=unhealthy)",
            ["backend"],
            registry=self.registry,
        )
        self.requests_queued = Counter(
            "search_requests_queued_total",
            "Backend requests that had to wait for a concurrency slot",
            ["backend"],
            registry=self.registry,
        )
        self.requests_completed = Counter(
            "search_requests_completed_total",
            "Backend requests that ran to completion",
            ["backend", "status"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            "search_backend_request_duration_seconds",
            "Time a backend request held a concurrency slot",
            ["backend"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self.registry,
        )
        self.queue_depth = Gauge(
            "search_queue_depth",
            "Requests waiting for a concurrency slot",
            registry=self.registry,
        )
        app_info = Info("search_dispatch_app", "Application information", registry=self.registry)
        app_info.info({
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "app_name": settings.app.APP_NAME,
        })

        logger.info("Metrics collector initialized", stage="M.0")

    def on_event(self, event: DispatchEvent) -> None:
        backend = event.backend_id or "unknown"
        data = event.data

        if event.type == EventType.RATE_LIMIT_EXCEEDED:
            self.rate_limit_exceeded.labels(backend=backend).inc()
        elif event.type == EventType.BACKEND_FAILED:
            self.backend_failures.labels(
                backend=backend, error_type=data.get("error_type", "unknown")
            ).inc()
        elif event.type == EventType.BACKEND_RECOVERED:
            self.backend_recoveries.labels(backend=backend).inc()
        elif event.type == EventType.BACKEND_STATE_CHANGED:
            self.backend_health.labels(backend=backend).set(
                HEALTH_STATE_VALUES.get(data.get("state"), 0)
            )
        elif event.type == EventType.REQUEST_QUEUED:
            self.requests_queued.labels(backend=backend).inc()
            self.queue_depth.set(data.get("queue_depth", 0))
        elif event.type == EventType.REQUEST_COMPLETED:
            status = "success" if data.get("success") else "failure"
            self.requests_completed.labels(backend=backend, status=status).inc()
            if "duration" in data:
                self.request_duration.labels(backend=backend).observe(data["duration"])
            self.queue_depth.set(data.get("queue_depth", 0))

    def get_prometheus_metrics(self) -> bytes:
        """Prometheus text exposition of this collector's registry."""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST
