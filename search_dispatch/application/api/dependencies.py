"""
FastAPI Dependency Injection

Route handlers receive the Dispatcher and metrics collector that the
application lifespan stored on ``app.state``. Tests replace them by setting
``app.state`` directly before the first request.
"""

from typing import Annotated

from fastapi import Depends, Request

from search_dispatch.monitoring.metrics_collector import PrometheusEventObserver
from search_dispatch.services.dispatcher import Dispatcher


def get_dispatcher(request: Request) -> Dispatcher:
    """
    Retrieve the Dispatcher from application state.

    Raises:
        RuntimeError: If the lifespan did not run and nothing was injected
    """
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise RuntimeError("Dispatcher not initialized; is the application lifespan running?")
    return dispatcher


def get_metrics(request: Request) -> PrometheusEventObserver | None:
    return getattr(request.app.state, "metrics", None)


DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]
MetricsDep = Annotated[PrometheusEventObserver | None, Depends(get_metrics)]
