"""
FastAPI Application Entry Point

Configures the Search Dispatch HTTP surface: lifespan wiring of the
Dispatcher, request correlation middleware, exception handlers and routes.

Author: System Architect
Date: 2025-12-12
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from search_dispatch.application.api.routes.health import router as health_router
from search_dispatch.application.api.routes.search import router as search_router
from search_dispatch.application.api.routes.status import metrics_router
from search_dispatch.application.api.routes.status import router as status_router
from search_dispatch.core.config.constants import HEADER_REQUEST_ID, Stage
from search_dispatch.core.config.settings import Settings, get_settings
from search_dispatch.core.exceptions import (
    DispatchBaseError,
    NoBackendsAvailableError,
    QueueFullError,
    ValidationError,
)
from search_dispatch.core.logging.logger import clear_request_id, get_logger, set_request_id, setup_logging
from search_dispatch.monitoring.metrics_collector import PrometheusEventObserver
from search_dispatch.services.dispatcher import Dispatcher, build_dispatcher

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).

    A Dispatcher already present on ``app.state`` (injected by create_app) is
    used as-is; otherwise one is built from settings.
    """
    settings: Settings = app.state.settings

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting Search Dispatch Service",
        stage=Stage.INITIALIZATION.value,
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    dispatcher: Dispatcher | None = app.state.dispatcher
    if dispatcher is None:
        dispatcher = build_dispatcher(settings)
        app.state.dispatcher = dispatcher

    metrics = PrometheusEventObserver(settings=settings)
    dispatcher.event_bus.subscribe(metrics)
    app.state.metrics = metrics

    try:
        await dispatcher.start()
        logger.info("Application startup complete", stage=Stage.INITIALIZATION.value)

        yield

    finally:
        logger.info("Shutting down application", stage=Stage.CLEANUP.value)
        dispatcher.event_bus.unsubscribe(metrics)
        await dispatcher.shutdown()
        logger.info("Application shutdown complete", stage=Stage.CLEANUP.value)


# ============================================================================
# Exception Handlers
# ============================================================================


def _error_response(status_code: int, exc: DispatchBaseError) -> JSONResponse:
    headers = {HEADER_REQUEST_ID: exc.request_id} if exc.request_id else None
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


async def validation_exception_handler(request: Request, exc: ValidationError):
    logger.info("Rejected search request", error=exc.message, error_type=type(exc).__name__)
    return _error_response(400, exc)


async def unavailable_exception_handler(request: Request, exc: DispatchBaseError):
    """No usable backend, or the queue refused every backend call."""
    logger.warning("Search unavailable", error=exc.message, error_type=type(exc).__name__)
    return _error_response(503, exc)


async def dispatch_exception_handler(request: Request, exc: DispatchBaseError):
    logger.error(
        f"Dispatch exception: {exc.message}",
        error_type=type(exc).__name__,
        request_id=exc.request_id,
    )
    return _error_response(500, exc)


# ============================================================================
# Middleware
# ============================================================================


async def request_id_middleware(request: Request, call_next):
    """
    Inject a request ID into all requests for log correlation.
    """
    request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
    set_request_id(request_id)

    try:
        response = await call_next(request)
        response.headers[HEADER_REQUEST_ID] = request_id
        return response

    finally:
        clear_request_id()


# ============================================================================
# Application Factory
# ============================================================================


def create_app(settings: Settings | None = None, dispatcher: Dispatcher | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration (defaults to get_settings())
        dispatcher: Pre-built Dispatcher, mainly for tests

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Multi-backend search dispatch with rate limiting, health tracking and retries",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.metrics = None

    app.middleware("http")(request_id_middleware)

    # Starlette picks the most specific handler along the exception MRO.
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(NoBackendsAvailableError, unavailable_exception_handler)
    app.add_exception_handler(QueueFullError, unavailable_exception_handler)
    app.add_exception_handler(DispatchBaseError, dispatch_exception_handler)

    base_path = settings.API_BASE_PATH
    app.include_router(health_router, prefix=base_path)
    app.include_router(search_router, prefix=base_path)
    app.include_router(status_router, prefix=base_path)
    app.include_router(metrics_router)

    @app.get("/", tags=["Root"])
    async def root():
        """
        Root endpoint with API information.
        """
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{base_path}/health",
        }

    return app
