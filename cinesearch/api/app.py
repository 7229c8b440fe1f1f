"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics and
health checks.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from cinesearch import __version__
from cinesearch.api.routes import admin_router, router
from cinesearch.config import Environment, get_settings
from cinesearch.container import build_services
from cinesearch.exceptions import CineSearchError, ErrorCode, VectorStoreError
from cinesearch.logging_config import get_logger, setup_logging
from cinesearch.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the services unless they were injected, and makes sure the
    vector collection exists. A collection failure is logged and the
    service still starts; vector calls will fail until it is fixed.
    """
    # Startup
    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        json_output=settings.environment != Environment.DEVELOPMENT,
    )
    logger.info(
        "Starting catalog search",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
        },
    )

    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = build_services(settings)

    try:
        await app.state.services.orchestrator.ensure_collection()
    except VectorStoreError as e:
        logger.error(
            f"Failed to initialize vector collection: {e.message}",
            extra={"error_code": e.code.value},
        )

    yield

    # Shutdown
    logger.info("Shutting down catalog search")
    if owns_services:
        await app.state.services.close()
        app.state.services = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="CineSearch",
        description="Semantic and attribute search over a movie catalog",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.services = None

    app.add_middleware(MetricsMiddleware)

    # Register exception handlers
    app.add_exception_handler(CineSearchError, cinesearch_exception_handler)

    # Register routes
    app.include_router(router)
    app.include_router(admin_router)
    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Metrics"])

    return app


async def cinesearch_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle CineSearchError exceptions.

    Converts exceptions to structured JSON responses.
    """
    if not isinstance(exc, CineSearchError):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": str(exc),
                    "details": {},
                }
            },
        )

    status_code = get_status_code(exc.code)
    log = logger.warning if status_code < 500 else logger.error
    log(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict(),
    )


_BAD_REQUEST = {
    ErrorCode.VALIDATION_ERROR,
    ErrorCode.EMPTY_INPUT,
    ErrorCode.INVALID_FILTER,
}
_NOT_FOUND = {
    ErrorCode.RECORD_NOT_FOUND,
    ErrorCode.ASSET_NOT_FOUND,
}
_UNAVAILABLE = {
    ErrorCode.EMBEDDING_SERVICE_ERROR,
    ErrorCode.EMBEDDING_PROVIDER_UNAVAILABLE,
    ErrorCode.EMBEDDING_MODEL_WARMING_UP,
    ErrorCode.EMBEDDING_MODEL_NOT_FOUND,
    ErrorCode.EMBEDDING_UNAUTHORIZED,
    ErrorCode.EMBEDDING_INVALID_VECTOR,
}
_BAD_GATEWAY = {
    ErrorCode.VECTOR_STORE_ERROR,
    ErrorCode.COLLECTION_NOT_FOUND,
    ErrorCode.BACKEND_ERROR,
}


def get_status_code(code: ErrorCode) -> int:
    """Map error code to HTTP status code."""
    if code in _BAD_REQUEST:
        return 400
    if code in _NOT_FOUND:
        return 404
    if code in _UNAVAILABLE:
        return 503
    if code in _BAD_GATEWAY:
        return 502
    return 500


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> JSONResponse:
    """Readiness check.

    Ready once the service graph has been built.
    """
    services = getattr(request.app.state, "services", None)
    checks: dict[str, str] = {
        "config": "ok",
        "services": "ok" if services is not None else "not_initialized",
    }
    if services is not None:
        checks["embedding_provider"] = services.embeddings.provider_name
        checks["vector_backend"] = services.vectors.backend_name

    ready = services is not None
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


async def liveness_check() -> dict[str, str]:
    """Liveness check.

    Simple check that the service is running.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
