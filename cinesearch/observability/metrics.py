"""Prometheus metrics for the catalog search service.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Embedding provider latency
- Vector store operation latency
- Ingestion job outcomes
- Search requests and returned matches
- Maintenance runs
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from cinesearch.logging_config import get_logger

logger = get_logger(__name__)

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["provider", "model", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding requests",
    ["provider", "model", "status"],
)

# Vector Store Metrics
VECTORSTORE_OPERATION_DURATION = Histogram(
    "vectorstore_operation_duration_seconds",
    "Vector store operation duration",
    ["backend", "operation", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

# Ingestion Metrics
INGESTION_JOBS_TOTAL = Counter(
    "ingestion_jobs_total",
    "Ingestion jobs by final status",
    ["status"],
)

INGESTION_VECTORS_UPSERTED = Histogram(
    "ingestion_vectors_upserted",
    "Vectors upserted per ingested record",
    buckets=[0, 1, 2, 3, 4, 5],
)

# Search Metrics
SEARCH_REQUEST_TOTAL = Counter(
    "search_requests_total",
    "Total search requests",
    ["mode"],  # "mode" label values: semantic, filter, similar
)

SEARCH_RESULTS_RETURNED = Histogram(
    "search_results_returned",
    "Number of matches returned per search",
    buckets=[0, 1, 2, 5, 10, 20, 50],
)

# Maintenance Metrics
MAINTENANCE_RUNS_TOTAL = Counter(
    "maintenance_runs_total",
    "Maintenance routine runs",
    ["routine"],
)

MAINTENANCE_CHANGES_TOTAL = Counter(
    "maintenance_changes_total",
    "Records changed by maintenance routines",
    ["routine", "outcome"],  # "outcome" label values: changed, failed
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware."""
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and collect metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time

        # Normalize endpoint for cardinality control
        endpoint = self._normalize_endpoint(request.url.path)

        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).observe(duration)

        HTTP_REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        if path.startswith("/health"):
            return "/health"
        # Collapse record ids: /api/v1/movies/<id>/similar -> /api/v1/movies
        if path.startswith("/api/v1/"):
            parts = path.split("/")
            if len(parts) >= 4:
                return f"/api/v1/{parts[3]}"
        return path


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_embedding_request(
    provider: str,
    model: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track embedding request metrics.

    Args:
        provider: Embedding provider family.
        model: Embedding model name.
        duration: Request duration in seconds.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(
        provider=provider, model=model, status=status
    ).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(provider=provider, model=model, status=status).inc()


def track_vectorstore_operation(
    backend: str,
    operation: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track a single vector store call."""
    status = "success" if success else "error"
    VECTORSTORE_OPERATION_DURATION.labels(
        backend=backend, operation=operation, status=status
    ).observe(duration)


def track_ingestion_job(status: str, vectors_upserted: int) -> None:
    """Track the final state of an ingestion job."""
    INGESTION_JOBS_TOTAL.labels(status=status).inc()
    INGESTION_VECTORS_UPSERTED.observe(vectors_upserted)


def track_search_request(mode: str, results_returned: int) -> None:
    """Track a search request.

    Args:
        mode: semantic, filter or similar.
        results_returned: Number of matches returned to the caller.
    """
    SEARCH_REQUEST_TOTAL.labels(mode=mode).inc()
    SEARCH_RESULTS_RETURNED.observe(results_returned)


def track_maintenance_run(routine: str, changed: int, failed: int) -> None:
    """Track a maintenance routine run and its outcome counts."""
    MAINTENANCE_RUNS_TOTAL.labels(routine=routine).inc()
    MAINTENANCE_CHANGES_TOTAL.labels(routine=routine, outcome="changed").inc(changed)
    MAINTENANCE_CHANGES_TOTAL.labels(routine=routine, outcome="failed").inc(failed)
