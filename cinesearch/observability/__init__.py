"""Observability module for metrics and monitoring."""

from cinesearch.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    track_embedding_request,
    track_ingestion_job,
    track_maintenance_run,
    track_search_request,
    track_vectorstore_operation,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "track_embedding_request",
    "track_ingestion_job",
    "track_maintenance_run",
    "track_search_request",
    "track_vectorstore_operation",
]
