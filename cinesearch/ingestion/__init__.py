"""Ingestion orchestration module."""

from cinesearch.ingestion.models import BulkResult, BulkUpdate, PosterUpload
from cinesearch.ingestion.orchestrator import IngestionOrchestrator

__all__ = ["BulkResult", "BulkUpdate", "IngestionOrchestrator", "PosterUpload"]
