"""Catalog maintenance module."""

from cinesearch.maintenance.engine import MaintenanceEngine
from cinesearch.maintenance.models import (
    BackfillReport,
    CatalogExport,
    DanglingKey,
    DedupeReport,
    OrphanReport,
)
from cinesearch.maintenance.posters import PosterFetcher, poster_url_candidates

__all__ = [
    "BackfillReport",
    "CatalogExport",
    "DanglingKey",
    "DedupeReport",
    "MaintenanceEngine",
    "OrphanReport",
    "PosterFetcher",
    "poster_url_candidates",
]
