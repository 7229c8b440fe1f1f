"""Hybrid search module."""

from cinesearch.search.engine import HybridSearchEngine
from cinesearch.search.models import (
    FilterOptions,
    RecordPage,
    SearchFilters,
    SearchMatch,
    SortField,
    SortOrder,
)

__all__ = [
    "FilterOptions",
    "HybridSearchEngine",
    "RecordPage",
    "SearchFilters",
    "SearchMatch",
    "SortField",
    "SortOrder",
]
