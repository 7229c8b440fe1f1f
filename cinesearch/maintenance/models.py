"""Maintenance report models."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from cinesearch.stores.models import CatalogRecord


class DedupeReport(BaseModel):
    """Outcome of a deduplication run.

    Attributes:
        total_groups: Distinct (title, year) groups seen.
        removed: Duplicate records deleted.
        kept: Records left, one per group.
        failed: Duplicates that could not be deleted.
    """

    total_groups: int = 0
    removed: int = 0
    kept: int = 0
    failed: int = 0


class BackfillReport(BaseModel):
    """Outcome of a poster backfill run."""

    total: int = 0
    updated: int = 0
    failed: int = 0


class DanglingKey(BaseModel):
    """An ``embedding_keys`` entry whose point is missing from the index."""

    record_id: str
    source: str
    point_id: int


class OrphanReport(BaseModel):
    """Outcome of an orphan detection run.

    Attributes:
        records_checked: Records with at least one embedding key.
        dangling: Number of keys pointing at missing points.
        repaired: Number of dangling keys removed.
        keys: The dangling keys found.
    """

    records_checked: int = 0
    dangling: int = 0
    repaired: int = 0
    keys: list[DanglingKey] = Field(default_factory=list)


class CatalogExport(BaseModel):
    """Snapshot of every catalog record."""

    exported_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    total_records: int = 0
    records: list[CatalogRecord] = Field(default_factory=list)
