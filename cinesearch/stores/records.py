"""Record store interface and in-memory implementation."""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from cinesearch.exceptions import InputError
from cinesearch.logging_config import get_logger
from cinesearch.stores.models import CatalogRecord, RecordFilter

logger = get_logger(__name__)

SORTABLE_FIELDS = ("created_at", "rating", "release_year", "title")

# Fields callers may never overwrite through update_fields
_PROTECTED_FIELDS = frozenset({"id", "created_at"})


class RecordStore(ABC):
    """Abstract base class for the catalog record store.

    The record store owns catalog records; the vector index is a projection
    of it. ``update_fields`` must apply its changes atomically.
    """

    @abstractmethod
    async def create(self, record: CatalogRecord) -> CatalogRecord:
        """Persist a new record.

        Raises:
            InputError: If a record with the same id exists.
        """
        ...

    @abstractmethod
    async def get(self, record_id: str) -> CatalogRecord | None:
        """Fetch one record by id."""
        ...

    @abstractmethod
    async def get_many(self, record_ids: list[str]) -> list[CatalogRecord]:
        """Fetch records by id, preserving the order of ``record_ids``.

        Unknown ids are skipped.
        """
        ...

    @abstractmethod
    async def update_fields(
        self,
        record_id: str,
        changes: dict[str, Any],
    ) -> CatalogRecord | None:
        """Atomically apply a subset of field changes.

        Returns:
            The updated record, or None if it does not exist.
        """
        ...

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Delete a record. Returns whether it existed."""
        ...

    @abstractmethod
    async def find(
        self,
        record_filter: RecordFilter | None = None,
        sort_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
        skip: int = 0,
    ) -> list[CatalogRecord]:
        """Return records matching ``record_filter`` in sorted order.

        Records missing the sort attribute sort last.
        """
        ...

    @abstractmethod
    async def all(self) -> list[CatalogRecord]:
        """Return every record, oldest first."""
        ...

    @abstractmethod
    async def count(self) -> int:
        """Total number of records."""
        ...

    async def distinct_genres(self) -> list[str]:
        """Sorted distinct genre labels."""
        genres = {genre for record in await self.all() for genre in record.genres}
        return sorted(genres)

    async def distinct_directors(self) -> list[str]:
        """Sorted distinct director names."""
        directors = {record.director for record in await self.all() if record.director}
        return sorted(directors)


class InMemoryRecordStore(RecordStore):
    """Record store held in a dict.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._records: dict[str, CatalogRecord] = {}

    async def create(self, record: CatalogRecord) -> CatalogRecord:
        if record.id in self._records:
            raise InputError(
                f"Record already exists: {record.id}",
                details={"record_id": record.id},
            )
        self._records[record.id] = record.model_copy(deep=True)
        logger.debug(f"Created record {record.id}", extra={"title": record.title})
        return record.model_copy(deep=True)

    async def get(self, record_id: str) -> CatalogRecord | None:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def get_many(self, record_ids: list[str]) -> list[CatalogRecord]:
        return [
            self._records[record_id].model_copy(deep=True)
            for record_id in record_ids
            if record_id in self._records
        ]

    async def update_fields(
        self,
        record_id: str,
        changes: dict[str, Any],
    ) -> CatalogRecord | None:
        current = self._records.get(record_id)
        if current is None:
            return None

        applied = {k: v for k, v in changes.items() if k not in _PROTECTED_FIELDS}
        merged = current.model_dump()
        merged.update(applied)
        merged["updated_at"] = datetime.now(UTC)

        # Validate the merged record before replacing the stored one
        try:
            updated = CatalogRecord.model_validate(merged)
        except ValidationError as e:
            raise InputError(
                f"Invalid update for record {record_id}",
                details={
                    "record_id": record_id,
                    "errors": [
                        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                        for err in e.errors()
                    ],
                },
            ) from e
        self._records[record_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None

    async def find(
        self,
        record_filter: RecordFilter | None = None,
        sort_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
        skip: int = 0,
    ) -> list[CatalogRecord]:
        if sort_by not in SORTABLE_FIELDS:
            raise InputError(
                f"Cannot sort by '{sort_by}'",
                details={"allowed": list(SORTABLE_FIELDS)},
            )

        matched = [
            record
            for record in self._records.values()
            if record_filter is None or record_filter.matches(record)
        ]
        present = [r for r in matched if getattr(r, sort_by) is not None]
        missing = [r for r in matched if getattr(r, sort_by) is None]
        present.sort(key=lambda r: getattr(r, sort_by), reverse=descending)

        ordered = present + missing
        end = None if limit is None else skip + limit
        return [record.model_copy(deep=True) for record in ordered[skip:end]]

    async def all(self) -> list[CatalogRecord]:
        records = sorted(self._records.values(), key=lambda r: r.created_at)
        return [record.model_copy(deep=True) for record in records]

    async def count(self) -> int:
        return len(self._records)
