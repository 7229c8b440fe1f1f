"""Catalog maintenance routines.

Every routine runs sequentially, only touches what it reports, and can be
interrupted and re-run safely.
"""

import re
from datetime import datetime

from cinesearch.exceptions import CineSearchError
from cinesearch.ingestion.orchestrator import IngestionOrchestrator
from cinesearch.logging_config import get_logger
from cinesearch.maintenance.models import (
    BackfillReport,
    CatalogExport,
    DanglingKey,
    DedupeReport,
    OrphanReport,
)
from cinesearch.maintenance.posters import PosterFetcher
from cinesearch.observability.metrics import track_maintenance_run
from cinesearch.stores.assets import AssetStore
from cinesearch.stores.models import CatalogRecord
from cinesearch.stores.records import RecordStore
from cinesearch.vectorstore.service import VectorStore

logger = get_logger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^a-zA-Z0-9]")


def survivor_rank(record: CatalogRecord) -> tuple[float, bool, datetime]:
    """Sort key choosing which duplicate to keep; higher is better.

    Highest rating first (missing ranks lowest), then records that already
    have a poster asset, then the newest.
    """
    rating = record.rating if record.rating is not None else float("-inf")
    return (rating, bool(record.poster_asset_id), record.created_at)


class MaintenanceEngine:
    """Deduplication, poster backfill, orphan detection and export."""

    def __init__(
        self,
        records: RecordStore,
        assets: AssetStore,
        vectors: VectorStore,
        orchestrator: IngestionOrchestrator,
        fetcher: PosterFetcher | None = None,
    ) -> None:
        self._records = records
        self._assets = assets
        self._vectors = vectors
        self._orchestrator = orchestrator
        self._fetcher = fetcher or PosterFetcher()

    async def close(self) -> None:
        await self._fetcher.close()

    async def dedupe(self) -> DedupeReport:
        """Collapse records sharing a normalized title and release year.

        Non-survivors are deleted through the orchestrator so their vector
        points go with them. A survivor without a poster inherits one from
        a duplicate.
        """
        groups: dict[tuple[str, int | None], list[CatalogRecord]] = {}
        for record in await self._records.all():
            key = (record.normalized_title, record.release_year)
            groups.setdefault(key, []).append(record)

        report = DedupeReport(total_groups=len(groups))

        for group in groups.values():
            report.kept += 1
            if len(group) == 1:
                continue

            survivor = max(group, key=survivor_rank)
            survivor_has_poster = bool(survivor.poster_asset_id)

            for duplicate in group:
                if duplicate.id == survivor.id:
                    continue
                try:
                    if not survivor_has_poster and duplicate.poster_asset_id:
                        await self._move_poster(duplicate, survivor)
                        survivor_has_poster = True
                    await self._orchestrator.delete(duplicate.id)
                    report.removed += 1
                except CineSearchError as e:
                    report.failed += 1
                    logger.error(
                        f"Failed to remove duplicate {duplicate.id}: {e.message}",
                        extra={"record_id": duplicate.id, "survivor_id": survivor.id},
                    )

        track_maintenance_run("dedupe", report.removed, report.failed)
        logger.info(
            "Deduplication finished",
            extra=report.model_dump(),
        )
        return report

    async def backfill_posters(self) -> BackfillReport:
        """Download and store posters for records that only have a poster URL."""
        candidates = [
            record
            for record in await self._records.all()
            if not record.poster_asset_id and record.poster_url and record.poster_url.strip()
        ]
        report = BackfillReport(total=len(candidates))

        for record in candidates:
            downloaded = await self._fetcher.fetch_first(record.poster_url.strip())  # type: ignore[union-attr]
            if downloaded is None:
                report.failed += 1
                logger.warning(
                    f"Backfill poster failed for {record.title}: all URL attempts failed",
                    extra={"record_id": record.id},
                )
                continue

            data, content_type = downloaded
            filename = f"{_UNSAFE_FILENAME.sub('_', record.title)}_poster.img"
            try:
                asset_id = await self._assets.put(data, filename, content_type)
                await self._records.update_fields(
                    record.id,
                    {"poster_asset_id": asset_id, "poster_content_type": content_type},
                )
            except CineSearchError as e:
                report.failed += 1
                logger.warning(
                    f"Backfill poster failed for {record.title}: {e.message}",
                    extra={"record_id": record.id},
                )
                continue

            report.updated += 1

        track_maintenance_run("backfill_posters", report.updated, report.failed)
        logger.info("Poster backfill finished", extra=report.model_dump())
        return report

    async def detect_orphans(self, repair: bool = False) -> OrphanReport:
        """Find ``embedding_keys`` entries whose points are missing.

        Args:
            repair: Drop the dangling keys from their records.
        """
        collection = self._orchestrator.collection
        report = OrphanReport()

        for record in await self._records.all():
            if not record.embedding_keys:
                continue
            report.records_checked += 1

            existing = await self._vectors.existing_ids(
                collection, list(record.embedding_keys.values())
            )
            dangling = {
                source: point
                for source, point in record.embedding_keys.items()
                if point not in existing
            }
            if not dangling:
                continue

            report.dangling += len(dangling)
            report.keys.extend(
                DanglingKey(record_id=record.id, source=source, point_id=point)
                for source, point in dangling.items()
            )

            if repair:
                kept = {
                    source: point
                    for source, point in record.embedding_keys.items()
                    if source not in dangling
                }
                await self._records.update_fields(record.id, {"embedding_keys": kept})
                report.repaired += len(dangling)

        track_maintenance_run("detect_orphans", report.repaired, 0)
        logger.info(
            "Orphan detection finished",
            extra={k: v for k, v in report.model_dump().items() if k != "keys"},
        )
        return report

    async def list_missing_posters(self, limit: int = 500) -> list[CatalogRecord]:
        """Newest records without a stored poster, at most 1000."""
        limit = max(1, min(limit, 1000))
        records = [r for r in await self._records.all() if not r.poster_asset_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]

    async def export_records(self) -> CatalogExport:
        """Every record, oldest first, for backup or offline analysis."""
        records = await self._records.all()
        logger.info(f"Exported {len(records)} records")
        return CatalogExport(total_records=len(records), records=records)

    async def _move_poster(self, source: CatalogRecord, target: CatalogRecord) -> None:
        await self._records.update_fields(
            target.id,
            {
                "poster_asset_id": source.poster_asset_id,
                "poster_content_type": source.poster_content_type,
            },
        )
        # Detach from the duplicate so deleting it keeps the asset
        await self._records.update_fields(
            source.id,
            {"poster_asset_id": None, "poster_content_type": None},
        )
