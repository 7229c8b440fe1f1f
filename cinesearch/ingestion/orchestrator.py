"""Keeps the record store and the vector index in step.

The record store is the source of truth. Writes land there first; the
vector index is brought up to date afterwards on a best-effort basis and
``embedding_keys`` only ever lists point ids that were actually upserted.
"""

import asyncio
from collections.abc import Iterable
from typing import Any

from cinesearch.config import Settings, get_settings
from cinesearch.embeddings.service import EmbeddingProvider
from cinesearch.exceptions import (
    CineSearchError,
    ConfigurationError,
    ConsistencyWarning,
    InputError,
    VectorStoreError,
)
from cinesearch.ingestion.models import BulkResult, BulkUpdate, PosterUpload
from cinesearch.logging_config import get_logger
from cinesearch.observability.metrics import track_ingestion_job
from cinesearch.stores.assets import AssetStore
from cinesearch.stores.jobs import IngestionJobStore
from cinesearch.stores.models import (
    EMBEDDING_SOURCES,
    SOURCE_FIELDS,
    CatalogRecord,
    IngestionJob,
    JobStatus,
    RecordFields,
    RecordUpdate,
)
from cinesearch.stores.records import RecordStore
from cinesearch.vectorstore.models import VectorPoint
from cinesearch.vectorstore.service import VectorStore

logger = get_logger(__name__)


class IngestionOrchestrator:
    """Create, update and delete catalog records together with their vectors.

    Example:
        >>> orchestrator = IngestionOrchestrator(records, jobs, assets, provider, index)
        >>> job = await orchestrator.ingest(RecordFields(title="Heat"))
        >>> job.status
        <JobStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        records: RecordStore,
        jobs: IngestionJobStore,
        assets: AssetStore,
        embeddings: EmbeddingProvider,
        vectors: VectorStore,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            records: Catalog record store.
            jobs: Ingestion job store.
            assets: Poster asset store.
            embeddings: Active embedding provider.
            vectors: Active vector index.
            settings: Application settings. Uses defaults if not provided.

        Raises:
            ConfigurationError: If an ingestion source is unknown.
        """
        settings = settings or get_settings()
        unknown = [s for s in settings.ingestion.sources if s not in EMBEDDING_SOURCES]
        if unknown:
            raise ConfigurationError(
                f"Unknown ingestion sources: {', '.join(unknown)}",
                details={"allowed": list(EMBEDDING_SOURCES)},
            )

        self._records = records
        self._jobs = jobs
        self._assets = assets
        self._embeddings = embeddings
        self._vectors = vectors
        self._collection = settings.vector.collection
        self._distance = settings.vector.distance
        self._sources = list(dict.fromkeys(settings.ingestion.sources))
        self._reembed_on_update = settings.ingestion.reembed_on_update
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def sources(self) -> list[str]:
        return list(self._sources)

    async def ensure_collection(self) -> None:
        """Make sure the target collection exists with the provider's dimension."""
        await self._vectors.ensure_collection(
            self._collection,
            self._embeddings.dimensions,
            distance=self._distance,
        )

    async def ingest(
        self,
        fields: RecordFields,
        image: PosterUpload | None = None,
    ) -> IngestionJob:
        """Persist a new record and index its embeddable sources.

        Sources whose embedding fails are skipped. A failed upsert leaves the
        record saved without ``embedding_keys`` and is reported as a job
        warning.

        Returns:
            The completed ingestion job.

        Raises:
            Exception: Any unexpected failure, after marking the job failed.
        """
        record = CatalogRecord(**fields.model_dump())
        if image is not None:
            await self._attach_poster(record, image)

        record = await self._records.create(record)
        job = await self._jobs.create(
            IngestionJob(record_id=record.id, status=JobStatus.PROCESSING)
        )
        upserted = 0

        try:
            vectors = await self._embed_sources(record, self._sources)

            if vectors:
                keys = await self._upsert(record.id, vectors, job)
                if keys is not None:
                    await self._records.update_fields(record.id, {"embedding_keys": keys})
                    upserted = len(keys)
            else:
                message = (
                    f"Record {record.id} ingested without embeddings; "
                    "it will not appear in semantic search"
                )
                logger.warning(message, extra={"record_id": record.id})
                job.warnings.append(message)

            job.status = JobStatus.COMPLETED
            await self._jobs.save(job)

        except Exception as e:
            job.status = JobStatus.FAILED
            job.error_message = str(e) or type(e).__name__
            await self._jobs.save(job)
            track_ingestion_job(job.status.value, upserted)
            logger.error(
                f"Failed to ingest record {record.id}: {e}",
                extra={"record_id": record.id, "job_id": job.id},
            )
            raise

        track_ingestion_job(job.status.value, upserted)
        logger.info(
            f"Ingested record {record.id}",
            extra={
                "record_id": record.id,
                "job_id": job.id,
                "vectors": upserted,
                "warnings": len(job.warnings),
            },
        )
        return job

    async def update(
        self,
        record_id: str,
        changes: RecordUpdate | dict[str, Any],
    ) -> CatalogRecord | None:
        """Apply a field update and schedule re-embedding in the background.

        Returns:
            The updated record, or None if it does not exist.
        """
        if isinstance(changes, RecordUpdate):
            changes = changes.changes()
        if not changes:
            return await self._records.get(record_id)

        updated = await self._records.update_fields(record_id, changes)
        if updated is None:
            return None

        if self._reembed_on_update and self.changed_sources(changes):
            self._schedule_reembed(record_id, list(changes))

        return updated

    def changed_sources(self, updated_fields: Iterable[str]) -> list[str]:
        """Configured sources fed by any of ``updated_fields``."""
        fields = set(updated_fields)
        return [s for s in self._sources if SOURCE_FIELDS[s] in fields]

    async def reembed(self, record_id: str, updated_fields: Iterable[str]) -> None:
        """Regenerate the embeddings of sources affected by an update.

        Uses the post-update record. Points keep their deterministic ids, so
        an upsert overwrites in place. Sources that became blank lose their
        points and keys. Only sources that succeeded update ``embedding_keys``.
        """
        sources = self.changed_sources(updated_fields)
        if not sources:
            return

        record = await self._records.get(record_id)
        if record is None:
            logger.warning(
                f"Record {record_id} disappeared before re-embedding",
                extra={"record_id": record_id},
            )
            return

        present = [s for s in sources if record.source_text(s) is not None]
        blanked = [s for s in sources if s not in present and s in record.embedding_keys]

        keys: dict[str, int] = {}
        if present:
            vectors = await self._embed_sources(record, present)
            if vectors:
                upserted = await self._upsert(record_id, vectors, None)
                if upserted is None:
                    return
                keys = upserted

        removed: list[str] = []
        if blanked:
            try:
                await self._vectors.delete(
                    self._collection,
                    [record.embedding_keys[s] for s in blanked],
                )
                removed = blanked
            except VectorStoreError as e:
                self._warn(
                    f"Could not delete points for blanked sources of {record_id}: {e.message}",
                    record_id,
                    None,
                )

        if not keys and not removed:
            return

        # Re-read so concurrent key changes are not overwritten
        current = await self._records.get(record_id)
        if current is None:
            return
        embedding_keys = {k: v for k, v in current.embedding_keys.items() if k not in removed}
        embedding_keys.update(keys)
        await self._records.update_fields(record_id, {"embedding_keys": embedding_keys})

        logger.info(
            f"Re-embedded record {record_id}",
            extra={"record_id": record_id, "updated": sorted(keys), "removed": removed},
        )

    async def wait_for_background(self) -> None:
        """Wait for every scheduled re-embedding task to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def delete(self, record_id: str) -> bool:
        """Delete a record, its vector points and its poster asset.

        Points go first so a record never disappears while still being
        searchable.

        Raises:
            VectorStoreError: If the points could not be deleted; the record
                is kept so the delete can be retried.
        """
        record = await self._records.get(record_id)
        if record is None:
            return False

        point_ids = list(record.embedding_keys.values())
        if point_ids:
            await self._vectors.delete(self._collection, point_ids)

        if record.poster_asset_id:
            try:
                await self._assets.delete(record.poster_asset_id)
            except Exception as e:
                logger.error(
                    f"Failed to delete poster asset {record.poster_asset_id}: {e}",
                    extra={"record_id": record_id},
                )

        deleted = await self._records.delete(record_id)
        logger.info(
            f"Deleted record {record_id}",
            extra={"record_id": record_id, "points": len(point_ids)},
        )
        return deleted

    async def bulk_delete(self, record_ids: list[str]) -> BulkResult:
        """Delete many records, each through ``delete``.

        Records are handled independently. One whose points cannot be
        deleted is kept and reported in ``failed``.

        Raises:
            InputError: If no ids are given.
        """
        ids = _distinct(record_ids)
        result = BulkResult(requested=len(ids))

        for record_id in ids:
            try:
                deleted = await self.delete(record_id)
            except CineSearchError as e:
                logger.error(
                    f"Bulk delete failed for {record_id}: {e.message}",
                    extra={"record_id": record_id, "error_code": e.code.value},
                )
                result.failed.append(record_id)
                continue

            if deleted:
                result.processed += 1
            else:
                result.missing.append(record_id)

        logger.info(
            f"Bulk deleted {result.processed} of {result.requested} records",
            extra={"missing": len(result.missing), "failed": len(result.failed)},
        )
        return result

    async def bulk_update(self, record_ids: list[str], update: BulkUpdate) -> BulkResult:
        """Apply the same field update to many records, each through ``update``.

        Genre changes re-embed the ``genre`` source in the background like
        any other update.

        Raises:
            InputError: If no ids or no fields are given.
        """
        ids = _distinct(record_ids)
        changes = update.changes()
        if not changes:
            raise InputError("Bulk update sets no fields")
        result = BulkResult(requested=len(ids))

        for record_id in ids:
            try:
                updated = await self.update(record_id, dict(changes))
            except CineSearchError as e:
                logger.error(
                    f"Bulk update failed for {record_id}: {e.message}",
                    extra={"record_id": record_id, "error_code": e.code.value},
                )
                result.failed.append(record_id)
                continue

            if updated is None:
                result.missing.append(record_id)
            else:
                result.processed += 1

        logger.info(
            f"Bulk updated {result.processed} of {result.requested} records",
            extra={"fields": sorted(changes), "missing": len(result.missing)},
        )
        return result

    async def _attach_poster(self, record: CatalogRecord, image: PosterUpload) -> None:
        try:
            record.poster_asset_id = await self._assets.put(
                image.data, image.filename, image.content_type
            )
            record.poster_content_type = image.content_type
        except Exception as e:
            logger.error(
                f"Failed to store poster image, saving record without it: {e}",
                extra={"record_id": record.id, "filename": image.filename},
            )

    async def _embed_sources(
        self,
        record: CatalogRecord,
        sources: list[str],
    ) -> dict[str, list[float]]:
        """Embed each present source concurrently; failed sources are omitted."""
        texts = {s: text for s in sources if (text := record.source_text(s)) is not None}
        if not texts:
            return {}

        results = await asyncio.gather(
            *(self._embeddings.generate(text) for text in texts.values()),
            return_exceptions=True,
        )

        vectors: dict[str, list[float]] = {}
        for source, result in zip(texts, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    f"Failed to embed {source} for record {record.id}: {result}",
                    extra={"record_id": record.id, "source": source},
                )
                continue
            vectors[source] = result.embedding

        return vectors

    async def _upsert(
        self,
        record_id: str,
        vectors: dict[str, list[float]],
        job: IngestionJob | None,
    ) -> dict[str, int] | None:
        """Upsert one point per source; None when the index rejected the batch."""
        points = [
            VectorPoint.for_source(record_id, source, vector)
            for source, vector in vectors.items()
        ]
        try:
            await self._vectors.upsert(self._collection, points)
        except VectorStoreError as e:
            self._warn(
                f"Vector upsert failed for record {record_id}; record kept "
                f"without semantic search: {e.message}",
                record_id,
                job,
            )
            return None

        return {str(p.payload["source"]): p.id for p in points}

    def _warn(self, message: str, record_id: str, job: IngestionJob | None) -> None:
        warning = ConsistencyWarning(message, details={"record_id": record_id})
        logger.warning(
            warning.message,
            extra={"record_id": record_id, "error_code": warning.code.value},
        )
        if job is not None:
            job.warnings.append(warning.message)

    def _schedule_reembed(self, record_id: str, updated_fields: list[str]) -> None:
        task = asyncio.create_task(self._run_reembed(record_id, updated_fields))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_reembed(self, record_id: str, updated_fields: list[str]) -> None:
        try:
            await self.reembed(record_id, updated_fields)
        except Exception as e:
            logger.error(
                f"Background re-embedding failed for record {record_id}: {e}",
                extra={"record_id": record_id},
                exc_info=True,
            )


def _distinct(record_ids: list[str]) -> list[str]:
    """Ids in first-seen order without duplicates.

    Raises:
        InputError: If the list is empty.
    """
    if not record_ids:
        raise InputError("At least one record id is required")
    return list(dict.fromkeys(record_ids))
