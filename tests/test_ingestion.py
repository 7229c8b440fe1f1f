"""Tests for the ingestion orchestrator."""

from unittest.mock import AsyncMock

import pytest

from cinesearch.config import IngestionSettings, Settings
from cinesearch.container import Services
from cinesearch.exceptions import BackendError, ConfigurationError, InputError
from cinesearch.ingestion import BulkUpdate, IngestionOrchestrator, PosterUpload
from cinesearch.stores import (
    InMemoryAssetStore,
    InMemoryIngestionJobStore,
    InMemoryRecordStore,
    JobStatus,
    RecordFields,
    RecordUpdate,
)
from cinesearch.vectorstore.memory import InMemoryVectorStore
from cinesearch.vectorstore.models import point_id
from cinesearch.vectorstore.service import VectorStore

from tests.conftest import StubEmbeddingProvider, make_settings


def make_orchestrator(
    vectors: VectorStore,
    provider: StubEmbeddingProvider | None = None,
    settings: Settings | None = None,
) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        records=InMemoryRecordStore(),
        jobs=InMemoryIngestionJobStore(),
        assets=InMemoryAssetStore(),
        embeddings=provider or StubEmbeddingProvider(),
        vectors=vectors,
        settings=settings or make_settings(),
    )


class TestIngest:
    """Tests for creating records."""

    @pytest.mark.asyncio
    async def test_title_only_record(
        self, services: Services, vector_store: InMemoryVectorStore
    ) -> None:
        """A record with only a title gets exactly one title point."""
        job = await services.orchestrator.ingest(RecordFields(title="Alien"))

        assert job.status == JobStatus.COMPLETED
        assert job.warnings == []
        record = await services.records.get(job.record_id)
        assert record is not None
        assert record.embedding_keys == {"title": point_id(record.id, "title")}
        assert vector_store.count("movies") == 1

    @pytest.mark.asyncio
    async def test_all_configured_sources(
        self, services: Services, vector_store: InMemoryVectorStore
    ) -> None:
        """Every present configured source is embedded once."""
        job = await services.orchestrator.ingest(
            RecordFields(
                title="Heat",
                plot="A detective hunts a crew of thieves",
                script="INT. DINER - NIGHT",
                genres=["Crime", "Drama"],
            )
        )

        record = await services.records.get(job.record_id)
        assert record is not None
        assert set(record.embedding_keys) == {"title", "plot", "genre"}
        assert vector_store.count("movies") == 3
        assert "Crime, Drama" in services.embeddings.calls  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_partial_embedding_failure(self, vector_store: InMemoryVectorStore) -> None:
        """A failing source is skipped; the rest are indexed."""
        provider = StubEmbeddingProvider(fail_on={"A broken plot"})
        orchestrator = make_orchestrator(vector_store, provider)

        job = await orchestrator.ingest(
            RecordFields(title="Heat", plot="A broken plot", genres=["Crime"])
        )

        assert job.status == JobStatus.COMPLETED
        record = await orchestrator._records.get(job.record_id)
        assert record is not None
        assert set(record.embedding_keys) == {"title", "genre"}

    @pytest.mark.asyncio
    async def test_no_embeddings_warns(self, vector_store: InMemoryVectorStore) -> None:
        """A record with no usable embeddings is kept with a warning."""
        provider = StubEmbeddingProvider(fail_on={"Heat"})
        orchestrator = make_orchestrator(vector_store, provider)

        job = await orchestrator.ingest(RecordFields(title="Heat"))

        assert job.status == JobStatus.COMPLETED
        assert len(job.warnings) == 1
        assert vector_store.count("movies") == 0

    @pytest.mark.asyncio
    async def test_upsert_failure_keeps_record(self) -> None:
        """Index failures leave the record saved without keys."""
        vectors = InMemoryVectorStore()  # collection never created
        orchestrator = make_orchestrator(vectors)

        job = await orchestrator.ingest(RecordFields(title="Heat", plot="Crime saga"))

        assert job.status == JobStatus.COMPLETED
        assert any("upsert failed" in warning for warning in job.warnings)
        record = await orchestrator._records.get(job.record_id)
        assert record is not None
        assert record.embedding_keys == {}

    @pytest.mark.asyncio
    async def test_unexpected_failure_marks_job_failed(self) -> None:
        """Unexpected errors fail the job and propagate."""
        vectors = AsyncMock(spec=VectorStore)
        vectors.upsert.side_effect = RuntimeError("disk full")
        orchestrator = make_orchestrator(vectors)

        with pytest.raises(RuntimeError):
            await orchestrator.ingest(RecordFields(title="Heat"))

        [record] = await orchestrator._records.all()
        [job] = await orchestrator._jobs.list_for_record(record.id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "disk full"

    @pytest.mark.asyncio
    async def test_poster_stored(self, services: Services) -> None:
        """An uploaded poster becomes an asset on the record."""
        job = await services.orchestrator.ingest(
            RecordFields(title="Alien"),
            image=PosterUpload(data=b"\xff\xd8jpeg", filename="alien.jpg"),
        )

        record = await services.records.get(job.record_id)
        assert record is not None
        assert record.poster_asset_id is not None
        assert record.poster_content_type == "image/jpeg"
        asset = await services.assets.get(record.poster_asset_id)
        assert asset.data == b"\xff\xd8jpeg"

    @pytest.mark.asyncio
    async def test_poster_failure_keeps_record(self, services: Services) -> None:
        """A poster that cannot be stored does not block ingestion."""
        job = await services.orchestrator.ingest(
            RecordFields(title="Alien"), image=PosterUpload(data=b"")
        )

        assert job.status == JobStatus.COMPLETED
        record = await services.records.get(job.record_id)
        assert record is not None
        assert record.poster_asset_id is None

    def test_unknown_source_rejected(self) -> None:
        """Configured sources must be known."""
        settings = make_settings()
        settings.ingestion = IngestionSettings(sources=["title", "soundtrack"])
        with pytest.raises(ConfigurationError):
            make_orchestrator(InMemoryVectorStore(), settings=settings)


class TestUpdate:
    """Tests for field updates and re-embedding."""

    @pytest.mark.asyncio
    async def test_update_reembeds_changed_source(
        self, services: Services, vector_store: InMemoryVectorStore
    ) -> None:
        """Changing the plot re-embeds it under the same point id."""
        job = await services.orchestrator.ingest(RecordFields(title="Heat", plot="Old plot"))
        before = await services.records.get(job.record_id)
        assert before is not None

        updated = await services.orchestrator.update(
            job.record_id, RecordUpdate(plot="A new plot")
        )
        await services.orchestrator.wait_for_background()

        assert updated is not None
        assert updated.plot == "A new plot"
        assert "A new plot" in services.embeddings.calls  # type: ignore[attr-defined]
        after = await services.records.get(job.record_id)
        assert after is not None
        assert after.embedding_keys == before.embedding_keys
        assert vector_store.count("movies") == 2

    @pytest.mark.asyncio
    async def test_reembedded_vector_replaces_old_one(
        self, vector_store: InMemoryVectorStore
    ) -> None:
        """After a plot change the index answers for the new text only."""
        provider = StubEmbeddingProvider(
            vectors={
                "Heat": [0.0, 0.0, 1.0, 0.0],
                "Old plot": [1.0, 0.0, 0.0, 0.0],
                "A new plot": [0.0, 1.0, 0.0, 0.0],
            }
        )
        orchestrator = make_orchestrator(vector_store, provider=provider)
        job = await orchestrator.ingest(RecordFields(title="Heat", plot="Old plot"))

        await orchestrator.update(job.record_id, RecordUpdate(plot="A new plot"))
        await orchestrator.wait_for_background()

        new_hits = await vector_store.query("movies", [0.0, 1.0, 0.0, 0.0], limit=1)
        assert new_hits[0].record_id == job.record_id
        assert new_hits[0].payload["source"] == "plot"
        assert new_hits[0].score == pytest.approx(1.0)

        old_hits = await vector_store.query("movies", [1.0, 0.0, 0.0, 0.0], limit=5)
        assert all(hit.score < 0.5 for hit in old_hits)
        assert vector_store.count("movies") == 2

    @pytest.mark.asyncio
    async def test_non_source_field_skips_reembed(self, services: Services) -> None:
        """Rating changes do not touch embeddings."""
        job = await services.orchestrator.ingest(RecordFields(title="Heat"))
        calls = list(services.embeddings.calls)  # type: ignore[attr-defined]

        await services.orchestrator.update(job.record_id, {"rating": 8.3})
        await services.orchestrator.wait_for_background()

        assert services.embeddings.calls == calls  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_blanked_source_removed(
        self, services: Services, vector_store: InMemoryVectorStore
    ) -> None:
        """Clearing a source deletes its point and key."""
        job = await services.orchestrator.ingest(RecordFields(title="Heat", plot="Crime saga"))

        await services.orchestrator.update(job.record_id, RecordUpdate(plot=None))
        await services.orchestrator.wait_for_background()

        record = await services.records.get(job.record_id)
        assert record is not None
        assert set(record.embedding_keys) == {"title"}
        assert vector_store.count("movies") == 1

    @pytest.mark.asyncio
    async def test_update_missing_record(self, services: Services) -> None:
        """Updating an unknown record returns None."""
        assert await services.orchestrator.update("nope", {"rating": 5}) is None

    @pytest.mark.asyncio
    async def test_empty_update_returns_record(self, services: Services) -> None:
        """An empty change set leaves the record untouched."""
        job = await services.orchestrator.ingest(RecordFields(title="Heat"))
        record = await services.orchestrator.update(job.record_id, RecordUpdate())
        assert record is not None
        assert record.title == "Heat"


class TestDelete:
    """Tests for record deletion."""

    @pytest.mark.asyncio
    async def test_delete_removes_points_and_poster(
        self, services: Services, vector_store: InMemoryVectorStore
    ) -> None:
        """Points, poster and record are all removed."""
        job = await services.orchestrator.ingest(
            RecordFields(title="Heat", plot="Crime saga"),
            image=PosterUpload(data=b"img"),
        )

        assert await services.orchestrator.delete(job.record_id) is True

        assert vector_store.count("movies") == 0
        assert len(services.assets) == 0  # type: ignore[arg-type]
        assert await services.records.get(job.record_id) is None

    @pytest.mark.asyncio
    async def test_delete_missing(self, services: Services) -> None:
        """Deleting an unknown record reports False."""
        assert await services.orchestrator.delete("nope") is False

    @pytest.mark.asyncio
    async def test_vector_failure_keeps_record(self, vector_store: InMemoryVectorStore) -> None:
        """A failed point delete leaves the record for a retry."""
        orchestrator = make_orchestrator(vector_store)
        job = await orchestrator.ingest(RecordFields(title="Heat"))
        vector_store.delete = AsyncMock(side_effect=BackendError("unreachable"))  # type: ignore[method-assign]

        with pytest.raises(BackendError):
            await orchestrator.delete(job.record_id)

        assert await orchestrator._records.get(job.record_id) is not None


class TestBulkOperations:
    """Tests for bulk delete and bulk update."""

    @pytest.mark.asyncio
    async def test_bulk_delete_removes_points(
        self, services: Services, vector_store: InMemoryVectorStore
    ) -> None:
        """Every record goes through delete, so its points go too."""
        first = await services.orchestrator.ingest(RecordFields(title="Heat", plot="Crime"))
        second = await services.orchestrator.ingest(RecordFields(title="Alien"))
        kept = await services.orchestrator.ingest(RecordFields(title="Ran"))

        result = await services.orchestrator.bulk_delete(
            [first.record_id, second.record_id, first.record_id, "nope"]
        )

        assert result.requested == 3
        assert result.processed == 2
        assert result.missing == ["nope"]
        assert result.failed == []
        assert vector_store.count("movies") == 1
        assert [r.id for r in await services.records.all()] == [kept.record_id]

    @pytest.mark.asyncio
    async def test_bulk_delete_reports_failures(
        self, services: Services, vector_store: InMemoryVectorStore
    ) -> None:
        """A record whose points cannot be deleted is kept and reported."""
        job = await services.orchestrator.ingest(RecordFields(title="Heat"))
        vector_store.delete = AsyncMock(side_effect=BackendError("unreachable"))  # type: ignore[method-assign]

        result = await services.orchestrator.bulk_delete([job.record_id])

        assert result.processed == 0
        assert result.failed == [job.record_id]
        assert await services.records.get(job.record_id) is not None

    @pytest.mark.asyncio
    async def test_bulk_update_reembeds_genres(self, services: Services) -> None:
        """A genre change re-embeds the genre source of every record."""
        first = await services.orchestrator.ingest(RecordFields(title="Heat"))
        second = await services.orchestrator.ingest(RecordFields(title="Ran"))

        result = await services.orchestrator.bulk_update(
            [first.record_id, second.record_id, "nope"],
            BulkUpdate(genres=["Drama"], rating=8.0),
        )
        await services.orchestrator.wait_for_background()

        assert result.processed == 2
        assert result.missing == ["nope"]
        assert "Drama" in services.embeddings.calls  # type: ignore[attr-defined]
        for record_id in (first.record_id, second.record_id):
            record = await services.records.get(record_id)
            assert record is not None
            assert record.genres == ["Drama"]
            assert record.rating == 8.0
            assert set(record.embedding_keys) == {"title", "genre"}

    @pytest.mark.asyncio
    async def test_bulk_update_rating_skips_reembed(self, services: Services) -> None:
        """Non-source fields are applied without touching embeddings."""
        job = await services.orchestrator.ingest(RecordFields(title="Heat"))
        calls = list(services.embeddings.calls)  # type: ignore[attr-defined]

        await services.orchestrator.bulk_update([job.record_id], BulkUpdate(rating=7.0))
        await services.orchestrator.wait_for_background()

        assert services.embeddings.calls == calls  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_bulk_requires_ids_and_fields(self, services: Services) -> None:
        """Empty id lists and empty updates are input errors."""
        with pytest.raises(InputError):
            await services.orchestrator.bulk_delete([])
        with pytest.raises(InputError):
            await services.orchestrator.bulk_update(["a"], BulkUpdate())
