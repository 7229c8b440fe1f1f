"""Builds the service graph from settings."""

from dataclasses import dataclass

from cinesearch.config import Settings, get_settings
from cinesearch.embeddings.factory import create_embedding_provider
from cinesearch.embeddings.service import EmbeddingProvider
from cinesearch.ingestion.orchestrator import IngestionOrchestrator
from cinesearch.logging_config import get_logger
from cinesearch.maintenance.engine import MaintenanceEngine
from cinesearch.maintenance.posters import PosterFetcher
from cinesearch.search.engine import HybridSearchEngine
from cinesearch.stores.assets import AssetStore, InMemoryAssetStore
from cinesearch.stores.jobs import IngestionJobStore, InMemoryIngestionJobStore
from cinesearch.stores.records import InMemoryRecordStore, RecordStore
from cinesearch.vectorstore.factory import create_vector_store
from cinesearch.vectorstore.service import VectorStore

logger = get_logger(__name__)


@dataclass
class Services:
    """Everything a request handler or script needs."""

    records: RecordStore
    jobs: IngestionJobStore
    assets: AssetStore
    embeddings: EmbeddingProvider
    vectors: VectorStore
    orchestrator: IngestionOrchestrator
    search: HybridSearchEngine
    maintenance: MaintenanceEngine

    async def close(self) -> None:
        """Finish background work and release clients."""
        await self.orchestrator.wait_for_background()
        await self.maintenance.close()
        await self.embeddings.close()
        await self.vectors.close()


def build_services(
    settings: Settings | None = None,
    embeddings: EmbeddingProvider | None = None,
    vectors: VectorStore | None = None,
    records: RecordStore | None = None,
    fetcher: PosterFetcher | None = None,
) -> Services:
    """Wire stores, providers and engines together.

    Any component can be passed in to replace the configured one.

    Raises:
        ConfigurationError: If the selected providers are misconfigured.
    """
    settings = settings or get_settings()
    embeddings = embeddings or create_embedding_provider(settings.embedding)
    vectors = vectors or create_vector_store(settings)
    records = records or InMemoryRecordStore()
    jobs = InMemoryIngestionJobStore()
    assets = InMemoryAssetStore()

    orchestrator = IngestionOrchestrator(
        records=records,
        jobs=jobs,
        assets=assets,
        embeddings=embeddings,
        vectors=vectors,
        settings=settings,
    )
    search = HybridSearchEngine(
        records=records,
        embeddings=embeddings,
        vectors=vectors,
        collection=settings.vector.collection,
    )
    maintenance = MaintenanceEngine(
        records=records,
        assets=assets,
        vectors=vectors,
        orchestrator=orchestrator,
        fetcher=fetcher or PosterFetcher(settings.maintenance),
    )

    logger.info(
        "Services built",
        extra={
            "embedding_provider": embeddings.provider_name,
            "vector_backend": vectors.backend_name,
            "collection": settings.vector.collection,
        },
    )
    return Services(
        records=records,
        jobs=jobs,
        assets=assets,
        embeddings=embeddings,
        vectors=vectors,
        orchestrator=orchestrator,
        search=search,
        maintenance=maintenance,
    )
