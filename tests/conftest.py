"""Pytest configuration and shared fixtures."""

import hashlib
from collections.abc import AsyncGenerator, Iterable

import pytest
from httpx import ASGITransport, AsyncClient

from cinesearch.api.app import app
from cinesearch.config import (
    EmbeddingSettings,
    IngestionSettings,
    Settings,
    VectorProviderType,
    VectorStoreSettings,
)
from cinesearch.container import Services, build_services
from cinesearch.embeddings.service import EmbeddingProvider
from cinesearch.exceptions import ProviderUnavailableError
from cinesearch.vectorstore.memory import InMemoryVectorStore

DIMENSION = 4


class StubEmbeddingProvider(EmbeddingProvider):
    """Deterministic provider for tests.

    Known texts map to fixed vectors; anything else gets a hash-derived
    vector. Texts in ``fail_on`` raise ProviderUnavailableError.
    """

    provider_name = "stub"

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        fail_on: Iterable[str] = (),
        dimension: int = DIMENSION,
    ) -> None:
        super().__init__(EmbeddingSettings(model="stub-model", dimension=dimension))
        self.vectors = dict(vectors or {})
        self.fail_on = set(fail_on)
        self.calls: list[str] = []

    async def _embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.fail_on:
            raise ProviderUnavailableError(f"stub failure for {text!r}")
        if text in self.vectors:
            return self.vectors[text]
        digest = hashlib.sha256(text.encode()).digest()
        return [byte / 255 + 0.01 for byte in digest[: self.dimensions]]


def make_settings(sources: list[str] | None = None) -> Settings:
    """Settings wired for the in-memory backend."""
    return Settings(
        _env_file=None,
        embedding=EmbeddingSettings(model="stub-model", dimension=DIMENSION),
        vector=VectorStoreSettings(provider=VectorProviderType.MEMORY, collection="movies"),
        ingestion=IngestionSettings(sources=sources or ["title", "plot", "genre"]),
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def provider() -> StubEmbeddingProvider:
    return StubEmbeddingProvider()


@pytest.fixture
async def vector_store() -> InMemoryVectorStore:
    store = InMemoryVectorStore()
    await store.ensure_collection("movies", DIMENSION)
    return store


@pytest.fixture
async def services(
    settings: Settings,
    provider: StubEmbeddingProvider,
    vector_store: InMemoryVectorStore,
) -> AsyncGenerator[Services, None]:
    """Service graph over in-memory stores and the stub provider."""
    built = build_services(settings, embeddings=provider, vectors=vector_store)
    yield built
    await built.close()


@pytest.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    app.state.services = services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.services = None
