"""Select the configured vector store backend."""

from cinesearch.config import Settings, VectorProviderType, get_settings
from cinesearch.exceptions import ConfigurationError
from cinesearch.vectorstore.chroma import ChromaVectorStore
from cinesearch.vectorstore.memory import InMemoryVectorStore
from cinesearch.vectorstore.pinecone import PineconeVectorStore
from cinesearch.vectorstore.service import QdrantVectorStore, VectorStore


def create_vector_store(settings: Settings | None = None) -> VectorStore:
    """Build the backend named by ``VECTOR_PROVIDER``.

    Raises:
        ConfigurationError: If the provider is unknown or misconfigured.
    """
    settings = settings or get_settings()
    provider = settings.vector.provider
    timeout = settings.vector.timeout

    if provider == VectorProviderType.QDRANT:
        return QdrantVectorStore(settings=settings.qdrant, timeout=timeout)
    if provider == VectorProviderType.CHROMA:
        return ChromaVectorStore(settings=settings.chroma, timeout=timeout)
    if provider == VectorProviderType.PINECONE:
        return PineconeVectorStore(settings=settings.pinecone, timeout=timeout)
    if provider == VectorProviderType.MEMORY:
        return InMemoryVectorStore()

    raise ConfigurationError(
        f"Unsupported vector provider: {provider}",
        details={"provider": str(provider)},
    )
