"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables once at startup.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class EmbeddingProviderType(str, Enum):
    """Available embedding provider families."""

    LOCAL = "local"
    HUGGINGFACE = "huggingface"
    SERVICE = "service"
    OPENAI = "openai"


class VectorProviderType(str, Enum):
    """Available vector index backends."""

    QDRANT = "qdrant"
    CHROMA = "chroma"
    PINECONE = "pinecone"
    MEMORY = "memory"


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    provider: EmbeddingProviderType = Field(
        default=EmbeddingProviderType.HUGGINGFACE,
        description="Active embedding provider",
    )
    model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Embedding model name",
    )
    dimension: int = Field(
        default=384,
        gt=0,
        description="Expected vector dimension",
    )
    service_url: str | None = Field(
        default=None,
        description="Base URL of the embedding microservice",
    )
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible API base URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="API key for Hugging Face or OpenAI-compatible providers",
    )
    hf_inference_url: str = Field(
        default="https://router.huggingface.co",
        description="Hugging Face inference router base URL",
    )
    hf_hub_url: str = Field(
        default="https://huggingface.co",
        description="Hugging Face hub URL used for the model preflight check",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries while a remote provider is warming up or rate limiting",
    )
    retry_backoff: float = Field(
        default=10.0,
        ge=0,
        description="Default wait between warm-up retries in seconds",
    )
    max_backoff: float = Field(
        default=60.0,
        ge=0,
        description="Upper bound on any single wait between retries in seconds",
    )
    batch_size: int = Field(
        default=32,
        gt=0,
        description="Batch size for batched embedding requests",
    )
    device: str = Field(
        default="cpu",
        description="Device for the local model (cpu, cuda)",
    )


class VectorStoreSettings(BaseSettings):
    """Vector index selection and collection configuration."""

    model_config = SettingsConfigDict(env_prefix="VECTOR_")

    provider: VectorProviderType = Field(
        default=VectorProviderType.QDRANT,
        description="Active vector index backend",
    )
    collection: str = Field(
        default="movies",
        description="Target collection or index name",
    )
    distance: str = Field(
        default="cosine",
        description="Similarity metric used when creating collections",
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Per-request timeout in seconds",
    )


class QdrantSettings(BaseSettings):
    """Qdrant vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )


class ChromaSettings(BaseSettings):
    """Chroma server configuration."""

    model_config = SettingsConfigDict(env_prefix="CHROMA_")

    host: str = Field(
        default="localhost",
        description="Chroma server host",
    )
    port: int = Field(
        default=8000,
        description="Chroma server port",
    )
    ssl: bool = Field(
        default=False,
        description="Use HTTPS",
    )
    tenant: str = Field(
        default="default_tenant",
        description="Chroma tenant",
    )
    database: str = Field(
        default="default_database",
        description="Chroma database",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Token sent as x-chroma-token (optional for local)",
    )


class PineconeSettings(BaseSettings):
    """Pinecone data-plane configuration."""

    model_config = SettingsConfigDict(env_prefix="PINECONE_")

    api_key: SecretStr | None = Field(
        default=None,
        description="Pinecone API key",
    )
    index_host: str | None = Field(
        default=None,
        description="Index host URL shown in the Pinecone console",
    )
    namespace: str = Field(
        default="",
        description="Namespace inside the index",
    )


class IngestionSettings(BaseSettings):
    """Ingestion pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="INGESTION_")

    sources: list[str] = Field(
        default_factory=lambda: ["title", "plot", "genre"],
        description="Record fields embedded on ingestion",
    )
    reembed_on_update: bool = Field(
        default=True,
        description="Regenerate embeddings in the background after updates",
    )


class MaintenanceSettings(BaseSettings):
    """Maintenance routine configuration."""

    model_config = SettingsConfigDict(env_prefix="MAINTENANCE_")

    poster_timeout: float = Field(
        default=20.0,
        gt=0,
        description="Timeout for a single poster download in seconds",
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (cinesearch poster backfill)",
        description="User agent sent when fetching posters",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    vector: VectorStoreSettings = Field(default_factory=VectorStoreSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    chroma: ChromaSettings = Field(default_factory=ChromaSettings)
    pinecone: PineconeSettings = Field(default_factory=PineconeSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    maintenance: MaintenanceSettings = Field(default_factory=MaintenanceSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
