"""Select the configured embedding provider."""

from cinesearch.config import EmbeddingProviderType, EmbeddingSettings, get_settings
from cinesearch.embeddings.huggingface import HuggingFaceEmbeddingProvider
from cinesearch.embeddings.local import LocalEmbeddingProvider
from cinesearch.embeddings.service import (
    EmbeddingProvider,
    HTTPEmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from cinesearch.exceptions import ConfigurationError

_PROVIDERS: dict[EmbeddingProviderType, type[EmbeddingProvider]] = {
    EmbeddingProviderType.LOCAL: LocalEmbeddingProvider,
    EmbeddingProviderType.HUGGINGFACE: HuggingFaceEmbeddingProvider,
    EmbeddingProviderType.SERVICE: HTTPEmbeddingProvider,
    EmbeddingProviderType.OPENAI: OpenAIEmbeddingProvider,
}


def create_embedding_provider(
    settings: EmbeddingSettings | None = None,
) -> EmbeddingProvider:
    """Build the provider named by ``EMBEDDING_PROVIDER``.

    Raises:
        ConfigurationError: If the provider is unknown or misconfigured.
    """
    settings = settings or get_settings().embedding
    provider_cls = _PROVIDERS.get(settings.provider)
    if provider_cls is None:
        raise ConfigurationError(
            f"Unsupported embedding provider: {settings.provider}",
            details={"provider": str(settings.provider)},
        )
    return provider_cls(settings=settings)
