"""Embedding provider module."""

from cinesearch.embeddings.factory import create_embedding_provider
from cinesearch.embeddings.huggingface import HuggingFaceEmbeddingProvider
from cinesearch.embeddings.local import LocalEmbeddingProvider
from cinesearch.embeddings.models import EmbeddingResult
from cinesearch.embeddings.pooling import mean_pool
from cinesearch.embeddings.service import (
    EmbeddingProvider,
    HTTPEmbeddingProvider,
    OpenAIEmbeddingProvider,
)

__all__ = [
    "EmbeddingProvider",
    "EmbeddingResult",
    "HTTPEmbeddingProvider",
    "HuggingFaceEmbeddingProvider",
    "LocalEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "create_embedding_provider",
    "mean_pool",
]
