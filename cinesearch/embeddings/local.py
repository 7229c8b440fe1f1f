"""In-process embedding provider backed by sentence-transformers."""

import asyncio
from collections.abc import Callable
from typing import Any

from cinesearch.config import EmbeddingSettings
from cinesearch.embeddings.pooling import to_sentence_vector
from cinesearch.embeddings.service import EmbeddingProvider
from cinesearch.exceptions import CineSearchError, ProviderUnavailableError
from cinesearch.logging_config import get_logger

logger = get_logger(__name__)

ModelLoader = Callable[[str, str], Any]


def load_sentence_transformer(model_name: str, device: str) -> Any:
    """Load a sentence-transformers model (blocking)."""
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name, device=device)


class LocalEmbeddingProvider(EmbeddingProvider):
    """Runs the embedding model inside this process.

    Models are loaded lazily, once per distinct model name, behind a lock so
    concurrent first callers share a single load. Encoding runs in a worker
    thread under the configured timeout. Token-level output is mean-pooled.
    """

    provider_name = "local"

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        loader: ModelLoader | None = None,
    ) -> None:
        """Initialize the local provider.

        Args:
            settings: Embedding configuration.
            loader: Callable ``(model_name, device) -> model``; the model
                must expose ``encode(text)``.
        """
        super().__init__(settings)
        self._loader = loader or load_sentence_transformer
        self._models: dict[str, Any] = {}
        self._load_lock = asyncio.Lock()

    async def _get_model(self) -> Any:
        """Return the memoized model, loading it on first use."""
        name = self.model_name
        model = self._models.get(name)
        if model is not None:
            return model

        async with self._load_lock:
            model = self._models.get(name)
            if model is not None:
                return model

            logger.info(
                f"Loading local embedding model: {name}",
                extra={"device": self._settings.device},
            )
            try:
                model = await asyncio.to_thread(self._loader, name, self._settings.device)
            except Exception as e:
                raise ProviderUnavailableError(
                    f"Failed to load local embedding model {name}: {e}",
                    details={"model": name},
                ) from e

            self._models[name] = model
            return model

    async def _embed(self, text: str) -> list[float]:
        model = await self._get_model()

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(_encode, model, text),
                timeout=self._settings.timeout,
            )
        except CineSearchError:
            raise
        except TimeoutError as e:
            raise ProviderUnavailableError(
                f"Local embedding timed out after {self._settings.timeout}s",
                details={"model": self.model_name},
            ) from e
        except Exception as e:
            raise ProviderUnavailableError(
                f"Local embedding failed: {e}",
                details={"model": self.model_name},
            ) from e


def _encode(model: Any, text: str) -> list[float]:
    """Encode one text and pool token output when necessary."""
    return to_sentence_vector(model.encode(text))
