"""Embedding provider interface and HTTP implementations."""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from cinesearch.config import EmbeddingSettings, get_settings
from cinesearch.embeddings.models import EmbeddingResult
from cinesearch.exceptions import (
    CineSearchError,
    ConfigurationError,
    DimensionMismatchError,
    EmptyInputError,
    ErrorCode,
    ModelNotFoundError,
    ProviderUnauthorizedError,
    ProviderUnavailableError,
    TransientProviderError,
)
from cinesearch.logging_config import get_logger
from cinesearch.observability.metrics import track_embedding_request

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Statuses meaning "try again shortly": warming up or rate limited
RETRYABLE_STATUSES = frozenset({429, 503})


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers.

    Callers only use ``generate``; it validates the input, delegates to the
    backend hook and validates the vector that comes back.
    """

    provider_name: str = "base"

    def __init__(self, settings: EmbeddingSettings | None = None) -> None:
        """Initialize the provider.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
        """
        self._settings = settings or get_settings().embedding

    @property
    def model_name(self) -> str:
        """Get the model name used for embeddings."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get the configured embedding dimensions."""
        return self._settings.dimension

    async def generate(self, text: str) -> EmbeddingResult:
        """Generate an embedding for a single text.

        Args:
            text: Non-blank text to embed.

        Returns:
            EmbeddingResult with a finite vector of the configured dimension.

        Raises:
            EmptyInputError: If text is blank.
            ProviderUnavailableError: If no valid vector could be produced.
            DimensionMismatchError: If the vector has the wrong length.
        """
        if not text or not text.strip():
            raise EmptyInputError()

        start = time.perf_counter()
        try:
            raw = await self._embed(text)
            result = self._build_result(text, raw)
        except CineSearchError:
            track_embedding_request(
                provider=self.provider_name,
                model=self.model_name,
                duration=time.perf_counter() - start,
                success=False,
            )
            raise

        track_embedding_request(
            provider=self.provider_name,
            model=self.model_name,
            duration=time.perf_counter() - start,
            success=True,
        )
        return result

    @abstractmethod
    async def _embed(self, text: str) -> list[float]:
        """Produce the raw vector for ``text``.

        Raises:
            EmbeddingError: If the backend fails.
        """
        ...

    async def close(self) -> None:
        """Release provider resources."""
        return None

    def _build_result(self, text: str, raw: Any) -> EmbeddingResult:
        """Validate a raw vector and wrap it in an EmbeddingResult."""
        if not isinstance(raw, list) or not raw:
            raise ProviderUnavailableError(
                f"{self.provider_name} returned an empty embedding",
                code=ErrorCode.EMBEDDING_INVALID_VECTOR,
                details={"model": self.model_name},
            )

        try:
            vector = [float(value) for value in raw]
        except (TypeError, ValueError) as e:
            raise ProviderUnavailableError(
                f"{self.provider_name} returned a non-numeric embedding",
                code=ErrorCode.EMBEDDING_INVALID_VECTOR,
                details={"model": self.model_name},
            ) from e

        if not all(math.isfinite(value) for value in vector):
            raise ProviderUnavailableError(
                f"{self.provider_name} returned non-finite embedding values",
                code=ErrorCode.EMBEDDING_INVALID_VECTOR,
                details={"model": self.model_name},
            )

        if len(vector) != self.dimensions:
            raise DimensionMismatchError(
                expected=self.dimensions,
                actual=len(vector),
                details={"model": self.model_name, "provider": self.provider_name},
            )

        return EmbeddingResult(
            text=text,
            embedding=vector,
            model=self.model_name,
            dimensions=len(vector),
        )


class RemoteEmbeddingProvider(EmbeddingProvider):
    """Base for providers that talk HTTP through an httpx client.

    Responses that say the provider is warming up or rate limiting (503 and
    429) are retried up to ``max_retries`` times. The wait honours a numeric
    ``Retry-After`` header, falls back to ``retry_backoff`` and never exceeds
    ``max_backoff``.
    """

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the remote provider.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
            sleep: Coroutine used to wait between retries.
        """
        super().__init__(settings)
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _auth_headers(self) -> dict[str, str]:
        """Bearer authorization header when an API key is configured."""
        headers = {"Accept": "application/json"}
        if self._settings.api_key is not None:
            headers["Authorization"] = (
                f"Bearer {self._settings.api_key.get_secret_value()}"
            )
        return headers

    def _retry_delay(self, response: httpx.Response) -> float | None:
        """Seconds to wait before retrying, or None if the response is final."""
        if response.status_code not in RETRYABLE_STATUSES:
            return None
        return self._capped(_retry_after(response))

    def _capped(self, suggested: float | None) -> float:
        """Clamp a suggested wait to ``[0, max_backoff]``."""
        if suggested is None or suggested <= 0:
            suggested = self._settings.retry_backoff
        return min(suggested, self._settings.max_backoff)

    async def _post_with_retry(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        """POST a JSON payload, retrying while the provider is unavailable.

        Raises:
            TransientProviderError: Still unavailable after ``max_retries``.
            ProviderUnavailableError: The provider could not be reached.
        """
        client = await self._get_client()
        attempt = 1

        while True:
            try:
                response = await client.post(url, json=payload, headers=self._auth_headers())
            except httpx.RequestError as e:
                logger.error(
                    f"Embedding request error: {e}",
                    extra={"url": url},
                )
                raise ProviderUnavailableError(
                    f"Failed to connect to embedding provider: {e}",
                    details={"url": url},
                ) from e

            delay = self._retry_delay(response)
            if delay is None:
                return response

            if attempt > self._settings.max_retries:
                raise TransientProviderError(
                    f"Embedding provider still unavailable after {attempt} attempts",
                    details={
                        "model": self.model_name,
                        "attempts": attempt,
                        "status_code": response.status_code,
                    },
                )

            logger.info(
                f"Embedding provider unavailable, waiting {delay}s before retry",
                extra={
                    "model": self.model_name,
                    "attempt": attempt,
                    "status": response.status_code,
                },
            )
            await self._sleep(delay)
            attempt += 1

    async def _post_json(self, url: str, payload: dict[str, Any]) -> Any:
        """POST a JSON payload and decode the JSON response.

        Raises:
            ProviderUnauthorizedError: On 401/403.
            ModelNotFoundError: On 404.
            TransientProviderError: On 503/429 that outlasts the retries.
            ProviderUnavailableError: On any other transport or HTTP failure.
        """
        response = await self._post_with_retry(url, payload)

        if response.is_error:
            status = response.status_code
            logger.error(
                f"Embedding request failed: {status}",
                extra={"url": url, "status": status},
            )
            raise_for_status_code(status, self.model_name, url)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailableError(
                f"Invalid response from embedding provider: {e}",
                details={"url": url},
            ) from e


def _retry_after(response: httpx.Response) -> float | None:
    """Numeric ``Retry-After`` header in seconds, if present."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_status_code(status: int, model: str, url: str) -> None:
    """Translate an HTTP error status into the typed provider error."""
    details = {"status_code": status, "model": model, "url": url}
    if status in (401, 403):
        raise ProviderUnauthorizedError(
            f"Embedding provider rejected credentials (status {status})",
            details=details,
        )
    if status == 404:
        raise ModelNotFoundError(
            f"Embedding model or endpoint not found: {model}",
            details=details,
        )
    raise ProviderUnavailableError(
        f"Embedding provider returned {status}",
        details=details,
    )


class HTTPEmbeddingProvider(RemoteEmbeddingProvider):
    """Generic embedding microservice.

    Sends ``{"text", "model"}`` to ``POST {service_url}/embed`` and expects
    ``{"vector": [...]}`` back.
    """

    provider_name = "service"

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(settings, client, sleep)
        if not self._settings.service_url:
            raise ConfigurationError(
                "EMBEDDING_SERVICE_URL is required for the service provider"
            )

    async def _embed(self, text: str) -> list[float]:
        url = f"{self._settings.service_url.rstrip('/')}/embed"
        data = await self._post_json(url, {"text": text, "model": self.model_name})

        if not isinstance(data, dict) or not data.get("vector"):
            raise ProviderUnavailableError(
                "Embedding service response missing vector",
                details={"url": url},
            )
        return data["vector"]


class OpenAIEmbeddingProvider(RemoteEmbeddingProvider):
    """Embedding provider for OpenAI-compatible ``/embeddings`` APIs.

    Works with the OpenAI API and text-embeddings-inference (TEI) servers.
    """

    provider_name = "openai"

    async def _embed(self, text: str) -> list[float]:
        url = f"{self._settings.base_url.rstrip('/')}/embeddings"
        data = await self._post_json(url, {"input": text, "model": self.model_name})

        try:
            return data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderUnavailableError(
                "Embedding response did not include vector data",
                details={"url": url, "error": str(e)},
            ) from e

    async def generate_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts in ``batch_size`` chunks.

        Raises:
            EmptyInputError: If any text is blank.
            ProviderUnavailableError: If a batch fails or is malformed.
        """
        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise EmptyInputError()

        url = f"{self._settings.base_url.rstrip('/')}/embeddings"
        results: list[EmbeddingResult] = []
        batch_size = self._settings.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            start = time.perf_counter()
            try:
                data = await self._post_json(
                    url, {"input": batch, "model": self.model_name}
                )
                items = sorted(data["data"], key=lambda item: item.get("index", 0))
                if len(items) != len(batch):
                    raise ProviderUnavailableError(
                        f"Expected {len(batch)} embeddings, got {len(items)}",
                        details={"url": url},
                    )
                results.extend(
                    self._build_result(text, item.get("embedding"))
                    for text, item in zip(batch, items, strict=True)
                )
            except (KeyError, TypeError, AttributeError) as e:
                track_embedding_request(
                    provider=self.provider_name,
                    model=self.model_name,
                    duration=time.perf_counter() - start,
                    success=False,
                )
                raise ProviderUnavailableError(
                    "Embedding response did not include vector data",
                    details={"url": url, "error": str(e)},
                ) from e
            except CineSearchError:
                track_embedding_request(
                    provider=self.provider_name,
                    model=self.model_name,
                    duration=time.perf_counter() - start,
                    success=False,
                )
                raise

            track_embedding_request(
                provider=self.provider_name,
                model=self.model_name,
                duration=time.perf_counter() - start,
                success=True,
            )

        return results
