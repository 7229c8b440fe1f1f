"""Hugging Face Inference API embedding provider."""

import asyncio
from typing import Any

import httpx

from cinesearch.config import EmbeddingSettings
from cinesearch.embeddings.pooling import to_sentence_vector
from cinesearch.embeddings.service import (
    RETRYABLE_STATUSES,
    RemoteEmbeddingProvider,
    Sleep,
    raise_for_status_code,
)
from cinesearch.exceptions import (
    ConfigurationError,
    ModelNotFoundError,
    PermanentProviderError,
    ProviderUnauthorizedError,
    ProviderUnavailableError,
)
from cinesearch.logging_config import get_logger

logger = get_logger(__name__)


class HuggingFaceEmbeddingProvider(RemoteEmbeddingProvider):
    """Embeddings from the Hugging Face inference router.

    Before the first request for a model, the hub is asked whether the model
    exists and the token can see it. The answer is cached for the lifetime of
    the provider. Cold models answer 503 (or an ``error: ... loading`` body);
    those requests are retried a bounded number of times, waiting for the
    ``estimated_time`` the API suggests (capped at ``max_backoff``) or
    ``retry_backoff`` seconds.
    """

    provider_name = "huggingface"

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the Hugging Face provider.

        Args:
            settings: Embedding configuration.
            client: HTTP client (for testing).
            sleep: Coroutine used to wait between warm-up retries.
        """
        super().__init__(settings, client, sleep)
        if self._settings.api_key is None:
            raise ConfigurationError(
                "EMBEDDING_API_KEY is required for Hugging Face embeddings"
            )
        self._accessible_models: set[str] = set()
        self._preflight_lock = asyncio.Lock()

    async def ensure_model_accessible(self) -> None:
        """Check once that the configured model exists and is accessible.

        Raises:
            ModelNotFoundError: The hub answered 404.
            ProviderUnauthorizedError: The hub answered 401 or 403.
            ProviderUnavailableError: The hub could not be reached.
        """
        model = self.model_name
        if model in self._accessible_models:
            return

        async with self._preflight_lock:
            if model in self._accessible_models:
                return

            client = await self._get_client()
            url = f"{self._settings.hf_hub_url.rstrip('/')}/api/models/{model}"
            logger.info(f"Checking Hugging Face model availability: {model}")

            try:
                response = await client.get(url, headers=self._auth_headers())
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 404:
                    raise ModelNotFoundError(
                        f"Hugging Face model not found or inaccessible: {model} (404). "
                        "Verify the model slug and token access.",
                        details={"model": model},
                    ) from e
                if status in (401, 403):
                    raise ProviderUnauthorizedError(
                        f"Hugging Face API authorization failed (status {status}). "
                        "Check EMBEDDING_API_KEY and its scopes.",
                        details={"model": model, "status_code": status},
                    ) from e
                raise ProviderUnavailableError(
                    f"Hugging Face model check returned {status}",
                    details={"model": model, "status_code": status},
                ) from e
            except httpx.RequestError as e:
                raise ProviderUnavailableError(
                    f"Failed to reach Hugging Face hub: {e}",
                    details={"model": model},
                ) from e

            self._accessible_models.add(model)

    async def _embed(self, text: str) -> list[float]:
        await self.ensure_model_accessible()

        url = f"{self._settings.hf_inference_url.rstrip('/')}/models/{self.model_name}"
        response = await self._post_with_retry(url, {"inputs": text})

        if response.status_code == 410:
            raise PermanentProviderError(
                "Hugging Face API returned 410 Gone: the endpoint is deprecated. "
                "Update EMBEDDING_HF_INFERENCE_URL or change EMBEDDING_PROVIDER.",
                details={"url": url},
            )
        if response.is_error:
            raise_for_status_code(response.status_code, self.model_name, url)

        data = _decode(response)
        if isinstance(data, dict):
            raise ProviderUnavailableError(
                f"Hugging Face API error: {data.get('error', 'unexpected response')}",
                details={"url": url},
            )
        return to_sentence_vector(data)

    def _retry_delay(self, response: httpx.Response) -> float | None:
        """Seconds to wait if the model is warming up or the router is busy."""
        body = _decode(response)
        error = body.get("error", "") if isinstance(body, dict) else ""
        loading = response.status_code in RETRYABLE_STATUSES or (
            isinstance(error, str) and "loading" in error.lower()
        )
        if not loading:
            return None

        estimated = body.get("estimated_time") if isinstance(body, dict) else None
        if isinstance(estimated, int | float):
            return self._capped(float(estimated))
        return super()._retry_delay(response) or self._capped(None)


def _decode(response: httpx.Response) -> Any:
    """Decode a JSON body, or None when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None
