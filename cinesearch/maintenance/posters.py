"""Poster image download for backfills."""

import httpx

from cinesearch.config import MaintenanceSettings, get_settings
from cinesearch.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"


def poster_url_candidates(url: str) -> list[str]:
    """The URL followed by its full-size variants, without repeats.

    Poster CDNs serve ``/w500/`` sized images; ``/original/`` often
    survives when the sized rendition is gone.
    """
    candidates = [
        url,
        url.replace("/w500/", "/original/"),
        url.replace("/w500", "/original"),
    ]
    return list(dict.fromkeys(candidates))


class PosterFetcher:
    """Downloads poster images over HTTP."""

    def __init__(
        self,
        settings: MaintenanceSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            settings: Maintenance configuration.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().maintenance
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.poster_timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> tuple[bytes, str]:
        """Download one image.

        Returns:
            The image bytes and their content type.

        Raises:
            httpx.HTTPError: On transport failure, an error status or an
                empty body.
        """
        client = await self._get_client()
        response = await client.get(
            url,
            headers={
                "User-Agent": self._settings.user_agent,
                "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
            },
        )
        response.raise_for_status()
        if not response.content:
            raise httpx.HTTPError(f"Empty poster body from {url}")

        content_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE)
        return response.content, content_type.split(";")[0].strip() or DEFAULT_CONTENT_TYPE

    async def fetch_first(self, url: str) -> tuple[bytes, str] | None:
        """Try the URL and its fallbacks; the first success wins."""
        for candidate in poster_url_candidates(url):
            try:
                return await self.fetch(candidate)
            except httpx.HTTPError as e:
                logger.debug(f"Poster candidate failed: {candidate}: {e}")
        return None
