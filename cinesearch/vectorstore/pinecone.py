"""Pinecone vector store over the Pinecone data-plane REST API."""

from typing import Any

import httpx

from cinesearch.config import PineconeSettings, get_settings
from cinesearch.exceptions import BackendError, ConfigurationError, NoPointsError
from cinesearch.logging_config import get_logger
from cinesearch.vectorstore.models import VectorMatch, VectorPoint, normalize_score
from cinesearch.vectorstore.service import VectorStore

logger = get_logger(__name__)


class PineconeVectorStore(VectorStore):
    """Pinecone implementation.

    Pinecone indexes are provisioned out of band, so the index host already
    identifies the collection; the ``collection`` argument is only used in
    log context. ``ensure_collection`` checks the index and never fails.
    """

    backend_name = "pinecone"

    def __init__(
        self,
        settings: PineconeSettings | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings or get_settings().pinecone
        if not self._settings.api_key or not self._settings.index_host:
            raise ConfigurationError(
                "PINECONE_API_KEY and PINECONE_INDEX_HOST are required "
                "for the pinecone vector provider"
            )
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    @property
    def _base_url(self) -> str:
        host = self._settings.index_host.rstrip("/")  # type: ignore[union-attr]
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        return host

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _call(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one authenticated request and decode the JSON body.

        Raises:
            BackendError: On transport failure or an error status.
        """
        client = await self._get_client()
        url = f"{self._base_url}{path}"
        headers = {
            "Api-Key": self._settings.api_key.get_secret_value(),  # type: ignore[union-attr]
            "Accept": "application/json",
        }

        try:
            response = await client.request(
                method, url, json=json, params=params, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise BackendError(
                f"Pinecone returned {status}",
                details={"status_code": status, "path": path},
            ) from e
        except httpx.RequestError as e:
            raise BackendError(
                f"Failed to reach Pinecone: {e}",
                details={"path": path},
            ) from e

        if not response.content:
            return {}
        return response.json()

    async def _stats(self) -> dict[str, Any]:
        return await self._call("POST", "/describe_index_stats", json={})

    async def ensure_collection(
        self,
        name: str,
        dimensions: int,
        distance: str = "cosine",
    ) -> None:
        """Check that the index is reachable; log guidance when it is not."""
        try:
            with self._timed("ensure_collection"):
                stats = await self._stats()
        except BackendError as e:
            logger.warning(
                f"Pinecone index '{name}' may not exist. Create it in the "
                f"Pinecone console with dimension {dimensions} and metric {distance}",
                extra={"error": e.message},
            )
            return

        index_dimension = stats.get("dimension")
        if index_dimension and index_dimension != dimensions:
            logger.warning(
                f"Pinecone index '{name}' has dimension {index_dimension}, "
                f"expected {dimensions}"
            )
            return
        logger.info(f"Pinecone index '{name}' is ready")

    async def upsert(self, collection: str, points: list[VectorPoint]) -> int:
        """Upsert points into the configured namespace."""
        if not points:
            raise NoPointsError()

        with self._timed("upsert"):
            await self._call(
                "POST",
                "/vectors/upsert",
                json={
                    "vectors": [
                        {"id": str(p.id), "values": p.vector, "metadata": p.payload}
                        for p in points
                    ],
                    "namespace": self._settings.namespace,
                },
            )

        logger.debug(
            f"Upserted {len(points)} points",
            extra={"collection": collection},
        )
        return len(points)

    async def query(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
    ) -> list[VectorMatch]:
        """Query the namespace; an empty namespace yields no matches."""
        with self._timed("query"):
            stats = await self._stats()
            namespace = stats.get("namespaces", {}).get(self._settings.namespace, {})
            if not namespace.get("vectorCount"):
                logger.info(
                    f"Vector collection '{collection}' is empty, "
                    "returning empty results"
                )
                return []

            data = await self._call(
                "POST",
                "/query",
                json={
                    "vector": vector,
                    "topK": limit,
                    "includeMetadata": True,
                    "namespace": self._settings.namespace,
                },
            )

        return [
            VectorMatch(
                id=int(match["id"]),
                score=normalize_score(match.get("score")),
                payload=match.get("metadata") or {},
            )
            for match in data.get("matches", [])
        ]

    async def delete(self, collection: str, ids: list[int]) -> int:
        """Delete points by id."""
        if not ids:
            return 0

        with self._timed("delete"):
            await self._call(
                "POST",
                "/vectors/delete",
                json={
                    "ids": [str(i) for i in ids],
                    "namespace": self._settings.namespace,
                },
            )
        return len(ids)

    async def existing_ids(self, collection: str, ids: list[int]) -> set[int]:
        """Fetch which ids are stored in the namespace."""
        if not ids:
            return set()

        with self._timed("retrieve"):
            data = await self._call(
                "GET",
                "/vectors/fetch",
                params={
                    "ids": [str(i) for i in ids],
                    "namespace": self._settings.namespace,
                },
            )
        return {int(i) for i in data.get("vectors", {})}
