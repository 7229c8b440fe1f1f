"""Chroma vector store over the chromadb async HTTP client."""

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar

import chromadb
from chromadb.api import AsyncClientAPI
from chromadb.api.models.AsyncCollection import AsyncCollection
from chromadb.errors import NotFoundError

from cinesearch.config import ChromaSettings, get_settings
from cinesearch.exceptions import BackendError, NoPointsError
from cinesearch.logging_config import get_logger
from cinesearch.vectorstore.models import VectorMatch, VectorPoint, normalize_score
from cinesearch.vectorstore.service import VectorStore

logger = get_logger(__name__)

T = TypeVar("T")

_CHROMA_SPACES = {"cosine": "cosine", "dot": "ip", "euclid": "l2"}


class ChromaVectorStore(VectorStore):
    """Chroma implementation.

    Collection handles are resolved once per name and cached. Query results
    are distances and are converted with ``score = 1 - distance``. Only
    Chroma's not-found error marks a collection as missing; every other
    failure is a BackendError.
    """

    backend_name = "chroma"

    def __init__(
        self,
        settings: ChromaSettings | None = None,
        client: AsyncClientAPI | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings or get_settings().chroma
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._collections: dict[str, AsyncCollection] = {}

    async def _get_client(self) -> AsyncClientAPI:
        """Get or create the async HTTP client."""
        if self._client is None:
            headers = {}
            if self._settings.api_key:
                headers["x-chroma-token"] = self._settings.api_key.get_secret_value()

            try:
                self._client = await asyncio.wait_for(
                    chromadb.AsyncHttpClient(
                        host=self._settings.host,
                        port=self._settings.port,
                        ssl=self._settings.ssl,
                        headers=headers,
                        tenant=self._settings.tenant,
                        database=self._settings.database,
                    ),
                    timeout=self._timeout,
                )
            except Exception as e:
                raise BackendError(
                    f"Failed to reach Chroma: {e}",
                    details={"host": self._settings.host, "port": self._settings.port},
                ) from e
        return self._client

    async def close(self) -> None:
        """Drop the client and cached collection handles if we own them."""
        self._collections.clear()
        if self._owns_client:
            self._client = None

    async def _call(self, action: str, awaitable: Awaitable[T]) -> T:
        """Await one client call, mapping failures to BackendError.

        NotFoundError passes through so callers can decide whether a missing
        collection is an error.
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except NotFoundError:
            raise
        except Exception as e:
            raise BackendError(
                f"Chroma {action} failed: {e}",
                details={"action": action, "error": str(e)},
            ) from e

    async def _collection(self, name: str) -> AsyncCollection | None:
        """Resolve a collection handle, or None if Chroma reports it missing."""
        cached = self._collections.get(name)
        if cached is not None:
            return cached

        client = await self._get_client()
        try:
            collection = await self._call(
                "collection lookup",
                client.get_collection(name=name, embedding_function=None),
            )
        except NotFoundError:
            return None

        self._collections[name] = collection
        return collection

    async def _require_collection(self, name: str) -> AsyncCollection:
        collection = await self._collection(name)
        if collection is None:
            raise BackendError(
                f"Chroma collection not found: {name}",
                details={"collection": name},
            )
        return collection

    async def ensure_collection(
        self,
        name: str,
        dimensions: int,
        distance: str = "cosine",
    ) -> None:
        """Get or create the Chroma collection."""
        client = await self._get_client()

        with self._timed("ensure_collection"):
            collection = await self._call(
                "collection create",
                client.get_or_create_collection(
                    name=name,
                    metadata={
                        "hnsw:space": _CHROMA_SPACES.get(distance, "cosine"),
                        "dimension": dimensions,
                    },
                    embedding_function=None,
                ),
            )

        self._collections[name] = collection
        logger.info(f"Chroma collection ready: {name}", extra={"dimensions": dimensions})

    async def upsert(self, collection: str, points: list[VectorPoint]) -> int:
        """Upsert points into the collection."""
        if not points:
            raise NoPointsError()

        with self._timed("upsert"):
            handle = await self._require_collection(collection)
            await self._call(
                "upsert",
                handle.upsert(
                    ids=[str(p.id) for p in points],
                    embeddings=[p.vector for p in points],
                    metadatas=[p.payload for p in points],
                ),
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
        """Query nearest neighbours and convert distances to scores."""
        with self._timed("query"):
            handle = await self._collection(collection)
            if handle is None:
                logger.warning(
                    f"Vector collection '{collection}' does not exist, "
                    "returning empty results"
                )
                return []

            if await self._call("count", handle.count()) == 0:
                logger.info(
                    f"Vector collection '{collection}' is empty, "
                    "returning empty results"
                )
                return []

            result = await self._call(
                "query",
                handle.query(
                    query_embeddings=[vector],
                    n_results=limit,
                    include=["metadatas", "distances"],
                ),
            )

        ids = _first(result.get("ids"))
        distances = _first(result.get("distances"))
        metadatas = _first(result.get("metadatas"))

        matches = [
            VectorMatch(
                id=int(point),
                score=normalize_score(
                    distances[i] if i < len(distances) else None, distance=True
                ),
                payload=dict((metadatas[i] if i < len(metadatas) else None) or {}),
            )
            for i, point in enumerate(ids)
        ]
        matches.sort(key=lambda match: match.score, reverse=True)
        return matches

    async def delete(self, collection: str, ids: list[int]) -> int:
        """Delete points by id; a missing collection has nothing to delete."""
        if not ids:
            return 0

        with self._timed("delete"):
            handle = await self._collection(collection)
            if handle is None:
                return 0
            await self._call("delete", handle.delete(ids=[str(i) for i in ids]))

        return len(ids)

    async def existing_ids(self, collection: str, ids: list[int]) -> set[int]:
        """Fetch which ids are stored, without embeddings or metadata."""
        if not ids:
            return set()

        with self._timed("retrieve"):
            handle = await self._collection(collection)
            if handle is None:
                return set()
            result = await self._call(
                "get", handle.get(ids=[str(i) for i in ids], include=[])
            )

        return {int(i) for i in result.get("ids") or []}


def _first(rows: Any) -> list[Any]:
    """First row of a per-query result list."""
    if not rows:
        return []
    return list(rows[0] or [])
