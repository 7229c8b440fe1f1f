"""Vector store interface and Qdrant implementation."""

import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import Distance, PointIdsList, PointStruct, VectorParams

from cinesearch.config import QdrantSettings, get_settings
from cinesearch.exceptions import BackendError, NoPointsError
from cinesearch.logging_config import get_logger
from cinesearch.observability.metrics import track_vectorstore_operation
from cinesearch.vectorstore.models import VectorMatch, VectorPoint, normalize_score

logger = get_logger(__name__)


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Every backend speaks the same contract: idempotent collection setup,
    overwrite-by-id upserts, highest-score-first queries with scores in
    ``[0, 1]`` and idempotent deletes.
    """

    backend_name: str = "base"

    @abstractmethod
    async def ensure_collection(
        self,
        name: str,
        dimensions: int,
        distance: str = "cosine",
    ) -> None:
        """Create the collection if it does not exist.

        Args:
            name: Collection name.
            dimensions: Vector dimensions.
            distance: Similarity metric (cosine, dot, euclid).

        Raises:
            BackendError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def upsert(self, collection: str, points: list[VectorPoint]) -> int:
        """Insert or overwrite points by id.

        Args:
            collection: Collection name.
            points: Points to write.

        Returns:
            Number of points written.

        Raises:
            NoPointsError: If points is empty.
            BackendError: On transport or authentication failure.
        """
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
    ) -> list[VectorMatch]:
        """Return the nearest points, highest score first.

        A missing or empty collection yields an empty list.

        Raises:
            BackendError: On transport or authentication failure.
        """
        ...

    @abstractmethod
    async def delete(self, collection: str, ids: list[int]) -> int:
        """Delete points by id. Unknown ids are ignored.

        Returns:
            Number of ids submitted for deletion.
        """
        ...

    @abstractmethod
    async def existing_ids(self, collection: str, ids: list[int]) -> set[int]:
        """Return the subset of ``ids`` present in the collection."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None

    @contextmanager
    def _timed(self, operation: str) -> Iterator[None]:
        """Record duration and outcome of one backend call."""
        start = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            track_vectorstore_operation(
                backend=self.backend_name,
                operation=operation,
                duration=time.perf_counter() - start,
                success=success,
            )


_QDRANT_DISTANCES = {
    "cosine": Distance.COSINE,
    "dot": Distance.DOT,
    "euclid": Distance.EUCLID,
}


class QdrantVectorStore(VectorStore):
    """Qdrant vector store implementation."""

    backend_name = "qdrant"

    def __init__(
        self,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize Qdrant vector store.

        Args:
            settings: Qdrant configuration.
            client: Existing client (for testing).
            timeout: Per-request timeout in seconds.
        """
        self._settings = settings or get_settings().qdrant
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()

            self._client = AsyncQdrantClient(
                url=self._settings.url,
                api_key=api_key,
                timeout=int(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    async def ensure_collection(
        self,
        name: str,
        dimensions: int,
        distance: str = "cosine",
    ) -> None:
        """Create the Qdrant collection unless it already exists."""
        client = await self._get_client()

        try:
            with self._timed("ensure_collection"):
                if await client.collection_exists(name):
                    logger.info(f"Qdrant collection already exists: {name}")
                    return

                await client.create_collection(
                    collection_name=name,
                    vectors_config=VectorParams(
                        size=dimensions,
                        distance=_QDRANT_DISTANCES.get(distance, Distance.COSINE),
                    ),
                )
        except Exception as e:
            raise BackendError(
                f"Failed to ensure collection: {e}",
                details={"collection": name, "error": str(e)},
            ) from e

        logger.info(f"Created collection: {name}", extra={"dimensions": dimensions})

    async def upsert(self, collection: str, points: list[VectorPoint]) -> int:
        """Upsert points and wait for the write to be applied."""
        if not points:
            raise NoPointsError()

        client = await self._get_client()

        try:
            with self._timed("upsert"):
                await client.upsert(
                    collection_name=collection,
                    points=[
                        PointStruct(id=p.id, vector=p.vector, payload=p.payload)
                        for p in points
                    ],
                    wait=True,
                )
        except Exception as e:
            raise BackendError(
                f"Failed to upsert points: {e}",
                details={"collection": collection, "error": str(e)},
            ) from e

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
        """Search for similar vectors."""
        client = await self._get_client()

        try:
            with self._timed("query"):
                if not await client.collection_exists(collection):
                    logger.warning(
                        f"Vector collection '{collection}' does not exist, "
                        "returning empty results"
                    )
                    return []

                info = await client.get_collection(collection)
                if not info.points_count:
                    logger.info(
                        f"Vector collection '{collection}' is empty, "
                        "returning empty results"
                    )
                    return []

                results = await client.query_points(
                    collection_name=collection,
                    query=vector,
                    limit=limit,
                    with_payload=True,
                )
        except Exception as e:
            raise BackendError(
                f"Failed to search: {e}",
                details={"collection": collection, "error": str(e)},
            ) from e

        return [
            VectorMatch(
                id=int(point.id),
                score=normalize_score(point.score),
                payload=dict(point.payload) if point.payload else {},
            )
            for point in results.points
        ]

    async def delete(self, collection: str, ids: list[int]) -> int:
        """Delete points by id."""
        if not ids:
            return 0

        client = await self._get_client()

        try:
            with self._timed("delete"):
                await client.delete(
                    collection_name=collection,
                    points_selector=PointIdsList(points=ids),  # type: ignore[arg-type]
                    wait=True,
                )
        except Exception as e:
            raise BackendError(
                f"Failed to delete points: {e}",
                details={"collection": collection, "error": str(e)},
            ) from e

        logger.debug(
            f"Deleted {len(ids)} points",
            extra={"collection": collection},
        )
        return len(ids)

    async def existing_ids(self, collection: str, ids: list[int]) -> set[int]:
        """Retrieve which point ids are stored."""
        if not ids:
            return set()

        client = await self._get_client()

        try:
            with self._timed("retrieve"):
                if not await client.collection_exists(collection):
                    return set()
                records = await client.retrieve(
                    collection_name=collection,
                    ids=ids,  # type: ignore[arg-type]
                    with_payload=False,
                    with_vectors=False,
                )
        except Exception as e:
            raise BackendError(
                f"Failed to retrieve points: {e}",
                details={"collection": collection, "error": str(e)},
            ) from e

        return {int(record.id) for record in records}
