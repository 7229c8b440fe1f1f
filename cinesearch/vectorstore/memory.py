"""In-process vector store for development and tests."""

import math

from cinesearch.exceptions import BackendError, NoPointsError
from cinesearch.logging_config import get_logger
from cinesearch.vectorstore.models import VectorMatch, VectorPoint, normalize_score
from cinesearch.vectorstore.service import VectorStore

logger = get_logger(__name__)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 for zero vectors."""
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine search over dicts held in memory."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._collections: dict[str, dict[int, VectorPoint]] = {}
        self._dimensions: dict[str, int] = {}

    async def ensure_collection(
        self,
        name: str,
        dimensions: int,
        distance: str = "cosine",
    ) -> None:
        if name in self._collections:
            return
        self._collections[name] = {}
        self._dimensions[name] = dimensions
        logger.info(f"Created collection: {name}", extra={"dimensions": dimensions})

    async def upsert(self, collection: str, points: list[VectorPoint]) -> int:
        if not points:
            raise NoPointsError()

        stored = self._collections.get(collection)
        if stored is None:
            raise BackendError(
                f"Collection not found: {collection}",
                details={"collection": collection},
            )

        expected = self._dimensions[collection]
        for point in points:
            if len(point.vector) != expected:
                raise BackendError(
                    f"Vector dimension {len(point.vector)} does not match "
                    f"collection dimension {expected}",
                    details={"collection": collection, "point_id": point.id},
                )

        with self._timed("upsert"):
            for point in points:
                stored[point.id] = point.model_copy(deep=True)
        return len(points)

    async def query(
        self,
        collection: str,
        vector: list[float],
        limit: int = 10,
    ) -> list[VectorMatch]:
        stored = self._collections.get(collection)
        if stored is None:
            logger.warning(
                f"Vector collection '{collection}' does not exist, "
                "returning empty results"
            )
            return []
        if not stored:
            logger.info(
                f"Vector collection '{collection}' is empty, returning empty results"
            )
            return []
        if len(vector) != self._dimensions[collection]:
            raise BackendError(
                f"Query dimension {len(vector)} does not match "
                f"collection dimension {self._dimensions[collection]}",
                details={"collection": collection},
            )

        with self._timed("query"):
            scored = [
                VectorMatch(
                    id=point.id,
                    score=normalize_score(cosine_similarity(vector, point.vector)),
                    payload=dict(point.payload),
                )
                for point in stored.values()
            ]
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:limit]

    async def delete(self, collection: str, ids: list[int]) -> int:
        stored = self._collections.get(collection, {})
        for point in ids:
            stored.pop(point, None)
        return len(ids)

    async def existing_ids(self, collection: str, ids: list[int]) -> set[int]:
        stored = self._collections.get(collection, {})
        return {point for point in ids if point in stored}

    def count(self, collection: str) -> int:
        """Number of points stored in a collection."""
        return len(self._collections.get(collection, {}))
