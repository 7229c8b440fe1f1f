"""Tests for vector store module."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from chromadb.errors import ChromaError, NotFoundError
from pydantic import SecretStr, ValidationError

from cinesearch.config import (
    ChromaSettings,
    PineconeSettings,
    QdrantSettings,
    Settings,
    VectorProviderType,
    VectorStoreSettings,
)
from cinesearch.exceptions import BackendError, ConfigurationError, ErrorCode, NoPointsError
from cinesearch.vectorstore.chroma import ChromaVectorStore
from cinesearch.vectorstore.factory import create_vector_store
from cinesearch.vectorstore.memory import InMemoryVectorStore, cosine_similarity
from cinesearch.vectorstore.models import (
    POINT_ID_MASK,
    VectorMatch,
    VectorPoint,
    normalize_score,
    point_id,
)
from cinesearch.vectorstore.pinecone import PineconeVectorStore
from cinesearch.vectorstore.service import QdrantVectorStore


class TestPointId:
    """Tests for deterministic point ids."""

    def test_deterministic(self) -> None:
        """Same record and source give the same id."""
        assert point_id("rec-1", "plot") == point_id("rec-1", "plot")

    def test_distinct_per_source(self) -> None:
        """Each source of a record has its own id."""
        ids = {point_id("rec-1", source) for source in ("title", "plot", "genre")}
        assert len(ids) == 3

    def test_fits_signed_64_bit(self) -> None:
        """Ids are non-negative and below 2**63."""
        for i in range(50):
            value = point_id(f"rec-{i}", "title")
            assert 0 <= value <= POINT_ID_MASK


class TestScores:
    """Tests for score normalization."""

    def test_similarity_clamped(self) -> None:
        """Similarities outside [0, 1] are clamped."""
        assert normalize_score(1.2) == 1.0
        assert normalize_score(-0.3) == 0.0
        assert normalize_score(0.42) == 0.42

    def test_distance_converted(self) -> None:
        """Distances become 1 - d."""
        assert normalize_score(0.25, distance=True) == 0.75
        assert normalize_score(1.5, distance=True) == 0.0

    def test_missing_score(self) -> None:
        """A missing score counts as zero."""
        assert normalize_score(None) == 0.0

    def test_cosine_zero_vector(self) -> None:
        """Zero vectors have zero similarity."""
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
        assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)


class TestVectorPoint:
    """Tests for VectorPoint model."""

    def test_for_source(self) -> None:
        """Points built for a source carry the identity payload."""
        point = VectorPoint.for_source("rec-1", "plot", [0.1, 0.2])
        assert point.id == point_id("rec-1", "plot")
        assert point.payload == {"record_id": "rec-1", "source": "plot"}

    def test_payload_requires_identity(self) -> None:
        """record_id and source are mandatory."""
        with pytest.raises(ValidationError):
            VectorPoint(id=1, vector=[0.1], payload={"source": "plot"})

    def test_empty_vector_rejected(self) -> None:
        """A point needs at least one component."""
        with pytest.raises(ValidationError):
            VectorPoint(id=1, vector=[], payload={"record_id": "r", "source": "plot"})

    def test_match_record_id(self) -> None:
        """Matches expose the owning record id."""
        match = VectorMatch(id=1, score=0.5, payload={"record_id": "rec-9"})
        assert match.record_id == "rec-9"
        assert VectorMatch(id=2, score=0.5).record_id is None


class TestInMemoryVectorStore:
    """Tests for the in-process backend."""

    @pytest.mark.asyncio
    async def test_upsert_overwrites_by_id(self) -> None:
        """Writing the same id twice keeps one point."""
        store = InMemoryVectorStore()
        await store.ensure_collection("movies", 2)
        await store.ensure_collection("movies", 2)

        await store.upsert("movies", [VectorPoint.for_source("r1", "plot", [1.0, 0.0])])
        await store.upsert("movies", [VectorPoint.for_source("r1", "plot", [0.0, 1.0])])

        assert store.count("movies") == 1
        matches = await store.query("movies", [0.0, 1.0])
        assert matches[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_query_orders_and_limits(self) -> None:
        """Results are highest score first and truncated."""
        store = InMemoryVectorStore()
        await store.ensure_collection("movies", 2)
        await store.upsert(
            "movies",
            [
                VectorPoint.for_source("far", "plot", [0.0, 1.0]),
                VectorPoint.for_source("near", "plot", [1.0, 0.1]),
                VectorPoint.for_source("mid", "plot", [1.0, 1.0]),
            ],
        )

        matches = await store.query("movies", [1.0, 0.0], limit=2)

        assert [m.record_id for m in matches] == ["near", "mid"]

    @pytest.mark.asyncio
    async def test_missing_and_empty_collections(self) -> None:
        """Missing and empty collections both return no matches."""
        store = InMemoryVectorStore()
        assert await store.query("nope", [1.0, 0.0]) == []

        await store.ensure_collection("movies", 2)
        assert await store.query("movies", [1.0, 0.0]) == []

    @pytest.mark.asyncio
    async def test_empty_upsert(self) -> None:
        """Upserting nothing raises NoPointsError."""
        store = InMemoryVectorStore()
        await store.ensure_collection("movies", 2)
        with pytest.raises(NoPointsError) as exc_info:
            await store.upsert("movies", [])
        assert exc_info.value.code == ErrorCode.NO_POINTS

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self) -> None:
        """Vectors must match the collection dimension."""
        store = InMemoryVectorStore()
        await store.ensure_collection("movies", 2)
        with pytest.raises(BackendError):
            await store.upsert("movies", [VectorPoint.for_source("r", "plot", [1.0])])

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self) -> None:
        """Deleting unknown ids is not an error."""
        store = InMemoryVectorStore()
        await store.ensure_collection("movies", 2)
        point = VectorPoint.for_source("r1", "plot", [1.0, 0.0])
        await store.upsert("movies", [point])

        await store.delete("movies", [point.id])
        await store.delete("movies", [point.id, 12345])

        assert store.count("movies") == 0
        assert await store.existing_ids("movies", [point.id]) == set()


class TestQdrantVectorStore:
    """Tests for QdrantVectorStore."""

    def _create_mock_client(self, exists: bool = True, points_count: int = 3) -> AsyncMock:
        """Create a mock Qdrant client."""
        client = AsyncMock()
        client.collection_exists = AsyncMock(return_value=exists)
        client.create_collection = AsyncMock()
        client.upsert = AsyncMock()
        info = MagicMock()
        info.points_count = points_count
        client.get_collection = AsyncMock(return_value=info)
        mock_response = MagicMock()
        mock_response.points = []
        client.query_points = AsyncMock(return_value=mock_response)
        client.delete = AsyncMock()
        client.retrieve = AsyncMock(return_value=[])
        client.close = AsyncMock()
        return client

    def _store(self, client: AsyncMock) -> QdrantVectorStore:
        return QdrantVectorStore(
            settings=QdrantSettings(url="http://localhost:6333"), client=client
        )

    @pytest.mark.asyncio
    async def test_ensure_collection_creates(self) -> None:
        """Missing collection is created with size and cosine distance."""
        mock_client = self._create_mock_client(exists=False)

        await self._store(mock_client).ensure_collection("movies", dimensions=384)

        mock_client.create_collection.assert_called_once()
        call_kwargs = mock_client.create_collection.call_args.kwargs
        assert call_kwargs["collection_name"] == "movies"
        assert call_kwargs["vectors_config"].size == 384

    @pytest.mark.asyncio
    async def test_ensure_collection_existing(self) -> None:
        """Existing collection is left alone."""
        mock_client = self._create_mock_client(exists=True)

        await self._store(mock_client).ensure_collection("movies", dimensions=384)

        mock_client.create_collection.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_waits(self) -> None:
        """Upserts are synchronous writes."""
        mock_client = self._create_mock_client()
        point = VectorPoint.for_source("r1", "plot", [0.1, 0.2])

        count = await self._store(mock_client).upsert("movies", [point])

        assert count == 1
        call_kwargs = mock_client.upsert.call_args.kwargs
        assert call_kwargs["wait"] is True
        assert call_kwargs["points"][0].id == point.id

    @pytest.mark.asyncio
    async def test_query_missing_collection(self) -> None:
        """A missing collection returns no matches without querying."""
        mock_client = self._create_mock_client(exists=False)

        assert await self._store(mock_client).query("movies", [0.1]) == []
        mock_client.query_points.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_empty_collection(self) -> None:
        """An empty collection returns no matches without querying."""
        mock_client = self._create_mock_client(points_count=0)

        assert await self._store(mock_client).query("movies", [0.1]) == []
        mock_client.query_points.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_returns_matches(self) -> None:
        """Scored points are converted and clamped."""
        mock_client = self._create_mock_client()
        scored = MagicMock()
        scored.id = 7
        scored.score = 1.0000002
        scored.payload = {"record_id": "r1", "source": "plot"}
        mock_client.query_points.return_value.points = [scored]

        matches = await self._store(mock_client).query("movies", [0.1], limit=5)

        assert matches == [
            VectorMatch(id=7, score=1.0, payload={"record_id": "r1", "source": "plot"})
        ]
        assert mock_client.query_points.call_args.kwargs["limit"] == 5

    @pytest.mark.asyncio
    async def test_backend_failure(self) -> None:
        """Client errors are wrapped in BackendError."""
        mock_client = self._create_mock_client()
        mock_client.upsert.side_effect = ConnectionError("refused")

        with pytest.raises(BackendError, match="refused"):
            await self._store(mock_client).upsert(
                "movies", [VectorPoint.for_source("r1", "plot", [0.1])]
            )

    @pytest.mark.asyncio
    async def test_existing_ids(self) -> None:
        """Retrieved records map back to ids."""
        mock_client = self._create_mock_client()
        record = MagicMock()
        record.id = 11
        mock_client.retrieve.return_value = [record]

        assert await self._store(mock_client).existing_ids("movies", [11, 12]) == {11}

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self) -> None:
        """Injected clients are owned by the caller."""
        mock_client = self._create_mock_client()

        await self._store(mock_client).close()

        mock_client.close.assert_not_called()


class TestChromaVectorStore:
    """Tests for ChromaVectorStore with a mocked chromadb client."""

    @pytest.fixture
    def collection(self) -> MagicMock:
        collection = MagicMock()
        collection.count = AsyncMock(return_value=2)
        collection.query = AsyncMock()
        collection.upsert = AsyncMock()
        collection.delete = AsyncMock()
        collection.get = AsyncMock(return_value={"ids": []})
        return collection

    @pytest.fixture
    def mock_client(self, collection: MagicMock) -> MagicMock:
        client = MagicMock()
        client.get_collection = AsyncMock(return_value=collection)
        client.get_or_create_collection = AsyncMock(return_value=collection)
        return client

    def _store(self, client: MagicMock) -> ChromaVectorStore:
        return ChromaVectorStore(settings=ChromaSettings(), client=client)

    @pytest.mark.asyncio
    async def test_query_converts_distances(
        self, mock_client: MagicMock, collection: MagicMock
    ) -> None:
        """Distances become similarity scores, highest first."""
        collection.query.return_value = {
            "ids": [["1", "2"]],
            "distances": [[0.6, 0.1]],
            "metadatas": [
                [
                    {"record_id": "a", "source": "plot"},
                    {"record_id": "b", "source": "plot"},
                ]
            ],
        }

        matches = await self._store(mock_client).query("movies", [0.1, 0.2], limit=3)

        assert [m.id for m in matches] == [2, 1]
        assert matches[0].score == pytest.approx(0.9)
        assert matches[1].score == pytest.approx(0.4)
        assert matches[0].payload == {"record_id": "b", "source": "plot"}
        assert collection.query.call_args.kwargs["n_results"] == 3

    @pytest.mark.asyncio
    async def test_query_missing_collection(self, mock_client: MagicMock) -> None:
        """A collection Chroma reports as not found returns no matches."""
        mock_client.get_collection.side_effect = NotFoundError("no such collection")

        assert await self._store(mock_client).query("movies", [0.1]) == []

    @pytest.mark.asyncio
    async def test_query_empty_collection(
        self, mock_client: MagicMock, collection: MagicMock
    ) -> None:
        """A zero count short-circuits the query."""
        collection.count.return_value = 0

        assert await self._store(mock_client).query("movies", [0.1]) == []
        collection.query.assert_not_called()

    @pytest.mark.asyncio
    async def test_ensure_then_upsert(
        self, mock_client: MagicMock, collection: MagicMock
    ) -> None:
        """The handle from creation is reused for upserts."""
        store = self._store(mock_client)
        await store.ensure_collection("movies", 4)
        point = VectorPoint.for_source("r1", "plot", [0.1, 0.2, 0.3, 0.4])
        await store.upsert("movies", [point])

        create = mock_client.get_or_create_collection.call_args.kwargs
        assert create["name"] == "movies"
        assert create["metadata"]["hnsw:space"] == "cosine"
        mock_client.get_collection.assert_not_called()
        upsert = collection.upsert.call_args.kwargs
        assert upsert["ids"] == [str(point.id)]
        assert upsert["metadatas"] == [{"record_id": "r1", "source": "plot"}]

    @pytest.mark.asyncio
    async def test_upsert_missing_collection(self, mock_client: MagicMock) -> None:
        """Writing to a missing collection is an error, not a no-op."""
        mock_client.get_collection.side_effect = NotFoundError("missing")
        point = VectorPoint.for_source("r1", "plot", [0.1])

        with pytest.raises(BackendError):
            await self._store(mock_client).upsert("movies", [point])

    @pytest.mark.asyncio
    async def test_lookup_server_error(self, mock_client: MagicMock) -> None:
        """A failing collection lookup is not mistaken for a missing collection."""
        mock_client.get_collection.side_effect = ChromaError("internal error")
        store = self._store(mock_client)

        with pytest.raises(BackendError):
            await store.query("movies", [0.1])
        with pytest.raises(BackendError):
            await store.delete("movies", [1])
        with pytest.raises(BackendError):
            await store.existing_ids("movies", [1])

    @pytest.mark.asyncio
    async def test_operation_server_errors(
        self, mock_client: MagicMock, collection: MagicMock
    ) -> None:
        """Failures inside query, delete and get surface as BackendError."""
        collection.query.side_effect = ChromaError("query failed")
        collection.delete.side_effect = ChromaError("delete failed")
        collection.get.side_effect = ChromaError("get failed")
        store = self._store(mock_client)

        with pytest.raises(BackendError):
            await store.query("movies", [0.1])
        with pytest.raises(BackendError):
            await store.delete("movies", [1])
        with pytest.raises(BackendError):
            await store.existing_ids("movies", [1])

    @pytest.mark.asyncio
    async def test_delete_and_existing_ids(
        self, mock_client: MagicMock, collection: MagicMock
    ) -> None:
        """Ids are sent as strings and read back as integers."""
        collection.get.return_value = {"ids": ["7"]}
        store = self._store(mock_client)

        assert await store.delete("movies", [7, 8]) == 2
        assert await store.existing_ids("movies", [7, 8]) == {7}
        collection.delete.assert_awaited_once_with(ids=["7", "8"])

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(
        self, mock_client: MagicMock, collection: MagicMock
    ) -> None:
        """An injected client survives close; collection handles are re-resolved."""
        collection.count.return_value = 0
        store = self._store(mock_client)
        await store.query("movies", [0.1])
        await store.close()
        await store.query("movies", [0.1])

        assert mock_client.get_collection.await_count == 2


class TestPineconeVectorStore:
    """Tests for PineconeVectorStore over a mocked REST API."""

    def _settings(self) -> PineconeSettings:
        return PineconeSettings(
            api_key=SecretStr("pc-key"), index_host="movies.pinecone.test", namespace="ns"
        )

    def test_requires_credentials(self) -> None:
        """Missing key or host is a configuration error."""
        with pytest.raises(ConfigurationError):
            PineconeVectorStore(settings=PineconeSettings(api_key=None, index_host=None))

    @pytest.mark.asyncio
    async def test_query(self) -> None:
        """Matches are read from the namespace with the api key header."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Api-Key"] == "pc-key"
            assert request.url.host == "movies.pinecone.test"
            if request.url.path == "/describe_index_stats":
                return httpx.Response(
                    200, json={"dimension": 2, "namespaces": {"ns": {"vectorCount": 2}}}
                )
            body = json.loads(request.content)
            assert body["topK"] == 4
            assert body["namespace"] == "ns"
            return httpx.Response(
                200,
                json={
                    "matches": [
                        {"id": "5", "score": 0.8, "metadata": {"record_id": "a"}},
                        {"id": "6", "score": 0.3, "metadata": {"record_id": "b"}},
                    ]
                },
            )

        store = PineconeVectorStore(
            settings=self._settings(),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        matches = await store.query("movies", [0.1, 0.2], limit=4)

        assert [(m.id, m.score, m.record_id) for m in matches] == [
            (5, 0.8, "a"),
            (6, 0.3, "b"),
        ]

    @pytest.mark.asyncio
    async def test_query_empty_namespace(self) -> None:
        """An empty namespace returns no matches."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"namespaces": {}})

        store = PineconeVectorStore(
            settings=self._settings(),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        assert await store.query("movies", [0.1]) == []

    @pytest.mark.asyncio
    async def test_ensure_collection_never_fails(self) -> None:
        """An unreachable index only logs guidance."""
        store = PineconeVectorStore(
            settings=self._settings(),
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(404))
            ),
        )
        await store.ensure_collection("movies", 384)

    @pytest.mark.asyncio
    async def test_upsert_error(self) -> None:
        """Error statuses become BackendError."""
        store = PineconeVectorStore(
            settings=self._settings(),
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(401))
            ),
        )
        with pytest.raises(BackendError) as exc_info:
            await store.upsert("movies", [VectorPoint.for_source("r", "plot", [0.1])])
        assert exc_info.value.details["status_code"] == 401


class TestFactory:
    """Tests for backend selection."""

    def test_memory(self) -> None:
        """The memory tag builds the in-process store."""
        settings = Settings(
            _env_file=None,
            vector=VectorStoreSettings(provider=VectorProviderType.MEMORY),
        )
        assert isinstance(create_vector_store(settings), InMemoryVectorStore)

    def test_qdrant(self) -> None:
        """The qdrant tag builds the Qdrant store without connecting."""
        settings = Settings(
            _env_file=None,
            vector=VectorStoreSettings(provider=VectorProviderType.QDRANT),
        )
        assert isinstance(create_vector_store(settings), QdrantVectorStore)
