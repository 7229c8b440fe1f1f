"""Hybrid semantic and attribute search over the catalog."""

import math

from cinesearch.embeddings.service import EmbeddingProvider
from cinesearch.exceptions import (
    ErrorCode,
    InputError,
    RecordNotFoundError,
    SearchError,
    VectorStoreError,
)
from cinesearch.logging_config import get_logger
from cinesearch.observability.metrics import track_search_request
from cinesearch.search.models import (
    FilterOptions,
    RecordPage,
    SearchFilters,
    SearchMatch,
    SortField,
    SortOrder,
)
from cinesearch.stores.records import RecordStore
from cinesearch.vectorstore.service import VectorStore

logger = get_logger(__name__)

# Sources used to describe a record for "more like this", in order of preference
SIMILARITY_SOURCES = ("plot", "script", "title")

MAX_PAGE_SIZE = 100


class HybridSearchEngine:
    """Combines vector similarity with exact attribute filters.

    Semantic searches over-fetch ``2 * limit`` neighbours because a record
    can match through several of its points and filters drop candidates
    after the vector query. Vector index failures degrade to no semantic
    results; query embedding failures propagate.
    """

    def __init__(
        self,
        records: RecordStore,
        embeddings: EmbeddingProvider,
        vectors: VectorStore,
        collection: str,
    ) -> None:
        """Initialize the search engine.

        Args:
            records: Catalog record store.
            embeddings: Provider used to embed queries.
            vectors: Vector index to query.
            collection: Collection holding the record points.
        """
        self._records = records
        self._embeddings = embeddings
        self._vectors = vectors
        self._collection = collection

    async def search(
        self,
        query: str | None = None,
        filters: SearchFilters | None = None,
        limit: int = 20,
    ) -> list[SearchMatch]:
        """Search by natural-language query, filters, or both.

        Args:
            query: Free text. Blank or None runs a filter-only search.
            filters: Attribute filters and filter-only ordering.
            limit: Maximum number of matches.

        Returns:
            Matches ordered by score (semantic) or the requested sort.

        Raises:
            InputError: If limit is not positive or a range is inverted.
            EmbeddingError: If the query could not be embedded.
        """
        if limit < 1:
            raise InputError("limit must be at least 1", details={"limit": limit})

        filters = filters or SearchFilters()
        filters.check_ranges()

        if query is None or not query.strip():
            matches = await self._filter_only(filters, limit)
            track_search_request("filter", len(matches))
            return matches

        result = await self._embeddings.generate(query)
        matches = await self._semantic(result.embedding, filters, limit)
        logger.info(
            f"Semantic search returned {len(matches)} matches",
            extra={"query_length": len(query), "limit": limit},
        )
        track_search_request("semantic", len(matches))
        return matches

    async def similar(
        self,
        record_id: str,
        limit: int = 10,
        filters: SearchFilters | None = None,
    ) -> list[SearchMatch]:
        """Records semantically close to an existing record, excluding it.

        Raises:
            RecordNotFoundError: If the record does not exist.
            SearchError: If the record has no text to compare with.
        """
        if limit < 1:
            raise InputError("limit must be at least 1", details={"limit": limit})

        record = await self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(
                f"Record not found: {record_id}",
                details={"record_id": record_id},
            )

        text = next(
            (t for s in SIMILARITY_SOURCES if (t := record.source_text(s)) is not None),
            None,
        )
        if text is None:
            raise SearchError(
                f"Record {record_id} has no text to compare",
                code=ErrorCode.MISSING_SOURCE_TEXT,
                details={"record_id": record_id},
            )

        filters = filters or SearchFilters()
        filters.check_ranges()

        result = await self._embeddings.generate(text)
        matches = await self._semantic(
            result.embedding, filters, limit, exclude=record_id
        )
        track_search_request("similar", len(matches))
        return matches

    async def filter_options(self) -> FilterOptions:
        """Genres, release-year range and record count for filter UIs."""
        records = await self._records.all()
        years = [r.release_year for r in records if r.release_year is not None]
        return FilterOptions(
            genres=await self._records.distinct_genres(),
            min_year=min(years) if years else None,
            max_year=max(years) if years else None,
            total_records=len(records),
        )

    async def director_suggestions(self, term: str, limit: int = 10) -> list[str]:
        """Directors whose name contains ``term``, case-insensitively.

        Raises:
            InputError: If term is blank.
        """
        needle = term.strip().lower()
        if not needle:
            raise InputError("Search term must not be empty", code=ErrorCode.EMPTY_INPUT)

        directors = await self._records.distinct_directors()
        return [d for d in directors if needle in d.lower()][:limit]

    async def list_records(
        self,
        page: int = 1,
        limit: int = 20,
        sort_by: SortField = SortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> RecordPage:
        """Page through the whole catalog.

        Raises:
            InputError: If page is below 1 or limit is outside 1-100.
        """
        if page < 1:
            raise InputError("page must be at least 1", details={"page": page})
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise InputError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}",
                details={"limit": limit},
            )

        total = await self._records.count()
        records = await self._records.find(
            sort_by=sort_by.value,
            descending=sort_order == SortOrder.DESC,
            limit=limit,
            skip=(page - 1) * limit,
        )
        return RecordPage(
            records=records,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    async def _semantic(
        self,
        vector: list[float],
        filters: SearchFilters,
        limit: int,
        exclude: str | None = None,
    ) -> list[SearchMatch]:
        fetch = limit * 2 + (1 if exclude else 0)
        try:
            hits = await self._vectors.query(self._collection, vector, fetch)
        except VectorStoreError as e:
            logger.warning(
                f"Vector query failed, returning no semantic results: {e.message}",
                extra={"collection": self._collection, "error_code": e.code.value},
            )
            return []

        # A record matches through several points; keep its best score
        best: dict[str, float] = {}
        for hit in hits:
            record_id = hit.record_id
            if record_id is None or record_id == exclude:
                continue
            if hit.score > best.get(record_id, -1.0):
                best[record_id] = hit.score

        if not best:
            return []

        records = await self._records.get_many(list(best))
        found = {record.id for record in records}
        for missing in best.keys() - found:
            logger.warning(
                f"Vector point references missing record {missing}",
                extra={"record_id": missing},
            )

        matches = [
            SearchMatch(
                record_id=record.id,
                similarity_score=best[record.id],
                record=record,
            )
            for record in records
            if filters.matches(record)
        ]
        matches.sort(key=lambda match: match.similarity_score or 0.0, reverse=True)
        return matches[:limit]

    async def _filter_only(self, filters: SearchFilters, limit: int) -> list[SearchMatch]:
        records = await self._records.find(
            filters,
            sort_by=filters.sort_by.value,
            descending=filters.sort_order == SortOrder.DESC,
            limit=limit,
        )
        return [SearchMatch(record_id=r.id, record=r) for r in records]
