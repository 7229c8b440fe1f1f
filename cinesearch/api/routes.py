"""API routes for catalog ingestion, search and maintenance."""

from fastapi import APIRouter, Query, Request, Response, status
from pydantic import BaseModel, Field

from cinesearch.container import Services
from cinesearch.exceptions import ConfigurationError, InputError, RecordNotFoundError
from cinesearch.ingestion.models import BulkResult, BulkUpdate
from cinesearch.logging_config import get_logger
from cinesearch.maintenance.models import (
    BackfillReport,
    CatalogExport,
    DedupeReport,
    OrphanReport,
)
from cinesearch.search.models import (
    FilterOptions,
    RecordPage,
    SearchFilters,
    SearchMatch,
    SortField,
    SortOrder,
)
from cinesearch.stores.models import (
    CatalogRecord,
    IngestionJob,
    RecordFields,
    RecordUpdate,
)

logger = get_logger(__name__)

MIN_QUERY_LENGTH = 3

# Create routers
router = APIRouter(prefix="/api/v1", tags=["Catalog"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


class IngestResponse(BaseModel):
    """Response from record ingestion."""

    message: str = Field(description="Outcome summary")
    job_id: str = Field(description="Ingestion job id")
    record_id: str = Field(description="Created record id")
    status: str = Field(description="Final job status")
    warnings: list[str] = Field(default_factory=list, description="Job warnings")


class MovieSummary(BaseModel):
    """Record fields returned in search results."""

    id: str
    title: str
    genres: list[str]
    cast: list[str]
    rating: float | None = None
    release_year: int | None = None
    director: str | None = None
    poster_url: str | None = None
    poster_asset_id: str | None = None
    score: float | None = Field(default=None, description="Similarity score")


class SearchResponse(BaseModel):
    """Response from a search."""

    count: int = Field(description="Number of results")
    results: list[MovieSummary] = Field(description="Ordered results")


class DeleteResponse(BaseModel):
    deleted: bool
    record_id: str


class SuggestionsResponse(BaseModel):
    suggestions: list[str]


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(min_length=1, description="Record ids to delete")


class BulkUpdateRequest(BaseModel):
    ids: list[str] = Field(min_length=1, description="Record ids to update")
    updates: BulkUpdate = Field(description="Fields to set on every record")


def get_services(request: Request) -> Services:
    """Services attached to the running application."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ConfigurationError("Services are not initialized")
    return services


def to_summary(record: CatalogRecord, score: float | None = None) -> MovieSummary:
    """Convert a stored record to its API summary."""
    return MovieSummary(
        id=record.id,
        title=record.title,
        genres=record.genres,
        cast=record.cast,
        rating=record.rating,
        release_year=record.release_year,
        director=record.director,
        poster_url=record.poster_url,
        poster_asset_id=record.poster_asset_id,
        score=score,
    )


def to_search_response(matches: list[SearchMatch]) -> SearchResponse:
    """Convert search matches to the API response."""
    return SearchResponse(
        count=len(matches),
        results=[to_summary(m.record, m.similarity_score) for m in matches],
    )


def parse_genres(genres: str | None) -> list[str] | None:
    """Split a comma-separated genre list, dropping blanks."""
    if genres is None:
        return None
    parsed = [g.strip() for g in genres.split(",") if g.strip()]
    return parsed or None


@router.post(
    "/movies",
    response_model=IngestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_movie(fields: RecordFields, request: Request) -> IngestResponse:
    """Create a record and index its text for semantic search."""
    services = get_services(request)
    job = await services.orchestrator.ingest(fields)

    return IngestResponse(
        message="Movie ingested",
        job_id=job.id,
        record_id=job.record_id,
        status=job.status.value,
        warnings=job.warnings,
    )


@router.get("/movies", response_model=RecordPage)
async def list_movies(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort_by: SortField = Query(default=SortField.CREATED_AT),
    sort_order: SortOrder = Query(default=SortOrder.DESC),
) -> RecordPage:
    """Page through the catalog."""
    return await get_services(request).search.list_records(
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
    )


@router.get("/movies/{record_id}", response_model=CatalogRecord)
async def get_movie(record_id: str, request: Request) -> CatalogRecord:
    """Fetch one record."""
    record = await get_services(request).records.get(record_id)
    if record is None:
        raise RecordNotFoundError(
            f"Movie not found: {record_id}",
            details={"record_id": record_id},
        )
    return record


@router.patch("/movies/{record_id}", response_model=CatalogRecord)
async def update_movie(
    record_id: str,
    update: RecordUpdate,
    request: Request,
) -> CatalogRecord:
    """Update fields; embeddings are regenerated in the background."""
    record = await get_services(request).orchestrator.update(record_id, update)
    if record is None:
        raise RecordNotFoundError(
            f"Movie not found: {record_id}",
            details={"record_id": record_id},
        )
    return record


@router.delete("/movies/{record_id}", response_model=DeleteResponse)
async def delete_movie(record_id: str, request: Request) -> DeleteResponse:
    """Delete a record together with its vectors and poster."""
    deleted = await get_services(request).orchestrator.delete(record_id)
    if not deleted:
        raise RecordNotFoundError(
            f"Movie not found: {record_id}",
            details={"record_id": record_id},
        )
    return DeleteResponse(deleted=True, record_id=record_id)


@router.get("/movies/{record_id}/similar", response_model=SearchResponse)
async def similar_movies(
    record_id: str,
    request: Request,
    limit: int = Query(default=10, ge=1, le=50),
) -> SearchResponse:
    """Records semantically close to the given one."""
    matches = await get_services(request).search.similar(record_id, limit=limit)
    return to_search_response(matches)


@router.get("/search", response_model=SearchResponse)
async def search(
    request: Request,
    q: str | None = Query(default=None, description="Natural-language query"),
    genres: str | None = Query(default=None, description="Comma-separated genres"),
    min_rating: float | None = Query(default=None, ge=0, le=10),
    max_rating: float | None = Query(default=None, ge=0, le=10),
    min_year: int | None = Query(default=None),
    max_year: int | None = Query(default=None),
    director: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=50),
    sort_by: SortField = Query(default=SortField.CREATED_AT),
    sort_order: SortOrder = Query(default=SortOrder.DESC),
) -> SearchResponse:
    """Semantic search with optional filters, or filters alone."""
    q = q.strip() if q else None
    if q is not None and len(q) < MIN_QUERY_LENGTH:
        raise InputError(
            f"Query must be at least {MIN_QUERY_LENGTH} characters",
            details={"q": q},
        )

    filters = SearchFilters(
        genres=parse_genres(genres),
        min_rating=min_rating,
        max_rating=max_rating,
        min_year=min_year,
        max_year=max_year,
        director=director or None,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    matches = await get_services(request).search.search(q, filters, limit)
    return to_search_response(matches)


@router.get("/search/filters", response_model=FilterOptions)
async def filter_options(request: Request) -> FilterOptions:
    """Values available for building filters."""
    return await get_services(request).search.filter_options()


@router.get("/search/directors", response_model=SuggestionsResponse)
async def director_suggestions(
    request: Request,
    q: str = Query(min_length=1),
) -> SuggestionsResponse:
    """Director names for autocomplete."""
    suggestions = await get_services(request).search.director_suggestions(q)
    return SuggestionsResponse(suggestions=suggestions)


@router.get("/jobs/{job_id}", response_model=IngestionJob)
async def get_job(job_id: str, request: Request) -> IngestionJob:
    """Fetch an ingestion job for audit."""
    job = await get_services(request).jobs.get(job_id)
    if job is None:
        raise RecordNotFoundError(
            f"Ingestion job not found: {job_id}",
            details={"job_id": job_id},
        )
    return job


@admin_router.post("/dedupe", response_model=DedupeReport)
async def dedupe(request: Request) -> DedupeReport:
    """Remove duplicate records."""
    return await get_services(request).maintenance.dedupe()


@admin_router.post("/backfill-posters", response_model=BackfillReport)
async def backfill_posters(request: Request) -> BackfillReport:
    """Download posters for records that only have a poster URL."""
    return await get_services(request).maintenance.backfill_posters()


@admin_router.get("/orphans", response_model=OrphanReport)
async def orphans(request: Request) -> OrphanReport:
    """Report embedding keys whose vector points are missing."""
    return await get_services(request).maintenance.detect_orphans(repair=False)


@admin_router.post("/orphans/repair", response_model=OrphanReport)
async def repair_orphans(request: Request) -> OrphanReport:
    """Drop embedding keys whose vector points are missing."""
    return await get_services(request).maintenance.detect_orphans(repair=True)


@admin_router.get("/missing-posters", response_model=list[MovieSummary])
async def missing_posters(
    request: Request,
    limit: int = Query(default=500, ge=1, le=1000),
) -> list[MovieSummary]:
    """Newest records without a stored poster."""
    records = await get_services(request).maintenance.list_missing_posters(limit)
    return [to_summary(record) for record in records]


@admin_router.post("/bulk-delete", response_model=BulkResult)
async def bulk_delete(body: BulkDeleteRequest, request: Request) -> BulkResult:
    """Delete many records together with their vectors and posters."""
    return await get_services(request).orchestrator.bulk_delete(body.ids)


@admin_router.put("/bulk-update", response_model=BulkResult)
async def bulk_update(body: BulkUpdateRequest, request: Request) -> BulkResult:
    """Set genres, director or rating on many records."""
    return await get_services(request).orchestrator.bulk_update(body.ids, body.updates)


@admin_router.get("/export/json", response_model=CatalogExport)
async def export_json(request: Request, response: Response) -> CatalogExport:
    """Download every record as JSON."""
    export = await get_services(request).maintenance.export_records()
    filename = f"movies-{export.exported_at.date().isoformat()}.json"
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return export
