"""Search request and result models."""

from enum import Enum

from pydantic import BaseModel, Field

from cinesearch.exceptions import ErrorCode, InputError
from cinesearch.stores.models import CatalogRecord, RecordFilter


class SortField(str, Enum):
    """Sort keys for filter-only searches and listings."""

    CREATED_AT = "created_at"
    RATING = "rating"
    RELEASE_YEAR = "release_year"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SearchFilters(RecordFilter):
    """Attribute filters plus ordering for searches without a query."""

    sort_by: SortField = Field(default=SortField.CREATED_AT)
    sort_order: SortOrder = Field(default=SortOrder.DESC)

    def check_ranges(self) -> None:
        """Reject inverted ranges.

        Raises:
            InputError: If a minimum exceeds its maximum.
        """
        for name, low, high in (
            ("rating", self.min_rating, self.max_rating),
            ("year", self.min_year, self.max_year),
        ):
            if low is not None and high is not None and low > high:
                raise InputError(
                    f"min_{name} ({low}) is greater than max_{name} ({high})",
                    code=ErrorCode.INVALID_FILTER,
                    details={f"min_{name}": low, f"max_{name}": high},
                )


class SearchMatch(BaseModel):
    """A record returned by a search.

    Attributes:
        record_id: Matched record.
        similarity_score: Best point score for the record, None for
            filter-only searches.
        record: The record itself.
    """

    record_id: str = Field(description="Matched record id")
    similarity_score: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Similarity score"
    )
    record: CatalogRecord = Field(description="Matched record")


class FilterOptions(BaseModel):
    """Values available for building filters."""

    genres: list[str] = Field(default_factory=list)
    min_year: int | None = None
    max_year: int | None = None
    min_rating: float = 0.0
    max_rating: float = 10.0
    total_records: int = 0


class RecordPage(BaseModel):
    """One page of the catalog listing."""

    records: list[CatalogRecord] = Field(default_factory=list)
    total: int = Field(default=0, description="Records in the catalog")
    page: int = Field(default=1, description="1-based page number")
    limit: int = Field(default=20, description="Page size")
    total_pages: int = Field(default=0, description="Pages at this page size")
