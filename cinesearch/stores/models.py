"""Catalog record, ingestion job and asset models."""

import re
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

EMBEDDING_SOURCES = ("title", "plot", "script", "trailer", "genre")

# Record field feeding each embedding source
SOURCE_FIELDS = {
    "title": "title",
    "plot": "plot",
    "script": "script",
    "trailer": "metadata",
    "genre": "genres",
}

_WHITESPACE = re.compile(r"\s+")


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid4().hex


def normalize_title(title: str) -> str:
    """Trim, collapse internal whitespace and lowercase a title."""
    return _WHITESPACE.sub(" ", title.strip()).lower()


class RecordFields(BaseModel):
    """Caller-supplied fields of a catalog record.

    Attributes:
        title: Display title, required and non-blank.
        plot: Plot summary.
        script: Script or screenplay excerpt.
        genres: Genre labels.
        cast: Cast member names.
        director: Director name.
        release_year: Year of release.
        rating: Rating on a 0 to 10 scale.
        trailer_url: Trailer location.
        poster_url: Source poster URL.
        metadata: Free-form extras; ``trailer_transcript`` is embeddable.
    """

    title: str = Field(min_length=1, description="Record title")
    plot: str | None = Field(default=None, description="Plot summary")
    script: str | None = Field(default=None, description="Script text")
    genres: list[str] = Field(default_factory=list, description="Genre labels")
    cast: list[str] = Field(default_factory=list, description="Cast members")
    director: str | None = Field(default=None, description="Director name")
    release_year: int | None = Field(
        default=None, ge=1800, le=2200, description="Year of release"
    )
    rating: float | None = Field(default=None, ge=0, le=10, description="Rating 0-10")
    trailer_url: str | None = Field(default=None, description="Trailer URL")
    poster_url: str | None = Field(default=None, description="Source poster URL")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Extras")

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value


class RecordUpdate(BaseModel):
    """Partial update; only explicitly set fields are applied.

    An explicit null clears optional text fields and empties list and dict
    fields. The title can be changed but never cleared.
    """

    title: str | None = Field(default=None, min_length=1)
    plot: str | None = None
    script: str | None = None
    genres: list[str] | None = None
    cast: list[str] | None = None
    director: str | None = None
    release_year: int | None = Field(default=None, ge=1800, le=2200)
    rating: float | None = Field(default=None, ge=0, le=10)
    trailer_url: str | None = None
    poster_url: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("title cannot be cleared")
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("title must not be blank")
        return value

    @field_validator("genres", "cast", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    def changes(self) -> dict[str, Any]:
        """Fields the caller set, by name."""
        return self.model_dump(exclude_unset=True)


class CatalogRecord(RecordFields):
    """A stored catalog record.

    ``embedding_keys`` maps each embedded source to the id of its point in
    the vector index.
    """

    id: str = Field(default_factory=_new_id, description="Record identifier")
    poster_asset_id: str | None = Field(
        default=None, description="Stored poster asset id"
    )
    poster_content_type: str | None = Field(
        default=None, description="Poster MIME type"
    )
    embedding_keys: dict[str, int] = Field(
        default_factory=dict, description="Source to vector point id"
    )
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def source_text(self, source: str) -> str | None:
        """Text embedded for ``source``, or None when absent or blank."""
        if source == "title":
            text = self.title
        elif source == "plot":
            text = self.plot
        elif source == "script":
            text = self.script
        elif source == "trailer":
            transcript = self.metadata.get("trailer_transcript")
            text = transcript if isinstance(transcript, str) else None
        elif source == "genre":
            text = ", ".join(g for g in self.genres if g.strip())
        else:
            return None

        if text is None or not text.strip():
            return None
        return text

    @property
    def normalized_title(self) -> str:
        return normalize_title(self.title)


class JobStatus(str, Enum):
    """Ingestion job state."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionJob(BaseModel):
    """Audit record of one ingestion run.

    Attributes:
        id: Job identifier.
        record_id: Record being ingested.
        status: Current state.
        error_message: Failure reason when status is failed.
        warnings: Consistency warnings observed while the job ran.
    """

    id: str = Field(default_factory=_new_id)
    record_id: str
    status: JobStatus = JobStatus.PENDING
    error_message: str | None = None
    warnings: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class StoredAsset(BaseModel):
    """Binary asset such as a poster image."""

    id: str = Field(default_factory=_new_id)
    filename: str
    content_type: str
    data: bytes
    created_at: datetime = Field(default_factory=_now)

    @property
    def size(self) -> int:
        return len(self.data)


class RecordFilter(BaseModel):
    """Attribute constraints over catalog records.

    Constraints are independent and conjunctive; bounds are inclusive and an
    unset constraint matches everything. A record lacking an attribute never
    satisfies a constraint on it.
    """

    genres: list[str] | None = Field(default=None, description="Any-of genres")
    min_rating: float | None = Field(default=None, ge=0, le=10)
    max_rating: float | None = Field(default=None, ge=0, le=10)
    min_year: int | None = None
    max_year: int | None = None
    director: str | None = Field(
        default=None, description="Case-insensitive director substring"
    )

    @property
    def is_empty(self) -> bool:
        return not self.genres and not self.director and all(
            bound is None
            for bound in (self.min_rating, self.max_rating, self.min_year, self.max_year)
        )

    def matches(self, record: CatalogRecord) -> bool:
        if self.genres and not set(self.genres) & set(record.genres):
            return False

        if self.min_rating is not None or self.max_rating is not None:
            if record.rating is None:
                return False
            if self.min_rating is not None and record.rating < self.min_rating:
                return False
            if self.max_rating is not None and record.rating > self.max_rating:
                return False

        if self.min_year is not None or self.max_year is not None:
            if record.release_year is None:
                return False
            if self.min_year is not None and record.release_year < self.min_year:
                return False
            if self.max_year is not None and record.release_year > self.max_year:
                return False

        if self.director:
            if not record.director:
                return False
            if self.director.strip().lower() not in record.director.lower():
                return False

        return True
