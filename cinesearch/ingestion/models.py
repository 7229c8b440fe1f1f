"""Ingestion input models."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class PosterUpload(BaseModel):
    """Poster image supplied alongside a new record."""

    data: bytes = Field(description="Raw image bytes")
    filename: str = Field(default="poster", description="Original file name")
    content_type: str = Field(default="image/jpeg", description="MIME type")


class BulkUpdate(BaseModel):
    """Fields that can be set on many records at once."""

    genres: list[str] | None = Field(default=None, description="Genre labels")
    director: str | None = Field(default=None, description="Director name")
    rating: float | None = Field(default=None, ge=0, le=10, description="Rating 0-10")

    @field_validator("genres", mode="before")
    @classmethod
    def _null_genres(cls, value: Any) -> Any:
        return [] if value is None else value

    def changes(self) -> dict[str, Any]:
        """Fields the caller set, by name."""
        return self.model_dump(exclude_unset=True)


class BulkResult(BaseModel):
    """Outcome of a bulk operation.

    Attributes:
        requested: Distinct ids submitted.
        processed: Records deleted or updated.
        missing: Ids with no record.
        failed: Ids whose operation raised.
    """

    requested: int = 0
    processed: int = 0
    missing: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
