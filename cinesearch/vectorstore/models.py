"""Vector store data models."""

import hashlib
from typing import Any

from pydantic import BaseModel, Field, field_validator

POINT_ID_MASK = 0x7FFF_FFFF_FFFF_FFFF

PayloadValue = str | int | float | bool


def point_id(record_id: str, source: str) -> int:
    """Derive the deterministic point id for one (record, source) pair.

    The first 8 bytes of SHA-256 over ``"{record_id}:{source}"``, read
    big-endian and masked to 63 bits so the value is valid as both an
    unsigned and a signed 64-bit integer.
    """
    digest = hashlib.sha256(f"{record_id}:{source}".encode()).digest()
    return int.from_bytes(digest[:8], "big") & POINT_ID_MASK


def normalize_score(score: float | None, distance: bool = False) -> float:
    """Map a backend score into ``[0, 1]``.

    Args:
        score: Raw similarity, or a distance when ``distance`` is set.
        distance: Convert with ``1 - d`` before clamping.
    """
    if score is None:
        return 0.0
    value = 1.0 - score if distance else score
    return min(1.0, max(0.0, value))


class VectorPoint(BaseModel):
    """A point to store in the vector index.

    Attributes:
        id: Deterministic point id, see ``point_id``.
        vector: The embedding vector.
        payload: Primitive metadata; always carries ``record_id`` and ``source``.
    """

    id: int = Field(ge=0, description="Point identifier")
    vector: list[float] = Field(min_length=1, description="Embedding vector")
    payload: dict[str, PayloadValue] = Field(description="Point metadata")

    @field_validator("payload")
    @classmethod
    def _require_identity(cls, value: dict[str, PayloadValue]) -> dict[str, PayloadValue]:
        for key in ("record_id", "source"):
            if not value.get(key):
                raise ValueError(f"payload must include '{key}'")
        return value

    @classmethod
    def for_source(
        cls,
        record_id: str,
        source: str,
        vector: list[float],
    ) -> "VectorPoint":
        """Build the point for one embedded source of a record."""
        return cls(
            id=point_id(record_id, source),
            vector=vector,
            payload={"record_id": record_id, "source": source},
        )


class VectorMatch(BaseModel):
    """Result from a vector similarity query.

    Attributes:
        id: Point identifier.
        score: Similarity in ``[0, 1]``, higher is more similar.
        payload: Stored metadata.
    """

    id: int = Field(description="Point identifier")
    score: float = Field(ge=0.0, le=1.0, description="Similarity score")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Point metadata",
    )

    @property
    def record_id(self) -> str | None:
        """Record the matched point belongs to."""
        value = self.payload.get("record_id")
        return str(value) if value is not None else None
