"""Application exception hierarchy.

All custom exceptions inherit from CineSearchError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "CSE-1000"
    CONFIGURATION_ERROR = "CSE-1001"
    VALIDATION_ERROR = "CSE-1002"
    EMPTY_INPUT = "CSE-1003"
    INVALID_FILTER = "CSE-1004"

    # Record store errors (2xxx)
    RECORD_NOT_FOUND = "CSE-2000"
    ASSET_NOT_FOUND = "CSE-2001"

    # Embedding errors (3xxx)
    EMBEDDING_SERVICE_ERROR = "CSE-3000"
    EMBEDDING_DIMENSION_MISMATCH = "CSE-3001"
    EMBEDDING_PROVIDER_UNAVAILABLE = "CSE-3002"
    EMBEDDING_MODEL_WARMING_UP = "CSE-3003"
    EMBEDDING_MODEL_NOT_FOUND = "CSE-3004"
    EMBEDDING_UNAUTHORIZED = "CSE-3005"
    EMBEDDING_INVALID_VECTOR = "CSE-3006"

    # Vector store errors (4xxx)
    VECTOR_STORE_ERROR = "CSE-4000"
    COLLECTION_NOT_FOUND = "CSE-4001"
    NO_POINTS = "CSE-4002"
    BACKEND_ERROR = "CSE-4003"

    # Ingestion errors (5xxx)
    INGESTION_ERROR = "CSE-5000"
    CONSISTENCY_WARNING = "CSE-5001"

    # Search errors (6xxx)
    SEARCH_ERROR = "CSE-6000"
    MISSING_SOURCE_TEXT = "CSE-6001"


class CineSearchError(Exception):
    """Base exception for all catalog search errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(CineSearchError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class InputError(CineSearchError):
    """Invalid caller input. Reported to the caller, never retried."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EmptyInputError(InputError):
    """Text to embed is empty or whitespace only."""

    def __init__(
        self,
        message: str = "Cannot generate embedding for empty text",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.EMPTY_INPUT, details)


class RecordNotFoundError(CineSearchError):
    """Catalog record or asset does not exist."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RECORD_NOT_FOUND,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EmbeddingError(CineSearchError):
    """Embedding provider error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class ProviderUnavailableError(EmbeddingError):
    """The backing model or service could not produce a vector."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_PROVIDER_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class TransientProviderError(ProviderUnavailableError):
    """Cold start or warm-up that outlasted the retry budget."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.EMBEDDING_MODEL_WARMING_UP, details)


class PermanentProviderError(ProviderUnavailableError):
    """Failure that will not go away by retrying."""


class ModelNotFoundError(PermanentProviderError):
    """Configured model identifier does not exist or is not visible."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.EMBEDDING_MODEL_NOT_FOUND, details)


class ProviderUnauthorizedError(PermanentProviderError):
    """Credentials were rejected by the provider."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.EMBEDDING_UNAUTHORIZED, details)


class DimensionMismatchError(EmbeddingError):
    """Provider output length differs from the configured dimension."""

    def __init__(
        self,
        expected: int,
        actual: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Expected embedding dimension {expected}, got {actual}",
            ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
            {"expected": expected, "actual": actual, **(details or {})},
        )


class VectorStoreError(CineSearchError):
    """Vector store operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VECTOR_STORE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class NoPointsError(VectorStoreError):
    """Upsert was called without any points."""

    def __init__(
        self,
        message: str = "No points provided for upsert",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.NO_POINTS, details)


class BackendError(VectorStoreError):
    """Transport or authentication failure talking to the vector backend."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.BACKEND_ERROR, details)


class IngestionError(CineSearchError):
    """Ingestion pipeline error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INGESTION_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class SearchError(CineSearchError):
    """Search operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SEARCH_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class ConsistencyWarning(CineSearchError):
    """Record store and vector index drifted apart.

    Logged where it happens and attached to the ingestion job;
    never raised to the original caller.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONSISTENCY_WARNING, details)
