"""Reduce raw model output to a single sentence vector."""

from collections.abc import Sequence
from typing import Any

from cinesearch.exceptions import ErrorCode, ProviderUnavailableError


def mean_pool(token_vectors: Sequence[Sequence[float]]) -> list[float]:
    """Average T token vectors of dimension D into one D-dimensional vector.

    Args:
        token_vectors: Per-token vectors, all of the same length.

    Returns:
        Component-wise arithmetic mean.

    Raises:
        ProviderUnavailableError: If there are no tokens or rows are ragged.
    """
    if not token_vectors:
        raise ProviderUnavailableError(
            "Cannot pool an empty token sequence",
            code=ErrorCode.EMBEDDING_INVALID_VECTOR,
        )

    width = len(token_vectors[0])
    if any(len(row) != width for row in token_vectors):
        raise ProviderUnavailableError(
            "Token vectors have inconsistent lengths",
            code=ErrorCode.EMBEDDING_INVALID_VECTOR,
            details={"tokens": len(token_vectors)},
        )

    count = len(token_vectors)
    return [sum(column) / count for column in zip(*token_vectors, strict=True)]


def to_sentence_vector(output: Any) -> list[float]:
    """Normalize model output into a flat sentence vector.

    Accepts a flat vector, a (tokens x dim) matrix, or a
    (1 x tokens x dim) batch; arrays exposing ``tolist`` are converted first.
    """
    if hasattr(output, "tolist"):
        output = output.tolist()

    if not isinstance(output, list):
        raise ProviderUnavailableError(
            f"Unexpected embedding output type: {type(output).__name__}",
            code=ErrorCode.EMBEDDING_INVALID_VECTOR,
        )

    if output and isinstance(output[0], list):
        # Batch of one: strip the outer dimension before pooling
        if output[0] and isinstance(output[0][0], list):
            if len(output) != 1:
                raise ProviderUnavailableError(
                    "Expected output for a single input",
                    code=ErrorCode.EMBEDDING_INVALID_VECTOR,
                    details={"batch": len(output)},
                )
            output = output[0]
        return mean_pool(output)

    return output
