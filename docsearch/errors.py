"""Error taxonomy for the document search core."""

from __future__ import annotations


class DocSearchError(Exception):
    """Base class for all docsearch failures.

    Args:
        message: Human readable description
        cause: Underlying exception, if any
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        """Serialize the error for JSON surfaces."""
        data = {"error": type(self).__name__, "message": self.message}
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data


class InvalidInputError(DocSearchError):
    """Rejected input: empty query, unsupported file type, malformed path."""


class EmbeddingUnavailableError(DocSearchError):
    """Embedding endpoint unreachable or returned malformed output."""


class EmbeddingDimensionMismatchError(DocSearchError):
    """Vector length differs from the configured model dimension."""

    def __init__(
        self,
        expected: int,
        actual: int,
        *,
        message: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message or f"Embedding dimension mismatch: expected {expected}, got {actual}",
            cause=cause,
        )
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"expected": self.expected, "actual": self.actual})
        return data


class IndexWriteError(DocSearchError):
    """Storage failure during upsert or delete. The write was rolled back."""


class NotFoundError(DocSearchError):
    """Operation referenced a document or chunk that does not exist."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


__all__ = [
    "DocSearchError",
    "InvalidInputError",
    "EmbeddingUnavailableError",
    "EmbeddingDimensionMismatchError",
    "IndexWriteError",
    "NotFoundError",
]
