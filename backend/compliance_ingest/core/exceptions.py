"""
Exception hierarchy for the ingestion pipeline.

Every stage raises a subclass of PipelineError. The orchestrator catches
them once, records str(exc) on the document, and marks it failed.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class ExtractionError(PipelineError):
    """Unsupported file type, empty content, or parser/OCR failure."""


class ChunkingError(PipelineError):
    """Raised when a document yields no usable chunks."""


class EmbeddingError(PipelineError):
    """Empty input, malformed provider response, or retries exhausted."""


class DimensionMismatchError(PipelineError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(
            f"Vectors must have the same length (got {left} and {right})",
            {"left": left, "right": right},
        )


class StorageFetchError(PipelineError):
    """Timeout or non-success response while downloading a stored file."""


class PersistenceError(PipelineError):
    """Database insert/update/query failure."""


class RankingUnavailableError(PersistenceError):
    """The database-side similarity function is missing or unusable."""


class DocumentBusyError(PipelineError):
    """Another run currently holds the lock for this document."""

    def __init__(self, document_id: Any) -> None:
        super().__init__(
            f"Document {document_id} is already being processed",
            {"document_id": str(document_id)},
        )


class DispatchError(PipelineError):
    """The job could not be handed to the task queue."""
