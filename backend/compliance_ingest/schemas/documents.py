"""
Worker API — Pydantic Request/Response Schemas

Covers:
  - Push trigger  (POST /process-document)
  - Pull trigger  (POST /poll-pending)
  - Document status / deletion / similarity search (/api/v1/...)
  - Health and the uniform error envelope (401, 404, 422, 500)

Design decisions:
  - Wire format is camelCase (documentId, storageUrl ...), the shape the
    upload service already sends; Python attributes stay snake_case.
  - cloudinaryUrl is accepted as an alias of storageUrl for older callers.
  - processing_status is the async pipeline state, separate from HTTP status.
  - All timestamps are ISO-8601 UTC strings.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Processing pipeline state machine
# ---------------------------------------------------------------------------

class ProcessingStatus(str, Enum):
    """
    Maps to documents.processing_status.
    Transitions: pending → processing → completed | failed
    """
    PENDING     = "pending"      # stored by the upload API, not yet picked up
    QUEUED      = "queued"       # legacy alias of pending
    PROCESSING  = "processing"   # worker actively extracting + embedding
    COMPLETED   = "completed"    # chunks stored, document ready for RAG
    FAILED      = "failed"       # unrecoverable pipeline error


# Statuses the pull trigger treats as "waiting for a worker"
QUEUED_STATUSES: tuple[ProcessingStatus, ...] = (ProcessingStatus.PENDING, ProcessingStatus.QUEUED)


# ---------------------------------------------------------------------------
# Push trigger — POST /process-document
# ---------------------------------------------------------------------------

class ProcessDocumentRequest(CamelModel):
    document_id: UUID
    storage_url: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("storageUrl", "cloudinaryUrl", "storage_url"),
        description="Public URL of the stored file",
    )
    mime_type: str | None = Field(None, description="MIME type recorded at upload")
    file_type: str | None = Field(None, description="Declared extension, e.g. 'pdf'")


class ProcessDocumentResponse(CamelModel):
    status:      str = "processing started"
    document_id: UUID
    message:     str = "Document processing has been queued"


# ---------------------------------------------------------------------------
# Pull trigger — POST /poll-pending
# ---------------------------------------------------------------------------

class PollPendingResponse(CamelModel):
    message:      str
    count:        int = 0
    document_ids: list[UUID] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Status / delete — /api/v1/documents/{id}
# ---------------------------------------------------------------------------

class DocumentStatusResponse(CamelModel):
    """Polled by clients to track async processing progress."""
    document_id:  UUID
    status:       ProcessingStatus
    error:        str | None = None
    total_pages:  int | None = None
    processed_at: datetime | None = None
    chunk_count:  int = Field(0, description="Chunks currently stored for the document")


class DeleteDocumentResponse(CamelModel):
    success:            bool = True
    document_id:        UUID
    storage_deleted:    bool = Field(..., description="False when the object store refused the delete")


# ---------------------------------------------------------------------------
# Similarity search — POST /api/v1/search
# ---------------------------------------------------------------------------

class SearchRequest(CamelModel):
    query:        str = Field(..., min_length=1)
    document_ids: list[UUID] = Field(default_factory=list)
    top_k:        int = Field(5, ge=1, le=50)


class SearchResultItem(CamelModel):
    chunk_id:    UUID
    document_id: UUID
    text:        str
    page_number: int
    similarity:  float
    language:    str


class SearchResponse(CamelModel):
    results: list[SearchResultItem] = Field(default_factory=list)
    count:   int = 0


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status:    str = "healthy"
    timestamp: datetime
    uptime:    float = Field(..., description="Seconds since process start")


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


class WorkerErrors:
    """Factories for every documented error case."""

    @staticmethod
    def unauthorized() -> ErrorResponse:
        return ErrorResponse(
            error_code="UNAUTHORIZED",
            message="Authentication required. Provide a valid Bearer token.",
            details=[
                ErrorDetail(
                    field=None,
                    message="Missing or invalid Authorization header.",
                    code="UNAUTHORIZED",
                )
            ],
        )

    @staticmethod
    def document_not_found(document_id: UUID) -> ErrorResponse:
        return ErrorResponse(
            error_code="DOCUMENT_NOT_FOUND",
            message=f"Document '{document_id}' was not found.",
            details=[],
        )

    @staticmethod
    def validation_error(errors: list[dict]) -> ErrorResponse:
        return ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=[
                ErrorDetail(
                    field=".".join(str(part) for part in err.get("loc", ()) if part != "body") or None,
                    message=err.get("msg", "Invalid value"),
                    code="VALIDATION_ERROR",
                )
                for err in errors
            ],
        )

    @staticmethod
    def queue_error() -> ErrorResponse:
        return ErrorResponse(
            error_code="QUEUE_ERROR",
            message="Document could not be queued for processing.",
            details=[
                ErrorDetail(
                    field=None,
                    message="The message broker may be temporarily unavailable.",
                    code="QUEUE_ERROR",
                )
            ],
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            details=[],
            request_id=request_id,
        )
