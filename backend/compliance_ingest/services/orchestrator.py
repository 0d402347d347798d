"""
Document Processing Orchestrator

Runs one document through the pipeline:
  0. Take the per-document lock (busy → DocumentBusyError, retried by Celery)
  1. Mark processing (clears any previous error / completion fields), then
     drop chunks left by an earlier run
  2. Download the stored file
  3. Extract text + pages
  4. No pages → "No pages extracted from document"
  5. Detect the document language
  6. Chunk every non-blank page
  7. No chunks → "No valid chunks created from document"
  8. Embed in batches and bulk-insert the survivors
  9. Nothing stored → "Failed to store any chunks"
 10. Mark completed with total_pages + processed_at

Error contract:
  Every failure in steps 1-10 is caught here exactly once, recorded on the
  document as processing_error and status 'failed', and reported in the
  returned JobOutcome. Nothing is re-raised to the trigger except
  DocumentBusyError, which means "not run at all".
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from compliance_ingest.core.exceptions import (
    ChunkingError,
    DocumentBusyError,
    ExtractionError,
    PersistenceError,
)
from compliance_ingest.processing.chunking import ChunkingConfig, build_chunk_drafts
from compliance_ingest.processing.embeddings import EmbeddingBatcher
from compliance_ingest.processing.extractor import TextExtractor
from compliance_ingest.processing.language import detect_language
from compliance_ingest.schemas.documents import QUEUED_STATUSES, ProcessingStatus
from compliance_ingest.storage.fetcher import StorageFetcher
from compliance_ingest.workers.locks import DocumentLocks

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job / outcome
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProcessingJob:
    """
    One unit of work handed to the queue.

    require_queued : only run if the document is still pending/queued.
                     Set by the pull trigger so overlapping polls cannot
                     reprocess a document another worker already took.
    """
    document_id:    UUID
    storage_url:    str
    mime_type:      str | None = None
    file_type:      str | None = None
    require_queued: bool = False

    def to_task_kwargs(self) -> dict[str, Any]:
        return {
            "document_id":    str(self.document_id),
            "storage_url":    self.storage_url,
            "mime_type":      self.mime_type,
            "file_type":      self.file_type,
            "require_queued": self.require_queued,
        }


@dataclass
class JobOutcome:
    document_id:   UUID
    status:        ProcessingStatus | None = None   # None when skipped
    total_pages:   int | None = None
    chunks_stored: int = 0
    error:         str | None = None
    skipped:       bool = False
    elapsed_ms:    float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "document_id":   str(self.document_id),
            "status":        self.status.value if self.status else "skipped",
            "total_pages":   self.total_pages,
            "chunks_stored": self.chunks_stored,
            "error":         self.error,
        }


class DocumentStore(Protocol):
    async def get_document(self, document_id: UUID, user_id: UUID | None = None) -> Any: ...
    async def update_processing_status(
        self, document_id: UUID, status: ProcessingStatus, error: str | None = None,
    ) -> None: ...
    async def mark_completed(self, document_id: UUID, total_pages: int) -> None: ...
    async def delete_document_chunks(self, document_id: UUID) -> int: ...


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class JobOrchestrator:
    """
    Usage:
        orchestrator = JobOrchestrator(repo, fetcher, extractor, batcher, locks)
        outcome = await orchestrator.run(ProcessingJob(doc_id, url, mime, "pdf"))
    """

    def __init__(
        self,
        repository: DocumentStore,
        fetcher:    StorageFetcher,
        extractor:  TextExtractor,
        batcher:    EmbeddingBatcher,
        locks:      DocumentLocks,
        chunking:   ChunkingConfig | None = None,
    ) -> None:
        self._repo      = repository
        self._fetcher   = fetcher
        self._extractor = extractor
        self._batcher   = batcher
        self._locks     = locks
        self._chunking  = chunking or ChunkingConfig()

    async def run(self, job: ProcessingJob) -> JobOutcome:
        """
        Raises:
            DocumentBusyError if another run holds this document's lock.
        """
        async with self._locks.hold(job.document_id) as acquired:
            if not acquired:
                raise DocumentBusyError(job.document_id)
            return await self._run_locked(job)

    async def _run_locked(self, job: ProcessingJob) -> JobOutcome:
        doc_id = job.document_id
        t0 = time.monotonic()
        logger.info("Processing | doc=%s type=%s mime=%s", doc_id, job.file_type, job.mime_type)

        try:
            document = await self._repo.get_document(doc_id)
        except PersistenceError as exc:
            logger.error("Document lookup failed | doc=%s error=%s", doc_id, exc)
            return JobOutcome(document_id=doc_id, skipped=True, error=str(exc))

        if document is None:
            logger.error("Document not found | doc=%s", doc_id)
            return JobOutcome(document_id=doc_id, skipped=True, error="Document not found")

        if job.require_queued and document.processing_status not in {s.value for s in QUEUED_STATUSES}:
            logger.warning(
                "Document already in status=%s, skipping | doc=%s",
                document.processing_status, doc_id,
            )
            return JobOutcome(document_id=doc_id, skipped=True)

        try:
            await self._repo.update_processing_status(doc_id, ProcessingStatus.PROCESSING)
            await self._repo.delete_document_chunks(doc_id)
            total_pages, stored = await self._pipeline(job)
            await self._repo.mark_completed(doc_id, total_pages)
        except Exception as exc:
            logger.exception("Processing failed | doc=%s", doc_id)
            await self._mark_failed(doc_id, str(exc))
            return JobOutcome(
                document_id=doc_id,
                status=ProcessingStatus.FAILED,
                error=str(exc),
                elapsed_ms=(time.monotonic() - t0) * 1000,
            )

        outcome = JobOutcome(
            document_id=doc_id,
            status=ProcessingStatus.COMPLETED,
            total_pages=total_pages,
            chunks_stored=stored,
            elapsed_ms=(time.monotonic() - t0) * 1000,
        )
        logger.info(
            "Processing complete | doc=%s pages=%d chunks=%d elapsed_ms=%.0f",
            doc_id, total_pages, stored, outcome.elapsed_ms,
        )
        return outcome

    async def _pipeline(self, job: ProcessingJob) -> tuple[int, int]:
        """Steps 2-9. Returns (total_pages, chunks_stored)."""
        doc_id = job.document_id

        data = await self._fetcher.fetch(job.storage_url)

        extraction = await self._extractor.extract(data, job.file_type, job.mime_type)
        if not extraction.pages:
            raise ExtractionError("No pages extracted from document")

        language = detect_language(extraction.full_text)

        drafts = build_chunk_drafts(extraction.pages, language, self._chunking)
        logger.info(
            "Chunked | doc=%s pages=%d chunks=%d language=%s",
            doc_id, len(extraction.pages), len(drafts), language,
        )
        if not drafts:
            raise ChunkingError("No valid chunks created from document")

        stored = await self._batcher.store_chunks_with_embeddings(doc_id, drafts)
        if stored == 0:
            raise PersistenceError("Failed to store any chunks")

        return extraction.total_pages, stored

    async def _mark_failed(self, document_id: UUID, error: str) -> None:
        try:
            await self._repo.update_processing_status(document_id, ProcessingStatus.FAILED, error)
        except PersistenceError:
            logger.exception("Could not record failure | doc=%s", document_id)
