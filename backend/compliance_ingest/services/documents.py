"""
Document read/delete service used by the /api/v1/documents routes.

Deletion order:
  1. Load the document scoped to the owner (missing → not found)
  2. Remove the stored file from the object store; failures are logged and
     tolerated so a flaky store never leaves an undeletable record
  3. Delete the row; chunks go with it through ON DELETE CASCADE
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from compliance_ingest.repositories.documents import DocumentRepository
from compliance_ingest.schemas.documents import DocumentStatusResponse, ProcessingStatus
from compliance_ingest.storage.s3 import ObjectStore, ObjectStoreError

logger = logging.getLogger(__name__)


class DocumentNotFoundError(Exception):
    def __init__(self, document_id: UUID) -> None:
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


@dataclass
class DeletionResult:
    document_id:     UUID
    storage_deleted: bool


class DocumentService:
    def __init__(self, repository: DocumentRepository, object_store: ObjectStore | None = None) -> None:
        self._repo  = repository
        self._store = object_store

    async def get_status(self, document_id: UUID, user_id: UUID) -> DocumentStatusResponse:
        document = await self._repo.get_document(document_id, user_id=user_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        chunk_count = await self._repo.get_chunk_count(document_id)
        return DocumentStatusResponse(
            document_id=document.id,
            status=ProcessingStatus(document.processing_status),
            error=document.processing_error,
            total_pages=document.total_pages,
            processed_at=document.processed_at,
            chunk_count=chunk_count,
        )

    async def delete_document(self, document_id: UUID, user_id: UUID) -> DeletionResult:
        document = await self._repo.get_document(document_id, user_id=user_id)
        if document is None or document.user_id != user_id:
            raise DocumentNotFoundError(document_id)

        storage_deleted = False
        if document.storage_key and self._store is not None:
            try:
                await self._store.delete(document.storage_key)
                storage_deleted = True
            except ObjectStoreError as exc:
                logger.warning(
                    "Stored file not deleted, continuing | doc=%s key=%s error=%s",
                    document_id, document.storage_key, exc.reason,
                )

        if not await self._repo.delete_document(document_id, user_id):
            raise DocumentNotFoundError(document_id)

        logger.info("Document deleted | doc=%s user=%s storage_deleted=%s",
                    document_id, user_id, storage_deleted)
        return DeletionResult(document_id=document_id, storage_deleted=storage_deleted)
