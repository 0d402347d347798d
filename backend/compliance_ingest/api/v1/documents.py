"""
Document API Router
GET    /api/v1/documents/{id}/status   processing progress
DELETE /api/v1/documents/{id}          owner-scoped delete (chunks cascade)

Both routes require the worker bearer secret. The upstream API, which
authenticates the end user, passes the owner as ``user_id`` and every read
or delete is filtered by it.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from compliance_ingest.auth.dependencies import Documents
from compliance_ingest.auth.worker import WorkerAuth
from compliance_ingest.schemas.documents import (
    DeleteDocumentResponse,
    DocumentStatusResponse,
    ErrorResponse,
    WorkerErrors,
)
from compliance_ingest.services.documents import DocumentNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
    dependencies=[WorkerAuth],
)


@router.get(
    "/{document_id}/status",
    response_model=DocumentStatusResponse,
    summary="Get document processing status",
    responses={404: {"model": ErrorResponse, "description": "Document not found"}},
)
async def get_document_status(
    document_id: UUID,
    documents:   Documents,
    user_id:     UUID = Query(..., description="Owner of the document"),
) -> DocumentStatusResponse:
    try:
        return await documents.get_status(document_id, user_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND,
            detail=WorkerErrors.document_not_found(document_id).model_dump(),
        ) from exc


@router.delete(
    "/{document_id}",
    response_model=DeleteDocumentResponse,
    summary="Delete a document and its chunks",
    responses={404: {"model": ErrorResponse, "description": "Document not found or not owned"}},
)
async def delete_document(
    document_id: UUID,
    documents:   Documents,
    user_id:     UUID = Query(..., description="Owner of the document"),
) -> DeleteDocumentResponse:
    try:
        result = await documents.delete_document(document_id, user_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND,
            detail=WorkerErrors.document_not_found(document_id).model_dump(),
        ) from exc

    return DeleteDocumentResponse(
        document_id=result.document_id,
        storage_deleted=result.storage_deleted,
    )
