"""
Worker Trigger Router
POST /process-document   push trigger, one document
POST /poll-pending       pull trigger, oldest pending documents

Both endpoints only enqueue and return; processing happens in the Celery
worker. Both require the worker bearer secret.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from compliance_ingest.auth.dependencies import Poller, Publisher
from compliance_ingest.auth.worker import WorkerAuth
from compliance_ingest.core.exceptions import DispatchError
from compliance_ingest.schemas.documents import (
    ErrorResponse,
    PollPendingResponse,
    ProcessDocumentRequest,
    ProcessDocumentResponse,
    WorkerErrors,
)
from compliance_ingest.services.orchestrator import ProcessingJob

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Worker Triggers"],
    dependencies=[WorkerAuth],
)

_ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing or invalid worker bearer token"},
    503: {"model": ErrorResponse, "description": "Message broker unavailable"},
}


# ---------------------------------------------------------------------------
# POST /process-document
# ---------------------------------------------------------------------------

@router.post(
    "/process-document",
    response_model=ProcessDocumentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue one document for processing",
    responses=_ERROR_RESPONSES,
)
async def process_document(
    body:      ProcessDocumentRequest,
    publisher: Publisher,
) -> ProcessDocumentResponse:
    job = ProcessingJob(
        document_id=body.document_id,
        storage_url=body.storage_url,
        mime_type=body.mime_type,
        file_type=body.file_type,
    )
    try:
        await publisher.publish(job)
    except DispatchError as exc:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=WorkerErrors.queue_error().model_dump(),
        ) from exc

    logger.info("Push trigger accepted | doc=%s type=%s", body.document_id, body.file_type)
    return ProcessDocumentResponse(document_id=body.document_id)


# ---------------------------------------------------------------------------
# POST /poll-pending
# ---------------------------------------------------------------------------

@router.post(
    "/poll-pending",
    response_model=PollPendingResponse,
    summary="Queue the oldest pending documents",
    responses=_ERROR_RESPONSES,
)
async def poll_pending(poller: Poller) -> PollPendingResponse:
    try:
        queued = await poller.poll()
    except DispatchError as exc:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=WorkerErrors.queue_error().model_dump(),
        ) from exc

    if not queued:
        return PollPendingResponse(message="No pending documents", count=0)

    return PollPendingResponse(
        message=f"Queued {len(queued)} document(s) for processing",
        count=len(queued),
        document_ids=queued,
    )
