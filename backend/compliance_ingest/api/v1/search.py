"""
Similarity Search Router
POST /api/v1/search

Returns the top_k chunks of the given documents closest to the query,
highest similarity first. An empty document list returns no results
without calling the embedding provider. Requires the worker bearer secret.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from compliance_ingest.auth.dependencies import Search
from compliance_ingest.auth.worker import WorkerAuth
from compliance_ingest.core.exceptions import EmbeddingError
from compliance_ingest.schemas.documents import (
    ErrorDetail,
    ErrorResponse,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Search"], dependencies=[WorkerAuth])


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Search chunks by semantic similarity",
    responses={502: {"model": ErrorResponse, "description": "Embedding provider failure"}},
)
async def search_chunks(body: SearchRequest, search: Search) -> SearchResponse:
    try:
        results = await search.search(body.query, body.document_ids, top_k=body.top_k)
    except EmbeddingError as exc:
        raise HTTPException(
            status.HTTP_502_BAD_GATEWAY,
            detail=ErrorResponse(
                error_code="EMBEDDING_ERROR",
                message="Could not embed the query.",
                details=[ErrorDetail(field="query", message=str(exc), code="EMBEDDING_ERROR")],
            ).model_dump(),
        ) from exc

    items = [
        SearchResultItem(
            chunk_id=r.chunk_id,
            document_id=r.document_id,
            text=r.text,
            page_number=r.page_number,
            similarity=r.similarity,
            language=r.language,
        )
        for r in results
    ]
    return SearchResponse(results=items, count=len(items))
