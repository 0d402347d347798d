"""
Composed FastAPI Dependencies

Wires the request context: database, repository, queue publisher and the
services built on them. Route handlers import from here — never from
db/session, storage or services/factory directly.

This is the single wiring point for the HTTP surface; tests replace the
providers below through app.dependency_overrides.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from compliance_ingest.core.config import Settings, get_settings
from compliance_ingest.db.session import Database
from compliance_ingest.rag.similarity import SimilaritySearch
from compliance_ingest.repositories.documents import DocumentRepository
from compliance_ingest.services.dispatch import CeleryTaskPublisher, PendingPoller, TaskPublisher
from compliance_ingest.services.documents import DocumentService
from compliance_ingest.services.factory import build_embedding_client
from compliance_ingest.storage.s3 import ObjectStore, ObjectStoreConfig


# ---------------------------------------------------------------------------
# 1. Database + repository
#    The Database is created once in the app lifespan (app.state.database).
# ---------------------------------------------------------------------------

def get_database(request: Request) -> Database:
    return request.app.state.database


def get_repository(db: Annotated[Database, Depends(get_database)]) -> DocumentRepository:
    return DocumentRepository(db)


# ---------------------------------------------------------------------------
# 2. Queue handoff
# ---------------------------------------------------------------------------

def get_task_publisher() -> TaskPublisher:
    return CeleryTaskPublisher()


def get_pending_poller(
    repository: Annotated[DocumentRepository, Depends(get_repository)],
    publisher:  Annotated[TaskPublisher, Depends(get_task_publisher)],
    settings:   Annotated[Settings, Depends(get_settings)],
) -> PendingPoller:
    return PendingPoller(repository, publisher, limit=settings.poll_batch_size)


# ---------------------------------------------------------------------------
# 3. Document + search services
# ---------------------------------------------------------------------------

def get_document_service(
    repository: Annotated[DocumentRepository, Depends(get_repository)],
    settings:   Annotated[Settings, Depends(get_settings)],
) -> DocumentService:
    return DocumentService(repository, ObjectStore(ObjectStoreConfig.from_settings(settings)))


def get_similarity_search(
    repository: Annotated[DocumentRepository, Depends(get_repository)],
    settings:   Annotated[Settings, Depends(get_settings)],
) -> SimilaritySearch:
    return SimilaritySearch(build_embedding_client(settings), repository)


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

Publisher = Annotated[TaskPublisher,    Depends(get_task_publisher)]
Poller    = Annotated[PendingPoller,    Depends(get_pending_poller)]
Documents = Annotated[DocumentService,  Depends(get_document_service)]
Search    = Annotated[SimilaritySearch, Depends(get_similarity_search)]
