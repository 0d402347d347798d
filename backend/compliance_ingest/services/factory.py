"""
Component Factory

Turns Settings into wired pipeline components. Entry points (the FastAPI
lifespan and each Celery task) call these once; components themselves
never read settings.
"""

from __future__ import annotations

from compliance_ingest.core.config import Settings
from compliance_ingest.db.session import Database
from compliance_ingest.processing.chunking import ChunkingConfig
from compliance_ingest.processing.embeddings import EmbeddingBatcher, EmbeddingClient, EmbeddingConfig
from compliance_ingest.processing.extractor import ExtractionConfig, TextExtractor
from compliance_ingest.repositories.documents import DocumentRepository
from compliance_ingest.services.orchestrator import JobOrchestrator
from compliance_ingest.storage.fetcher import FetchConfig, StorageFetcher
from compliance_ingest.workers.locks import DocumentLocks, InMemoryDocumentLocks, PostgresDocumentLocks


def get_document_locks(settings: Settings, db: Database) -> DocumentLocks:
    backend = settings.document_lock_backend.lower()

    if backend == "postgres":
        return PostgresDocumentLocks(db)

    if backend == "memory":
        return InMemoryDocumentLocks()

    raise ValueError(
        f"Unknown document lock backend: '{backend}'. "
        f"Valid options: 'postgres', 'memory'"
    )


def build_embedding_client(settings: Settings) -> EmbeddingClient:
    return EmbeddingClient(EmbeddingConfig.from_settings(settings))


def build_orchestrator(
    settings:   Settings,
    db:         Database,
    repository: DocumentRepository | None = None,
) -> JobOrchestrator:
    repo = repository or DocumentRepository(db)
    return JobOrchestrator(
        repository=repo,
        fetcher=StorageFetcher(FetchConfig.from_settings(settings)),
        extractor=TextExtractor(ExtractionConfig(
            chars_per_page=settings.chars_per_page,
            ocr_language=settings.ocr_language,
        )),
        batcher=EmbeddingBatcher(build_embedding_client(settings), repo),
        locks=get_document_locks(settings, db),
        chunking=ChunkingConfig(size=settings.chunk_size, overlap=settings.chunk_overlap),
    )
