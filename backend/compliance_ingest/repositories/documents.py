"""
Document and chunk persistence.

Every public method opens its own short transaction through Database.session()
so a long pipeline run never holds a transaction across network calls.
Driver errors are translated to PersistenceError; a missing similarity
function is reported as RankingUnavailableError so search can fall back.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import bindparam, delete, func, insert, or_, select, text, update
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from pgvector.sqlalchemy import Vector

from compliance_ingest.core.exceptions import PersistenceError, RankingUnavailableError
from compliance_ingest.db.session import Database
from compliance_ingest.models.documents import EMBEDDING_DIMENSIONS, Document, DocumentChunk
from compliance_ingest.processing.embeddings import ChunkRecord
from compliance_ingest.schemas.documents import QUEUED_STATUSES, ProcessingStatus

logger = logging.getLogger(__name__)

# undefined_function, undefined_table
_MISSING_OBJECT_SQLSTATES = frozenset({"42883", "42P01"})

_SEARCH_SQL = text(
    "SELECT chunk_id, document_id, text, page_number, similarity, language "
    "FROM search_similar_chunks(:query_embedding, :document_ids, :result_limit)"
).bindparams(
    bindparam("query_embedding", type_=Vector(EMBEDDING_DIMENSIONS)),
    bindparam("document_ids", type_=ARRAY(PG_UUID(as_uuid=True))),
)


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class DocumentRepository:
    """
    Usage:
        repo = DocumentRepository(database)
        docs = await repo.get_pending_documents(limit=10)
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_document(self, document_id: UUID, user_id: UUID | None = None) -> Document | None:
        """Fetch one document; with ``user_id`` only owned or seeded documents match."""
        stmt = select(Document).where(Document.id == document_id)
        if user_id is not None:
            stmt = stmt.where(or_(Document.user_id == user_id, Document.is_seeded.is_(True)))
        try:
            async with self._db.session() as session:
                result = await session.execute(stmt)
                return result.scalars().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load document {document_id}: {exc}") from exc

    async def get_pending_documents(self, limit: int = 10) -> list[Document]:
        """Documents still waiting for a worker, oldest upload first."""
        stmt = (
            select(Document)
            .where(Document.processing_status.in_([s.value for s in QUEUED_STATUSES]))
            .order_by(Document.uploaded_at.asc())
            .limit(limit)
        )
        try:
            async with self._db.session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to query pending documents: {exc}") from exc

    async def update_processing_status(
        self,
        document_id: UUID,
        status:      ProcessingStatus,
        error:       str | None = None,
    ) -> None:
        """
        Overwrite the status fields as a set.

        processed_at is only kept for 'completed' and processing_error only
        for 'failed', so a record is never left half old, half new.
        """
        values: dict[str, Any] = {
            "processing_status": status.value,
            "processing_error":  error if status is ProcessingStatus.FAILED else None,
        }
        if status is ProcessingStatus.PROCESSING:
            values["total_pages"] = None
            values["processed_at"] = None
        elif status is ProcessingStatus.FAILED:
            values["processed_at"] = None

        await self._update(document_id, values)

    async def mark_completed(self, document_id: UUID, total_pages: int) -> None:
        await self._update(document_id, {
            "processing_status": ProcessingStatus.COMPLETED.value,
            "processing_error":  None,
            "total_pages":       total_pages,
            "processed_at":      datetime.now(timezone.utc),
        })

    async def _update(self, document_id: UUID, values: dict[str, Any]) -> None:
        try:
            async with self._db.session() as session:
                await session.execute(
                    update(Document).where(Document.id == document_id).values(**values)
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update document {document_id}: {exc}") from exc
        logger.debug("Document updated | doc=%s values=%s", document_id, sorted(values))

    async def delete_document(self, document_id: UUID, user_id: UUID) -> bool:
        """Owner-scoped delete; chunks go with it (ON DELETE CASCADE)."""
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    delete(Document).where(
                        Document.id == document_id,
                        Document.user_id == user_id,
                    )
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete document {document_id}: {exc}") from exc
        return (result.rowcount or 0) > 0

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def insert_chunks(self, records: Sequence[ChunkRecord]) -> int:
        """Bulk insert in a single statement."""
        if not records:
            return 0
        rows = [
            {
                "document_id": r.document_id,
                "chunk_index": r.chunk_index,
                "text":        r.text,
                "page_number": r.page_number,
                "language":    r.language,
                "embedding":   r.embedding,
            }
            for r in records
        ]
        try:
            async with self._db.session() as session:
                await session.execute(insert(DocumentChunk), rows)
        except SQLAlchemyError as exc:
            logger.error("Chunk insert failed | count=%d error=%s", len(rows), exc)
            raise PersistenceError(f"Failed to insert chunks: {exc}") from exc
        logger.info("Chunks inserted | doc=%s count=%d", records[0].document_id, len(rows))
        return len(rows)

    async def delete_document_chunks(self, document_id: UUID) -> int:
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete chunks of {document_id}: {exc}") from exc
        deleted = result.rowcount or 0
        logger.info("Deleted chunks | doc=%s count=%d", document_id, deleted)
        return deleted

    async def get_chunk_count(self, document_id: UUID) -> int:
        stmt = select(func.count()).select_from(DocumentChunk).where(
            DocumentChunk.document_id == document_id
        )
        try:
            async with self._db.session() as session:
                return int((await session.execute(stmt)).scalar_one())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to count chunks of {document_id}: {exc}") from exc

    async def get_embedded_chunks(self, document_ids: Sequence[UUID]) -> list[DocumentChunk]:
        """All chunks of the given documents that carry an embedding."""
        stmt = select(DocumentChunk).where(
            DocumentChunk.document_id.in_(list(document_ids)),
            DocumentChunk.embedding.is_not(None),
        )
        try:
            async with self._db.session() as session:
                return list((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load chunks: {exc}") from exc

    async def search_similar_chunks(
        self,
        query_embedding: Sequence[float],
        document_ids:    Sequence[UUID],
        limit:           int,
    ) -> list[dict[str, Any]]:
        """
        Delegate ranking to the database function; rows come back sorted by
        similarity, highest first.
        """
        params = {
            "query_embedding": list(query_embedding),
            "document_ids":    list(document_ids),
            "result_limit":    limit,
        }
        try:
            async with self._db.session() as session:
                rows = (await session.execute(_SEARCH_SQL, params)).mappings().all()
        except DBAPIError as exc:
            if _sqlstate(exc) in _MISSING_OBJECT_SQLSTATES:
                raise RankingUnavailableError(f"Similarity function unavailable: {exc}") from exc
            raise PersistenceError(f"Vector search failed: {exc}") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Vector search failed: {exc}") from exc
        return [dict(row) for row in rows]
