"""
SQLAlchemy ORM Models — Documents & Chunks

These models map to the tables shared with the upload API (which inserts
documents in 'pending') and read by the chat service (which searches chunks).
Using SQLAlchemy 2.x mapped classes for full async support.

Embeddings are stored in a pgvector column; the similarity function
search_similar_chunks(query_embedding, document_ids, result_limit) lives in
the database and is called by DocumentRepository.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Fixed by the embedding deployment (text-embedding-3-small). Sizes the chunk
# column, the search bind parameter and the client-side length check.
EMBEDDING_DIMENSIONS = 1536


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Document model — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    Tracks a single uploaded file from upload → chunking → embedding.

    State machine (processing_status column):
        pending    — file stored, processing not yet started
        queued     — legacy alias of pending written by older upload clients
        processing — worker actively extracting + embedding
        completed  — chunks stored, available for RAG (processed_at set)
        failed     — pipeline error (processing_error set)
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "processing_status IN ('pending', 'queued', 'processing', 'completed', 'failed')",
            name="documents_processing_status_check",
        ),
        Index("idx_documents_user_id", "user_id"),
        Index("idx_documents_status_uploaded", "processing_status", "uploaded_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    title:     Mapped[str] = mapped_column(Text, nullable=False)
    filename:  Mapped[str] = mapped_column(Text, nullable=False)
    file_type: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Declared extension without dot: pdf, docx, xlsx, png, txt ...",
    )
    mime_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    file_path: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Public storage URL the worker downloads from",
    )
    storage_key: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Object-store key, used to delete the stored file",
    )

    # Ingestion state machine
    processing_status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="pending",
        server_default="pending",
    )
    processing_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Populated only when processing_status='failed'",
    )
    total_pages: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_seeded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set only when processing_status='completed'",
    )

    chunks: Mapped[list["DocumentChunk"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} status={self.processing_status} "
            f"file={self.filename!r}>"
        )


# ---------------------------------------------------------------------------
# Chunk model — document_chunks
# ---------------------------------------------------------------------------

class DocumentChunk(Base):
    """
    One embedded text chunk of a Document.
    Deleted with its document (ON DELETE CASCADE).
    """

    __tablename__ = "document_chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_document_chunks_position"),
        Index("idx_document_chunks_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    text:        Mapped[str] = mapped_column(Text, nullable=False)
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    language:    Mapped[str] = mapped_column(Text, nullable=False, default="en", server_default="en")
    embedding:   Mapped[list[float]] = mapped_column(Vector(EMBEDDING_DIMENSIONS), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    document: Mapped[Document] = relationship(back_populates="chunks")

    def __repr__(self) -> str:
        return (
            f"<DocumentChunk doc={self.document_id} index={self.chunk_index} "
            f"page={self.page_number}>"
        )
