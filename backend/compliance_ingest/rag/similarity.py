"""
Similarity Search — Query Chunks of a Document Set
═══════════════════════════════════════════════════

Read path used by the chat service to ground answers:

  query ──► EmbeddingClient.embed ──► search_similar_chunks() in Postgres
                                        │ RankingUnavailableError
                                        ▼
                                      search_manual(): load every embedded
                                      chunk of the candidate documents and
                                      rank in-process by cosine similarity

Results are ordered by similarity, highest first, and capped at top_k.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence
from uuid import UUID

import numpy as np

from compliance_ingest.core.exceptions import DimensionMismatchError, RankingUnavailableError
from compliance_ingest.processing.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|); 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError when the vectors differ in length.
    """
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.shape != b.shape:
        raise DimensionMismatchError(len(a), len(b))

    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


@dataclass
class SearchResult:
    chunk_id:    UUID
    document_id: UUID
    text:        str
    page_number: int
    similarity:  float
    language:    str = "en"


class ChunkSource(Protocol):
    async def search_similar_chunks(
        self, query_embedding: Sequence[float], document_ids: Sequence[UUID], limit: int,
    ) -> list[dict[str, Any]]: ...

    async def get_embedded_chunks(self, document_ids: Sequence[UUID]) -> list[Any]: ...


class SimilaritySearch:
    """
    Usage:
        search  = SimilaritySearch(embedding_client, repository)
        results = await search.search("max torque M8", [doc_id], top_k=5)
    """

    def __init__(self, client: EmbeddingClient, source: ChunkSource) -> None:
        self._client = client
        self._source = source

    async def search(
        self,
        query:        str,
        document_ids: Sequence[UUID],
        top_k:        int = DEFAULT_TOP_K,
    ) -> list[SearchResult]:
        if not document_ids:
            return []

        query_vector = await self._client.embed(query)

        try:
            rows = await self._source.search_similar_chunks(query_vector, document_ids, top_k)
        except RankingUnavailableError as exc:
            logger.warning("Database ranking unavailable, ranking in-process: %s", exc)
            return await self.search_manual(query_vector, document_ids, top_k)

        results = [
            SearchResult(
                chunk_id=row["chunk_id"],
                document_id=row["document_id"],
                text=row["text"],
                page_number=row["page_number"],
                similarity=float(row["similarity"]),
                language=row.get("language") or "en",
            )
            for row in rows
        ]
        logger.info("Search | docs=%d top_k=%d results=%d", len(document_ids), top_k, len(results))
        return results[:top_k]

    async def search_manual(
        self,
        query_vector: Sequence[float],
        document_ids: Sequence[UUID],
        top_k:        int = DEFAULT_TOP_K,
    ) -> list[SearchResult]:
        """Rank every embedded chunk of ``document_ids`` against ``query_vector``."""
        chunks = await self._source.get_embedded_chunks(document_ids)

        scored = [
            SearchResult(
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                text=chunk.text,
                page_number=chunk.page_number,
                similarity=cosine_similarity(query_vector, chunk.embedding),
                language=chunk.language or "en",
            )
            for chunk in chunks
            if chunk.embedding is not None
        ]
        scored.sort(key=lambda r: r.similarity, reverse=True)

        logger.info("Manual search | candidates=%d top_k=%d", len(scored), top_k)
        return scored[:top_k]
