"""
Embedding Pipeline  —  Per-Chunk Embeddings with Rate-Limit Backoff
════════════════════════════════════════════════════════════════════

Design goals:
  • Rate-limit friendly: small concurrent groups with a pause in between
  • Retry logic: linear back-off on provider rate limits only
  • Partial failure: one bad chunk never sinks the document
  • One bulk write: chunks are persisted together after all groups finish

Provider: Azure OpenAI embeddings deployment (text-embedding-3-small,
1536 dims by default). Every request carries a single input string; the
deployment's TPM quota is the bottleneck, not request overhead.

Batching strategy:
  chunks ──► groups of BATCH_SIZE (5)
             ├─ embed every chunk of the group concurrently, await all
             └─ pause BATCH_PAUSE (1s) before the next group

Retry policy (per chunk):
  On RateLimitError / HTTP 429 → wait attempt × RETRY_STEP (2s, 4s, 6s)
  After MAX_RETRIES            → EmbeddingError, chunk is dropped
  Any other error              → EmbeddingError immediately, chunk is dropped

Truncation:
  Input sent to the provider   → first 8000 chars
  Text persisted with the chunk → first 5000 chars
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, Sequence
from uuid import UUID

from openai import RateLimitError

from compliance_ingest.core.exceptions import EmbeddingError
from compliance_ingest.models.documents import EMBEDDING_DIMENSIONS
from compliance_ingest.processing.chunking import ChunkDraft

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

MAX_INPUT_CHARS   = 8000    # provider input truncation
MAX_STORED_CHARS  = 5000    # persisted chunk text truncation
MAX_RETRIES       = 3       # rate-limit retries per chunk
RETRY_STEP        = 2.0     # seconds — delay = attempt × step
BATCH_SIZE        = 5       # concurrent requests per group
BATCH_PAUSE       = 1.0     # seconds between groups

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class EmbeddingConfig:
    api_key:          str   = ""
    endpoint:         str   = ""
    deployment:       str   = "text-embedding-3-small"
    api_version:      str   = "2025-01-01-preview"
    dimensions:       int   = EMBEDDING_DIMENSIONS
    max_input_chars:  int   = MAX_INPUT_CHARS
    max_stored_chars: int   = MAX_STORED_CHARS
    max_retries:      int   = MAX_RETRIES
    retry_step:       float = RETRY_STEP
    batch_size:       int   = BATCH_SIZE
    batch_pause:      float = BATCH_PAUSE

    @classmethod
    def from_settings(cls, settings) -> "EmbeddingConfig":
        return cls(
            api_key=settings.azure_openai_api_key,
            endpoint=settings.azure_openai_endpoint,
            deployment=settings.azure_openai_embedding_deployment,
            api_version=settings.azure_openai_api_version,
            max_input_chars=settings.embedding_max_input_chars,
            max_stored_chars=settings.chunk_max_stored_chars,
            max_retries=settings.embedding_max_retries,
            retry_step=settings.embedding_retry_step,
            batch_size=settings.embedding_batch_size,
            batch_pause=settings.embedding_batch_pause,
        )


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for provider throttling signals (SDK type, HTTP 429, or error code)."""
    if isinstance(exc, RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429 or getattr(exc, "status", None) == 429:
        return True
    return getattr(exc, "code", None) == "rate_limit_exceeded"


# ---------------------------------------------------------------------------
# Single-text embedding
# ---------------------------------------------------------------------------

class EmbeddingClient:
    """
    Thin wrapper over the Azure OpenAI embeddings endpoint.

    Usage:
        client = EmbeddingClient(EmbeddingConfig.from_settings(settings))
        vector = await client.embed("Torque spec for M8 fasteners ...")

    ``provider`` may be any object exposing ``embeddings.create(...)``
    (tests pass a mock); by default an AsyncAzureOpenAI client is built
    on first use.
    """

    def __init__(
        self,
        config:   EmbeddingConfig,
        provider: Any = None,
        sleep:    Sleep = asyncio.sleep,
    ) -> None:
        self._cfg      = config
        self._provider = provider
        self._sleep    = sleep

    @property
    def config(self) -> EmbeddingConfig:
        return self._cfg

    def _get_provider(self) -> Any:
        if self._provider is None:
            from openai import AsyncAzureOpenAI

            self._provider = AsyncAzureOpenAI(
                api_key=self._cfg.api_key,
                azure_endpoint=self._cfg.endpoint,
                api_version=self._cfg.api_version,
            )
        return self._provider

    def prepare_input(self, text: str | None) -> str:
        if not text or not text.strip():
            raise EmbeddingError("Text cannot be empty")
        if len(text) > self._cfg.max_input_chars:
            return text[: self._cfg.max_input_chars]
        return text.strip()

    async def embed(self, text: str | None) -> list[float]:
        """
        Embed one string, retrying on rate limits.

        Raises:
            EmbeddingError on empty input, malformed response, a non rate-limit
            provider error, or once the retry budget is spent.
        """
        payload = self.prepare_input(text)

        attempt = 0
        while True:
            try:
                return await self._request(payload)
            except Exception as exc:
                if is_rate_limit_error(exc) and attempt < self._cfg.max_retries:
                    attempt += 1
                    delay = attempt * self._cfg.retry_step
                    logger.warning(
                        "Rate limited | attempt=%d delay=%.1fs retries_left=%d",
                        attempt, delay, self._cfg.max_retries - attempt,
                    )
                    await self._sleep(delay)
                    continue

                logger.error("Embedding request failed: %s", exc)
                raise EmbeddingError(
                    f"Failed to generate embedding: {exc}",
                    {"attempts": attempt + 1, "rate_limited": is_rate_limit_error(exc)},
                ) from exc

    async def _request(self, payload: str) -> list[float]:
        t_api = time.monotonic()
        response = await self._get_provider().embeddings.create(
            input=[payload],
            model=self._cfg.deployment,
        )

        data = getattr(response, "data", None)
        if not data or getattr(data[0], "embedding", None) is None:
            raise EmbeddingError("Invalid embedding response from provider")

        vector = data[0].embedding
        if not isinstance(vector, (list, tuple)) or len(vector) == 0:
            raise EmbeddingError(f"Invalid embedding: expected array, got {type(vector).__name__}")
        if self._cfg.dimensions and len(vector) != self._cfg.dimensions:
            raise EmbeddingError(
                f"Invalid embedding: expected {self._cfg.dimensions} dimensions, got {len(vector)}"
            )

        logger.debug(
            "Embedding | chars=%d dims=%d api_ms=%.0f",
            len(payload), len(vector), (time.monotonic() - t_api) * 1000,
        )
        return list(vector)


# ---------------------------------------------------------------------------
# Batch result types
# ---------------------------------------------------------------------------

@dataclass
class EmbeddedChunk:
    chunk:  ChunkDraft
    vector: list[float]


@dataclass
class FailedChunk:
    chunk_index: int
    reason:      str


@dataclass
class BatchOutcome:
    """
    Full output of the embedding pass for one document.

    succeeded : chunks with a valid vector, in chunk_index order
    failed    : chunks dropped (empty text or embedding error), with reason
    elapsed_ms: wall time of the whole pass
    """
    succeeded:  list[EmbeddedChunk] = field(default_factory=list)
    failed:     list[FailedChunk]   = field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 1.0
        return len(self.succeeded) / self.total


@dataclass
class ChunkRecord:
    """One row for the bulk chunk insert."""
    document_id: UUID
    chunk_index: int
    text:        str
    page_number: int
    language:    str
    embedding:   list[float]


class ChunkSink(Protocol):
    async def insert_chunks(self, records: Sequence[ChunkRecord]) -> int: ...


# ---------------------------------------------------------------------------
# Batcher
# ---------------------------------------------------------------------------

class EmbeddingBatcher:
    """
    Embeds a document's chunks group by group and persists the survivors.

    Usage:
        batcher = EmbeddingBatcher(client, repository)
        stored  = await batcher.store_chunks_with_embeddings(doc_id, drafts)
    """

    def __init__(
        self,
        client: EmbeddingClient,
        sink:   ChunkSink,
        sleep:  Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._sink   = sink
        self._sleep  = sleep
        self._cfg    = client.config

    async def embed_chunks(self, chunks: Sequence[ChunkDraft]) -> BatchOutcome:
        outcome = BatchOutcome()
        if not chunks:
            return outcome

        t0 = time.monotonic()
        size = max(1, self._cfg.batch_size)
        total_batches = (len(chunks) + size - 1) // size

        for batch_no, start in enumerate(range(0, len(chunks), size), start=1):
            batch = chunks[start : start + size]
            logger.info("Embedding batch %d/%d | size=%d", batch_no, total_batches, len(batch))

            results = await asyncio.gather(*(self._embed_one(c) for c in batch))
            for result in results:
                if isinstance(result, EmbeddedChunk):
                    outcome.succeeded.append(result)
                else:
                    outcome.failed.append(result)

            if start + size < len(chunks):
                await self._sleep(self._cfg.batch_pause)

        outcome.elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "Embedding done | chunks=%d ok=%d failed=%d elapsed_ms=%.0f",
            len(chunks), len(outcome.succeeded), len(outcome.failed), outcome.elapsed_ms,
        )
        return outcome

    async def _embed_one(self, chunk: ChunkDraft) -> EmbeddedChunk | FailedChunk:
        if not chunk.text or not chunk.text.strip():
            logger.warning("Skipping empty chunk at index %d", chunk.chunk_index)
            return FailedChunk(chunk.chunk_index, "empty text")

        try:
            vector = await self._client.embed(chunk.text)
        except EmbeddingError as exc:
            logger.error("Dropping chunk %d: %s", chunk.chunk_index, exc)
            return FailedChunk(chunk.chunk_index, str(exc))

        return EmbeddedChunk(chunk=chunk, vector=vector)

    async def store_chunks_with_embeddings(
        self,
        document_id: UUID,
        chunks:      Sequence[ChunkDraft],
    ) -> int:
        """
        Embed ``chunks`` and bulk-insert every success.

        Returns:
            Number of chunks persisted.

        Raises:
            EmbeddingError if there is nothing to embed or nothing succeeded.
            PersistenceError if the bulk insert fails.
        """
        if not chunks:
            raise EmbeddingError("No chunks to process")

        logger.info("Storing chunks | doc=%s count=%d", document_id, len(chunks))
        outcome = await self.embed_chunks(chunks)

        if not outcome.succeeded:
            raise EmbeddingError(
                "Failed to generate any valid embeddings",
                {"failed": len(outcome.failed)},
            )

        records = [
            ChunkRecord(
                document_id=document_id,
                chunk_index=item.chunk.chunk_index,
                text=item.chunk.text[: self._cfg.max_stored_chars],
                page_number=item.chunk.page_number,
                language=item.chunk.language or "en",
                embedding=item.vector,
            )
            for item in outcome.succeeded
        ]

        await self._sink.insert_chunks(records)
        logger.info(
            "Chunks stored | doc=%s stored=%d dropped=%d",
            document_id, len(records), len(outcome.failed),
        )
        return len(records)
