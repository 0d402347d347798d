"""
Sliding-Window Chunker
══════════════════════

Why fixed-size windows with overlap?
────────────────────────────────────
  Compliance documents arrive as PDFs, spreadsheets, scanned labels and
  plain text. Sentence segmentation is unreliable on CSV renderings and OCR
  output, so chunks are plain character windows:

    cursor = 0
    while cursor < len(text):
        window = text[cursor : cursor + size].strip()
        emit window if len(window) > MIN_CHUNK_CHARS
        cursor += size - overlap

  The overlap means a clause cut at one window edge appears whole in the
  neighbouring window. Windows of ≤ 50 chars after trimming (usually a page
  tail) are dropped; the cursor still advances.

Chunking is deterministic: identical pages produce identical chunks with
identical chunk_index values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from compliance_ingest.processing.parsers import Page

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

DEFAULT_CHUNK_SIZE = 800
DEFAULT_OVERLAP    = 100
MIN_CHUNK_CHARS    = 50    # a chunk must be strictly longer than this after trim


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChunkingConfig:
    size:    int = DEFAULT_CHUNK_SIZE
    overlap: int = DEFAULT_OVERLAP


@dataclass
class ChunkDraft:
    """
    A chunk that has been cut but not yet embedded.

    chunk_index is 0-based and unique per document: page order first,
    then position within the page.
    """
    chunk_index: int
    text:        str
    page_number: int
    language:    str = "en"


# ---------------------------------------------------------------------------
# Core windowing
# ---------------------------------------------------------------------------

def iter_chunks(
    text:    str,
    size:    int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> Iterator[str]:
    """Lazily yield trimmed windows of ``text`` longer than MIN_CHUNK_CHARS."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    if not 0 <= overlap < size:
        raise ValueError("overlap must be >= 0 and smaller than the chunk size")

    step = size - overlap
    cursor = 0
    while cursor < len(text):
        chunk = text[cursor : cursor + size].strip()
        if len(chunk) > MIN_CHUNK_CHARS:
            yield chunk
        cursor += step


def chunk_text(
    text:    str,
    size:    int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[str]:
    """
    Split ``text`` into overlapping windows.

    Example:
        chunk_text("a" * 1440)  → 2 chunks: [0:800], [700:1440]
    """
    return list(iter_chunks(text, size, overlap))


# ---------------------------------------------------------------------------
# Document-level chunking
# ---------------------------------------------------------------------------

def build_chunk_drafts(
    pages:    Iterable[Page],
    language: str,
    config:   ChunkingConfig | None = None,
) -> list[ChunkDraft]:
    """
    Chunk every non-blank page and number the results across the document.

    Blank pages are skipped with a warning; they never consume an index.
    """
    cfg = config or ChunkingConfig()
    drafts: list[ChunkDraft] = []

    for page in pages:
        if not page.text or not page.text.strip():
            logger.warning("Skipping empty page %d", page.page_number)
            continue

        for piece in iter_chunks(page.text, cfg.size, cfg.overlap):
            drafts.append(ChunkDraft(
                chunk_index=len(drafts),
                text=piece,
                page_number=page.page_number,
                language=language,
            ))

    return drafts
