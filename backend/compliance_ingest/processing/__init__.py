"""
Document Processing Package
════════════════════════════

The write path of the ingestion pipeline:

  Text Extraction → Language Tagging → Chunking → Embedding

Modules
───────
  parsers.py     Extraction strategies per file family (PDF, Word, spreadsheet, text)
  ocr.py         Image strategy (Tesseract)
  extractor.py   Resolves the declared file type and dispatches to one strategy
  language.py    Document language detection (ISO-639-1)
  chunking.py    Sliding-window chunker with overlap
  embeddings.py  Rate-limit aware embedding client + batched persistence

Every component is stateless and receives its configuration explicitly.
"""

from compliance_ingest.processing.chunking import ChunkDraft, ChunkingConfig, build_chunk_drafts, chunk_text
from compliance_ingest.processing.embeddings import (
    BatchOutcome,
    EmbeddingBatcher,
    EmbeddingClient,
    EmbeddingConfig,
)
from compliance_ingest.processing.extractor import ExtractionConfig, TextExtractor
from compliance_ingest.processing.language import detect_language
from compliance_ingest.processing.parsers import ExtractionResult, FileType, Page

__all__ = [
    "ChunkDraft",
    "ChunkingConfig",
    "build_chunk_drafts",
    "chunk_text",
    "BatchOutcome",
    "EmbeddingBatcher",
    "EmbeddingClient",
    "EmbeddingConfig",
    "ExtractionConfig",
    "TextExtractor",
    "detect_language",
    "ExtractionResult",
    "FileType",
    "Page",
]
