"""
Text Extraction Orchestrator
════════════════════════════

Resolves the declared file type of an upload to exactly one strategy and
returns its ExtractionResult.

Resolution:
  1.  Declared extension ("pdf", "docx", ".xlsx", ...) → FileType
  2.  Empty declared type → fall back to the stored MIME type
  3.  Neither resolves → ExtractionError("Unsupported file type: ...")

The registry is closed: supporting a new format means adding a FileType
member and one BaseTextExtractor subclass, nothing else.

This module is the only place that knows the extension → strategy mapping.
Workers and other callers only see ExtractionResult.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from compliance_ingest.core.exceptions import ExtractionError
from compliance_ingest.processing.ocr import DEFAULT_OCR_LANGUAGE, ImageOcrExtractor
from compliance_ingest.processing.parsers import (
    DEFAULT_CHARS_PER_PAGE,
    BaseTextExtractor,
    ExtractionResult,
    FileType,
    PdfExtractor,
    PlainTextExtractor,
    SpreadsheetExtractor,
    WordExtractor,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Declared type resolution
# ---------------------------------------------------------------------------

EXTENSION_TYPES: dict[str, FileType] = {
    "pdf":  FileType.PDF,
    "doc":  FileType.WORD,
    "docx": FileType.WORD,
    "xls":  FileType.SPREADSHEET,
    "xlsx": FileType.SPREADSHEET,
    "png":  FileType.IMAGE,
    "jpg":  FileType.IMAGE,
    "jpeg": FileType.IMAGE,
    "gif":  FileType.IMAGE,
    "txt":  FileType.TEXT,
}

MIME_TYPES: dict[str, FileType] = {
    "application/pdf": FileType.PDF,
    "application/msword": FileType.WORD,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": FileType.WORD,
    "application/vnd.ms-excel": FileType.SPREADSHEET,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": FileType.SPREADSHEET,
    "image/png":  FileType.IMAGE,
    "image/jpeg": FileType.IMAGE,
    "image/jpg":  FileType.IMAGE,
    "image/gif":  FileType.IMAGE,
    "text/plain": FileType.TEXT,
}


def resolve_file_type(declared: str | FileType | None, mime_type: str | None = None) -> FileType:
    """Map a declared extension (or, failing that, a MIME type) to a FileType."""
    if isinstance(declared, FileType):
        return declared

    key = (declared or "").strip().lower().lstrip(".")
    if key:
        if key in EXTENSION_TYPES:
            return EXTENSION_TYPES[key]
        try:
            return FileType(key)
        except ValueError:
            raise ExtractionError(
                f"Unsupported file type: {declared}",
                {"file_type": declared, "mime_type": mime_type},
            ) from None

    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    if mime in MIME_TYPES:
        return MIME_TYPES[mime]

    raise ExtractionError(
        f"Unsupported file type: {declared or mime_type or 'unknown'}",
        {"file_type": declared, "mime_type": mime_type},
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractionConfig:
    chars_per_page: int = DEFAULT_CHARS_PER_PAGE
    ocr_language:   str = DEFAULT_OCR_LANGUAGE


class TextExtractor:
    """
    Stateless dispatcher — one strategy instance per FileType.

    Usage:
        extractor = TextExtractor(ExtractionConfig(chars_per_page=2000))
        result = await extractor.extract(file_bytes, "docx")
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        cfg = config or ExtractionConfig()
        strategies: list[BaseTextExtractor] = [
            PdfExtractor(),
            WordExtractor(chars_per_page=cfg.chars_per_page),
            SpreadsheetExtractor(),
            ImageOcrExtractor(language=cfg.ocr_language),
            PlainTextExtractor(chars_per_page=cfg.chars_per_page),
        ]
        self._registry: dict[FileType, BaseTextExtractor] = {
            s.file_type: s for s in strategies
        }

    def strategy_for(self, file_type: FileType) -> BaseTextExtractor:
        try:
            return self._registry[file_type]
        except KeyError:
            raise ExtractionError(f"Unsupported file type: {file_type.value}") from None

    async def extract(
        self,
        data:      bytes,
        file_type: str | FileType | None,
        mime_type: str | None = None,
    ) -> ExtractionResult:
        resolved = resolve_file_type(file_type, mime_type)
        logger.info(
            "Parsing file | declared=%s mime=%s resolved=%s bytes=%d",
            file_type, mime_type, resolved.value, len(data),
        )

        result = await self.strategy_for(resolved).extract(data)

        if not result.full_text.strip():
            raise ExtractionError("Extracted text is empty", {"file_type": resolved.value})
        return result
