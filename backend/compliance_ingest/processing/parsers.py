"""
Parser Strategies  —  Text Extraction per File Type
════════════════════════════════════════════════════

Design: Strategy + closed registry
──────────────────────────────────
One BaseTextExtractor subclass per supported file family:

  PdfExtractor          PyMuPDF (fitz) — native text layer + reported page count
  WordExtractor         python-docx    — paragraphs + table cells
  SpreadsheetExtractor  openpyxl       — one page per sheet, CSV rendering
  PlainTextExtractor    UTF-8 decode
  ImageOcrExtractor     Tesseract OCR  — see ocr.py

Pagination
──────────
  PDF          : full text divided evenly by the reported page count
                 (per-page offsets are not trusted — headers/footers and
                 reading order make page.get_text() boundaries noisy).
  Word / text  : fixed 2000-char pseudo-pages via split_into_pages().
  Spreadsheet  : one page per non-empty sheet.
  Image        : one page.

All parsing libraries are blocking; BaseTextExtractor.extract() runs the
synchronous parse in the default thread executor so the event loop keeps
serving other documents.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from compliance_ingest.core.exceptions import ExtractionError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CHARS_PER_PAGE = 2000


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

class FileType(str, Enum):
    PDF         = "pdf"
    WORD        = "word"
    SPREADSHEET = "spreadsheet"
    IMAGE       = "image"
    TEXT        = "text"


@dataclass
class Page:
    """
    One page of extracted text.

    page_number : 1-based page index
    text        : trimmed page text (never empty for pages in a result)
    label       : optional human label (sheet name for spreadsheets)
    """
    page_number: int
    text:        str
    label:       str | None = None


@dataclass
class ExtractionResult:
    """
    Output of a single strategy run.

    full_text   : whole-document text, trimmed
    pages       : non-empty pages in document order
    total_pages : page count reported by the format (PDF) or pages kept
    file_type   : which strategy produced this result
    elapsed_ms  : wall-clock parse time (ms)
    """
    full_text:   str
    pages:       list[Page]
    total_pages: int
    file_type:   FileType
    elapsed_ms:  float = 0.0

    @property
    def total_chars(self) -> int:
        return len(self.full_text)


# ---------------------------------------------------------------------------
# Pseudo-page splitter (Word + plain text)
# ---------------------------------------------------------------------------

def split_into_pages(text: str, chars_per_page: int = DEFAULT_CHARS_PER_PAGE) -> list[Page]:
    """
    Walk ``text`` in fixed, non-overlapping windows of ``chars_per_page``.

    Each window is trimmed; blank windows are dropped and the surviving
    windows are numbered 1..n with no gaps.
    """
    if chars_per_page <= 0:
        raise ValueError("chars_per_page must be positive")

    pages: list[Page] = []
    for start in range(0, len(text), chars_per_page):
        window = text[start : start + chars_per_page].strip()
        if window:
            pages.append(Page(page_number=len(pages) + 1, text=window))
    return pages


# ---------------------------------------------------------------------------
# Abstract strategy
# ---------------------------------------------------------------------------

class BaseTextExtractor(ABC):
    """
    Abstract base for text extraction strategies.

    All implementations:
      - Accept raw file bytes (never a file path — keeps workers stateless)
      - Return ExtractionResult with at least one non-empty page
      - Raise ExtractionError on empty content or any parser failure
      - Are safe for concurrent use (no shared mutable state)
    """

    #: Prefix used for wrapped failure messages, e.g. "Failed to parse PDF"
    failure_prefix: str = "Failed to extract text"

    @property
    @abstractmethod
    def file_type(self) -> FileType:
        """Which FileType this strategy handles."""

    @abstractmethod
    def _extract_sync(self, data: bytes) -> ExtractionResult:
        """Blocking extraction — runs in thread executor."""

    async def extract(self, data: bytes) -> ExtractionResult:
        loop = asyncio.get_running_loop()
        t0 = time.monotonic()

        try:
            result = await loop.run_in_executor(None, self._extract_sync, data)
        except Exception as exc:
            logger.error("%s: %s", self.failure_prefix, exc)
            raise ExtractionError(
                f"{self.failure_prefix}: {exc}",
                {"file_type": self.file_type.value},
            ) from exc

        result.elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "Extraction | type=%s pages=%d total_pages=%d chars=%d elapsed_ms=%.0f",
            self.file_type.value, len(result.pages), result.total_pages,
            result.total_chars, result.elapsed_ms,
        )
        return result


# ---------------------------------------------------------------------------
# PDF: PyMuPDF (fitz)
# ---------------------------------------------------------------------------

class PdfExtractor(BaseTextExtractor):
    """
    Reads the native PDF text layer with PyMuPDF.

    Scanned PDFs have no text layer and fail with "PDF contains no
    extractable text"; upload them as images to go through OCR.
    """

    failure_prefix = "Failed to parse PDF"

    @property
    def file_type(self) -> FileType:
        return FileType.PDF

    def _extract_sync(self, data: bytes) -> ExtractionResult:
        import fitz  # PyMuPDF; imported here to avoid module-level import cost

        with fitz.open(stream=data, filetype="pdf") as doc:
            total_pages = doc.page_count
            text = "\n\n".join(page.get_text("text") or "" for page in doc)

        if not text.strip():
            raise ValueError("PDF contains no extractable text")

        return ExtractionResult(
            full_text=text.strip(),
            pages=paginate_evenly(text, total_pages),
            total_pages=total_pages,
            file_type=self.file_type,
        )


def paginate_evenly(text: str, total_pages: int) -> list[Page]:
    """
    Reconstruct pseudo-pages by dividing ``text`` evenly into ``total_pages``.

    Slice i spans [floor(i*len/n), floor((i+1)*len/n)). Slices that are blank
    after trimming are omitted; the caller still reports ``total_pages``.
    """
    if total_pages <= 0:
        return []

    length = len(text)
    pages: list[Page] = []
    for i in range(total_pages):
        start = (i * length) // total_pages
        end = ((i + 1) * length) // total_pages
        page_text = text[start:end].strip()
        if page_text:
            pages.append(Page(page_number=i + 1, text=page_text))
    return pages


# ---------------------------------------------------------------------------
# Word: python-docx
# ---------------------------------------------------------------------------

class WordExtractor(BaseTextExtractor):
    """
    Word documents have no stable pagination outside a layout engine, so the
    raw text is split into fixed-size pseudo-pages.

    Only OOXML (.docx) is readable; legacy binary .doc fails inside
    python-docx and is reported as an ExtractionError.
    """

    failure_prefix = "Failed to parse Word document"

    def __init__(self, chars_per_page: int = DEFAULT_CHARS_PER_PAGE) -> None:
        self._chars_per_page = chars_per_page

    @property
    def file_type(self) -> FileType:
        return FileType.WORD

    def _extract_sync(self, data: bytes) -> ExtractionResult:
        import docx  # python-docx

        document = docx.Document(io.BytesIO(data))

        blocks = [p.text for p in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                blocks.append("\t".join(cell.text for cell in row.cells))
        text = "\n".join(blocks)

        if not text.strip():
            raise ValueError("Word document contains no extractable text")

        pages = split_into_pages(text, self._chars_per_page)
        return ExtractionResult(
            full_text=text.strip(),
            pages=pages,
            total_pages=len(pages),
            file_type=self.file_type,
        )


# ---------------------------------------------------------------------------
# Spreadsheet: openpyxl
# ---------------------------------------------------------------------------

class SpreadsheetExtractor(BaseTextExtractor):
    """
    One page per worksheet, in workbook order.

    Page text is ``"Sheet: <name>\\n"`` followed by a CSV rendering of the
    sheet. Fully empty rows are dropped, so an empty sheet renders to ""
    and is skipped. The page number is the sheet's 1-based position in the
    workbook, which keeps citations pointing at the right tab.
    """

    failure_prefix = "Failed to parse Excel file"

    @property
    def file_type(self) -> FileType:
        return FileType.SPREADSHEET

    def _extract_sync(self, data: bytes) -> ExtractionResult:
        import openpyxl

        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        pages: list[Page] = []
        try:
            for index, sheet in enumerate(workbook.worksheets, start=1):
                csv_text = _sheet_to_csv(sheet.iter_rows(values_only=True))
                if not csv_text.strip():
                    continue
                pages.append(Page(
                    page_number=index,
                    text=f"Sheet: {sheet.title}\n{csv_text}",
                    label=sheet.title,
                ))
        finally:
            workbook.close()

        combined = "\n\n".join(p.text for p in pages)
        if not combined.strip():
            raise ValueError("Excel file contains no extractable data")

        return ExtractionResult(
            full_text=combined.strip(),
            pages=pages,
            total_pages=len(pages),
            file_type=self.file_type,
        )


def _sheet_to_csv(rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in rows:
        cells = ["" if value is None else str(value) for value in row]
        if any(cell.strip() for cell in cells):
            writer.writerow(cells)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

class PlainTextExtractor(BaseTextExtractor):
    """UTF-8 text split into fixed-size pseudo-pages."""

    failure_prefix = "Failed to parse text file"

    def __init__(self, chars_per_page: int = DEFAULT_CHARS_PER_PAGE) -> None:
        self._chars_per_page = chars_per_page

    @property
    def file_type(self) -> FileType:
        return FileType.TEXT

    def _extract_sync(self, data: bytes) -> ExtractionResult:
        # Invalid byte sequences become U+FFFD rather than failing the document
        text = data.decode("utf-8", errors="replace")

        if not text.strip():
            raise ValueError("Text file is empty")

        pages = split_into_pages(text, self._chars_per_page)
        return ExtractionResult(
            full_text=text.strip(),
            pages=pages,
            total_pages=len(pages),
            file_type=self.file_type,
        )
