"""
Image OCR Strategy  —  Tesseract
═════════════════════════════════

Runs Tesseract over the whole image buffer and returns a single page.

Requires the tesseract binary (apt install tesseract-ocr) plus the
traineddata for every language hint used. The hint defaults to English;
set OCR_LANGUAGE=eng+deu (Tesseract syntax) for multilingual plants.
"""

from __future__ import annotations

import io
import logging

from compliance_ingest.processing.parsers import (
    BaseTextExtractor,
    ExtractionResult,
    FileType,
    Page,
)

logger = logging.getLogger(__name__)

DEFAULT_OCR_LANGUAGE = "eng"


class ImageOcrExtractor(BaseTextExtractor):
    """
    OCR for PNG / JPEG / GIF uploads.

    Palette and alpha images are converted to RGB first; Tesseract is
    unreliable on indexed-colour input.
    """

    failure_prefix = "Failed to parse image"

    def __init__(self, language: str = DEFAULT_OCR_LANGUAGE) -> None:
        self._language = language or DEFAULT_OCR_LANGUAGE

    @property
    def file_type(self) -> FileType:
        return FileType.IMAGE

    def _extract_sync(self, data: bytes) -> ExtractionResult:
        import pytesseract
        from PIL import Image

        with Image.open(io.BytesIO(data)) as image:
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            text = pytesseract.image_to_string(image, lang=self._language) or ""

        text = text.strip()
        if not text:
            raise ValueError("Image contains no recognizable text")

        logger.debug("OCR | lang=%s chars=%d", self._language, len(text))

        return ExtractionResult(
            full_text=text,
            pages=[Page(page_number=1, text=text)],
            total_pages=1,
            file_type=self.file_type,
        )
