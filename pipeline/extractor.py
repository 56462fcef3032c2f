"""
Stage 1: Extractor
Turns an uploaded image or PDF into plain text via the provider's OCR call.

PDFs are rasterized page by page with PyMuPDF; each page image goes through
the same OCR request as a directly uploaded image.
"""

import logging
import time
from dataclasses import dataclass
from typing import List

from providers.base import GenerationProvider, UploadedDocument
from utils.image_utils import normalize_image, pdf_to_png_pages
from .errors import ValidationError

logger = logging.getLogger("doc_studio.extractor")


@dataclass
class ExtractorConfig:
    """Configuration for extraction operations."""
    dpi: int = 200  # DPI for PDF page rasterization
    page_separator: str = "\n\n"


class Extractor:
    """
    Stage 1: Extractor

    Handles:
    1. Image normalization (formats Gemini does not take inline become PNG)
    2. PDF rasterization
    3. One OCR request per image
    """

    def __init__(self, provider: GenerationProvider, config: ExtractorConfig = None):
        """Initialize with a provider and configuration."""
        self.provider = provider
        self.config = config or ExtractorConfig()

    def extract_text(self, document: UploadedDocument) -> str:
        """
        Extract all readable text from a document.

        Args:
            document: Uploaded image or PDF

        Returns:
            Extracted text (empty string when nothing was recognised)
        """
        start = time.time()
        if document.is_pdf:
            text = self._extract_pdf(document)
        elif document.is_image:
            text = self._extract_image(document.content, document.mime_type)
        else:
            raise ValidationError(f"Unsupported file type for OCR: {document.mime_type}")

        logger.info(
            f"Extracted {len(text)} characters from {document.filename or 'upload'} "
            f"in {time.time() - start:.1f}s"
        )
        return text

    def _extract_image(self, content: bytes, mime_type: str) -> str:
        try:
            content, mime_type = normalize_image(content, mime_type)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return self.provider.extract_text(content, mime_type)

    def _extract_pdf(self, document: UploadedDocument) -> str:
        try:
            pages = pdf_to_png_pages(document.content, dpi=self.config.dpi)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        logger.info(f"Rasterized {len(pages)} pages at {self.config.dpi} DPI")

        page_texts: List[str] = []
        for page_number, png in enumerate(pages, start=1):
            text = self.provider.extract_text(png, "image/png")
            logger.debug(f"  Page {page_number}: {len(text)} characters")
            page_texts.append(f"Page {page_number}:\n{text}")

        return self.config.page_separator.join(page_texts).strip()
