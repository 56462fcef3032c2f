"""
PDF Cloner
Copies every page of an uploaded PDF into a new document and appends pages
listing the (possibly edited) extracted fields.
"""

import logging
import textwrap
from typing import Any, Dict, Optional

from .errors import ArtifactIOError, ValidationError
from .fields import flatten_fields

logger = logging.getLogger("doc_studio.pdf_cloner")


# Default to A4 when the source has no pages to copy the size from
DEFAULT_PAGE_SIZE = (595, 842)
MARGIN = 50
FONT_SIZE = 11
TITLE_FONT_SIZE = 16
LINE_HEIGHT = 15
WRAP_WIDTH = 90


def clone_pdf(pdf_bytes: bytes, fields: Optional[Dict[str, Any]] = None, title: str = "Extracted Fields") -> bytes:
    """
    Clone a PDF, optionally appending field pages.

    Args:
        pdf_bytes: Source PDF
        fields: Field data to list on appended pages (nested data is flattened)
        title: Heading of the first appended page

    Returns:
        New PDF bytes
    """
    if fields is not None and not isinstance(fields, dict):
        raise ValidationError("Fields must be a JSON object")

    import fitz  # PyMuPDF

    try:
        source = fitz.open(stream=pdf_bytes, filetype="pdf")
    except RuntimeError as e:
        raise ValidationError(f"Could not read PDF: {e}") from e

    clone = fitz.open()
    try:
        clone.insert_pdf(source)
        if source.page_count:
            last = source[source.page_count - 1].rect
            page_size = (last.width, last.height)
        else:
            page_size = DEFAULT_PAGE_SIZE

        appended = 0
        if fields:
            appended = _append_field_pages(clone, fields, title, page_size)

        data = clone.tobytes(garbage=3, deflate=True)
    except (RuntimeError, ValueError) as e:
        raise ArtifactIOError(f"Could not write cloned PDF: {e}") from e
    finally:
        clone.close()
        source.close()

    logger.info(f"Cloned PDF: {len(pdf_bytes)} -> {len(data)} bytes, {appended} field page(s) appended")
    return data


def _append_field_pages(doc, fields: Dict[str, Any], title: str, page_size) -> int:
    width, height = page_size
    lines = []
    for key, value in flatten_fields(fields):
        wrapped = textwrap.wrap(f"{key}: {value}", width=WRAP_WIDTH) or [f"{key}:"]
        lines.extend(wrapped)

    lines_per_page = max(1, int((height - 2 * MARGIN - TITLE_FONT_SIZE * 2) // LINE_HEIGHT))
    pages = 0
    for start in range(0, len(lines), lines_per_page):
        page = doc.new_page(width=width, height=height)
        heading = title if pages == 0 else f"{title} (continued)"
        page.insert_text((MARGIN, MARGIN + TITLE_FONT_SIZE), heading, fontsize=TITLE_FONT_SIZE)
        y = MARGIN + TITLE_FONT_SIZE * 2 + LINE_HEIGHT
        for line in lines[start:start + lines_per_page]:
            page.insert_text((MARGIN, y), line, fontsize=FONT_SIZE)
            y += LINE_HEIGHT
        pages += 1
    return pages
