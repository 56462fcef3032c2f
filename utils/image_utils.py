"""
Image Processing Utilities
Helper functions for preparing uploads for Gemini inline-data OCR.
"""

import io
import mimetypes
from typing import List, Optional, Tuple


# Image types Gemini accepts as inline data without conversion
INLINE_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/heic",
    "image/heif",
}

# Raster formats we can convert to PNG with Pillow first
CONVERTIBLE_IMAGE_TYPES = {
    "image/bmp",
    "image/gif",
    "image/tiff",
    "image/x-icon",
    "image/x-ms-bmp",
}


def guess_mime_type(filename: str, declared: Optional[str] = None) -> str:
    """
    Resolve the media type of an upload.

    The declared type wins unless it is missing or the generic
    application/octet-stream, in which case the file extension decides.
    """
    if declared and declared != "application/octet-stream":
        return declared.split(";")[0].strip().lower()
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or "application/octet-stream"


def normalize_image(content: bytes, mime_type: str) -> Tuple[bytes, str]:
    """
    Make an image acceptable as Gemini inline data.

    Args:
        content: Raw image bytes
        mime_type: Declared media type

    Returns:
        (bytes, mime_type) ready to send

    Raises:
        ValueError: if the image type is unsupported or unreadable
    """
    if mime_type in INLINE_IMAGE_TYPES:
        return content, mime_type

    if mime_type not in CONVERTIBLE_IMAGE_TYPES:
        raise ValueError(f"Unsupported image type: {mime_type}")

    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(io.BytesIO(content)) as image:
            image.seek(0)  # First frame only for animated formats
            converted = image.convert("RGBA" if image.mode in ("P", "LA", "RGBA") else "RGB")
            buffer = io.BytesIO()
            converted.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Could not read image: {e}") from e

    return buffer.getvalue(), "image/png"


def pdf_to_png_pages(pdf_bytes: bytes, dpi: int = 200) -> List[bytes]:
    """
    Rasterize every page of a PDF to PNG bytes using PyMuPDF.

    Args:
        pdf_bytes: PDF content
        dpi: Render resolution

    Returns:
        One PNG per page, in page order

    Raises:
        ValueError: if the bytes are not a readable PDF
    """
    import fitz  # PyMuPDF

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except RuntimeError as e:
        raise ValueError(f"Could not open PDF: {e}") from e

    try:
        pages = []
        for page in doc:
            pixmap = page.get_pixmap(dpi=dpi)
            pages.append(pixmap.tobytes("png"))
        return pages
    finally:
        doc.close()

