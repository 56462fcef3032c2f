"""
Utilities Package
Helper functions for upload media types, image normalization and PDF rasterization.
"""

from .image_utils import (
    guess_mime_type,
    normalize_image,
    pdf_to_png_pages,
)

__all__ = [
    "guess_mime_type",
    "normalize_image",
    "pdf_to_png_pages",
]
