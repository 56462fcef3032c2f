"""
Generation Providers Package
Provides abstraction layer over the generative-AI OCR/text endpoint.
"""

from .base import (
    GenerationProvider,
    GenerationRequest,
    GenerationResponse,
    UploadedDocument,
)
from .gemini_provider import GeminiProvider

__all__ = [
    "GenerationProvider",
    "GenerationRequest",
    "GenerationResponse",
    "UploadedDocument",
    "GeminiProvider",
]
