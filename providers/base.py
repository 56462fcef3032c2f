"""
Base Provider Interface
Abstract base class defining the interface for generation providers (Gemini),
plus the value objects that cross it.
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class UploadedDocument:
    """A user-supplied file, consumed once by an extraction call."""
    content: bytes
    mime_type: str
    filename: str = ""

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def to_base64(self) -> str:
        """Return the content as a base64 string (no data-URL prefix)."""
        return base64.b64encode(self.content).decode("ascii")


@dataclass(frozen=True)
class GenerationRequest:
    """A single composed request to the generation endpoint."""
    prompt: str
    model: str
    temperature: Optional[float] = None
    structured_output: bool = False  # Ask for a JSON response body
    system_instruction: Optional[str] = None
    attachments: Tuple[UploadedDocument, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GenerationResponse:
    """Raw text returned by the generation endpoint. Never assumed well-formed."""
    text: str
    model: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class GenerationProvider(ABC):
    """
    Abstract base class for generation providers.

    Implementations should provide concrete methods for:
    - OCR of a single image
    - Text (and multimodal) generation
    """

    def __init__(self, name: str, model_name: str):
        """Initialize the provider with a name identifier and model id."""
        self.name = name
        self.model_name = model_name

    @abstractmethod
    def extract_text(self, content: bytes, mime_type: str) -> str:
        """
        Extract all readable text from an image.

        Args:
            content: Image bytes
            mime_type: Declared media type of the image

        Returns:
            Extracted text, empty string when the response carries none
        """
        pass

    @abstractmethod
    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Issue one generation request.

        Args:
            request: Composed prompt and generation parameters

        Returns:
            GenerationResponse with the raw text
        """
        pass

    def build_request(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        structured_output: bool = False,
        system_instruction: Optional[str] = None,
        attachments: Tuple[UploadedDocument, ...] = (),
    ) -> GenerationRequest:
        """Build a request bound to this provider's model."""
        return GenerationRequest(
            prompt=prompt,
            model=self.model_name,
            temperature=temperature,
            structured_output=structured_output,
            system_instruction=system_instruction,
            attachments=tuple(attachments),
        )
