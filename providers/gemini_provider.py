"""
Gemini Provider Implementation
Uses the google.genai SDK for OCR (inline image data) and text generation.
"""

import logging
from typing import Any, List, Optional

import httpx
from google.genai import errors as genai_errors
from google.genai import types

from config import AppConfig
from pipeline.errors import ExternalServiceError
from .base import GenerationProvider, GenerationRequest, GenerationResponse

logger = logging.getLogger("doc_studio.gemini")


OCR_PROMPT = "Extract all readable text from this image clearly."

# Low temperature for accuracy when a JSON body is expected
STRUCTURED_TEMPERATURE = 0.1


class GeminiProvider(GenerationProvider):
    """
    Google Gemini provider.

    The SDK client is created lazily from the injected configuration, or
    passed in directly (tests, shared clients).
    """

    def __init__(self, config: AppConfig, client: Optional[Any] = None):
        """Initialize the provider from configuration."""
        super().__init__(name="gemini", model_name=config.model_name)
        self.config = config
        self._client = client

    @property
    def client(self):
        """Lazy initialization of the Gemini client."""
        if self._client is None:
            if not self.config.api_key:
                raise ValueError("Google API key not found. Set GOOGLE_API_KEY")

            from google import genai

            http_options = types.HttpOptions(timeout=self.config.timeout_ms)
            if self.config.base_url:
                http_options.base_url = self.config.base_url
            self._client = genai.Client(api_key=self.config.api_key, http_options=http_options)
        return self._client

    def extract_text(self, content: bytes, mime_type: str) -> str:
        """
        OCR a single image with Gemini.

        The image travels as inline (base64) data next to a fixed instruction.
        A response without a text part yields an empty string.
        """
        parts = [
            types.Part.from_text(text=OCR_PROMPT),
            types.Part.from_bytes(data=content, mime_type=mime_type),
        ]
        logger.debug(f"OCR request: {len(content)} bytes of {mime_type}")
        response = self._send(parts, types.GenerateContentConfig())
        return self.first_text(response)

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Send one composed prompt (plus optional attachments) to Gemini."""
        parts = [types.Part.from_text(text=request.prompt)]
        for attachment in request.attachments:
            parts.append(types.Part.from_bytes(data=attachment.content, mime_type=attachment.mime_type))

        config = types.GenerateContentConfig()
        if request.temperature is not None:
            config.temperature = request.temperature
        if request.structured_output:
            config.response_mime_type = "application/json"
            if request.temperature is None:
                config.temperature = STRUCTURED_TEMPERATURE
        if request.system_instruction:
            config.system_instruction = request.system_instruction

        logger.debug(
            f"Generation request: model={request.model}, prompt_chars={len(request.prompt)}, "
            f"attachments={len(request.attachments)}, structured={request.structured_output}"
        )
        response = self._send(parts, config, model=request.model)
        return GenerationResponse(text=self.first_text(response), model=request.model)

    def _send(self, parts: List[types.Part], config: types.GenerateContentConfig, model: Optional[str] = None):
        """Issue exactly one request, translating SDK failures."""
        try:
            return self.client.models.generate_content(
                model=model or self.model_name,
                contents=[types.Content(role="user", parts=parts)],
                config=config,
            )
        except genai_errors.APIError as e:
            status = f"{e.code} {e.status}" if e.status else str(e.code)
            logger.error(f"Gemini API error: {status}: {e.message}")
            raise ExternalServiceError(f"Gemini API error: {status}: {e.message}", status=status) from e
        except httpx.HTTPError as e:
            logger.error(f"Gemini transport error: {e}")
            raise ExternalServiceError(f"Gemini transport error: {e}") from e

    @staticmethod
    def first_text(response) -> str:
        """Return candidates[0].content.parts[0].text, or '' when absent."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return ""
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []
        if not parts:
            return ""
        text = getattr(parts[0], "text", None)
        return text.strip() if text else ""
