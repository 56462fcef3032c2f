"""
Stage 2: Prompt Composer
Combines an instruction with extracted text (or a JSON template) into one
prompt and issues one generation request.
"""

import logging
from typing import Optional

from providers.base import GenerationProvider, UploadedDocument

logger = logging.getLogger("doc_studio.composer")


FIELD_EXTRACTION_INSTRUCTION = "Extract all fields and return a JSON object with proper keys."

DOCUMENT_READER_INSTRUCTION = (
    "Play a role as document reader having 15 years of experience to read content into PDF attached files. "
    "And answer the question base on contents into PDF files. "
    "Kindly read every field labels define into PDF files with its values. "
    "User can edit its values if he/she wants."
)

CONTEXT_TEMPLATE = """{instruction}

Extracted Document Content:
---CONTENT START---
{context}
---CONTENT END---"""

CODE_GENERATION_TEMPLATE = """Play a role as web designer software developer from MIT (Massachusetts Institute of Technology)
having 15 years of experience into html, js and css dynamically.
Kindly find attached JSON object template and generate three separate code blocks:
  1. HTML for the structure (inside <html_code> tags).
  2. JavaScript for interactivity (inside <js_code> tags).
  3. CSS for styling (inside <css_code> tags).

HTML file should follow JSON objects all fields and display on browser using js and css files that created as response
when user run locally. Kindly note html file should have link and script tags to connect style.css and script.js files.

User Prompt/Requirement: "{prompt}"

Dynamic JSON Configuration:
---JSON START---
{template}
---JSON END---"""

RAG_SYSTEM_TEMPLATE = """You are an expert document analysis chatbot. Your task is to answer the user's question ONLY based on the CONTEXT provided below.
If the answer is not found in the context, clearly state, "I cannot find the answer in the provided document."

--- CONTEXT ---
{context}
--- END CONTEXT ---"""

RAG_TEMPERATURE = 0.2


def build_prompt(instruction: str, context: str) -> str:
    """Instruction first, then the context in a delimited block."""
    return CONTEXT_TEMPLATE.format(instruction=instruction.strip(), context=context or "")


def build_code_prompt(template_json: str, user_prompt: str) -> str:
    """Prompt asking for <html_code>, <js_code> and <css_code> blocks."""
    return CODE_GENERATION_TEMPLATE.format(prompt=user_prompt.strip(), template=template_json.strip())


class PromptComposer:
    """Composes prompts and sends them through a provider."""

    def __init__(self, provider: GenerationProvider):
        self.provider = provider

    def generate(self, instruction: str, context: str, structured: bool = False) -> str:
        """
        Send instruction + context as one prompt.

        Args:
            instruction: What the model should do
            context: Extracted text (may be empty)
            structured: Expect a JSON body (low temperature, JSON MIME type)

        Returns:
            Raw response text
        """
        if not context:
            logger.warning("Composing prompt with empty context")
        request = self.provider.build_request(build_prompt(instruction, context), structured_output=structured)
        return self._send(request)

    def generate_code(self, template_json: str, user_prompt: str) -> str:
        """Ask for HTML/JS/CSS code built from a JSON template. Returns the raw response."""
        request = self.provider.build_request(build_code_prompt(template_json, user_prompt))
        return self._send(request)

    def answer_question(self, document_text: str, question: str) -> str:
        """Answer a question using only the supplied document text as context."""
        request = self.provider.build_request(
            question,
            temperature=RAG_TEMPERATURE,
            system_instruction=RAG_SYSTEM_TEMPLATE.format(context=document_text),
        )
        return self._send(request)

    def chat(self, message: str, attachment: Optional[UploadedDocument] = None) -> str:
        """Free-form prompt with an optional inline file."""
        attachments = (attachment,) if attachment is not None else ()
        request = self.provider.build_request(message, attachments=attachments)
        return self._send(request)

    def _send(self, request) -> str:
        response = self.provider.generate(request)
        if response.is_empty:
            logger.warning(f"Empty response from {response.model or self.provider.name}")
        return response.text
