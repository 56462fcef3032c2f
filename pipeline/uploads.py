"""
Upload validation.

Checks run on the declared name and media type only, so a wrong-type file
is rejected before any bytes are read or any external call is made.
"""

import json
import logging
from typing import Any, BinaryIO, Optional

from providers.base import UploadedDocument
from utils.image_utils import guess_mime_type
from .errors import ArtifactIOError, ValidationError

logger = logging.getLogger("doc_studio.uploads")


JSON_MIME_TYPES = {"application/json", "text/json"}


def validate_json_upload(filename: Optional[str], mime_type: Optional[str]) -> None:
    """Accept application/json or *.json, reject everything else."""
    name = (filename or "").lower()
    if (mime_type or "").split(";")[0].strip().lower() in JSON_MIME_TYPES or name.endswith(".json"):
        return
    logger.warning(f"Rejected non-JSON upload: {filename} ({mime_type})")
    raise ValidationError("Please select a valid JSON file.")


def validate_document_upload(filename: Optional[str], mime_type: Optional[str]) -> str:
    """
    Accept images and PDFs for OCR.

    Returns:
        The resolved media type
    """
    if not filename:
        raise ValidationError("No file selected")
    resolved = guess_mime_type(filename, mime_type)
    if resolved == "application/pdf" or resolved.startswith("image/"):
        return resolved
    logger.warning(f"Rejected upload for OCR: {filename} ({resolved})")
    raise ValidationError("File must be a PDF or an image")


def read_stream(stream: BinaryIO, filename: str = "") -> bytes:
    """Read an upload stream, mapping OS failures to ArtifactIOError."""
    try:
        return stream.read()
    except OSError as e:
        raise ArtifactIOError(f"Could not read {filename or 'upload'}: {e}") from e


def load_document(stream: BinaryIO, filename: Optional[str], mime_type: Optional[str]) -> UploadedDocument:
    """Validate and read an OCR upload into an UploadedDocument."""
    resolved = validate_document_upload(filename, mime_type)
    content = read_stream(stream, filename or "")
    if not content:
        raise ValidationError("Uploaded file is empty")
    return UploadedDocument(content=content, mime_type=resolved, filename=filename or "")


def load_json_text(stream: BinaryIO, filename: Optional[str], mime_type: Optional[str]) -> str:
    """Validate, read and decode a JSON upload. The text is checked to be valid JSON."""
    validate_json_upload(filename, mime_type)
    raw = read_stream(stream, filename or "")
    try:
        text = raw.decode("utf-8-sig")
        json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Error parsing JSON file {filename}: {e}") from e
    return text


def load_json(stream: BinaryIO, filename: Optional[str], mime_type: Optional[str]) -> Any:
    """Validate, read and parse a JSON upload."""
    return json.loads(load_json_text(stream, filename, mime_type))
