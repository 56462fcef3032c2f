"""
Pipeline error taxonomy.

Every adapter raises one of these; the task runner and the web layer
forward them unchanged.
"""

from typing import List, Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PipelineError):
    """Malformed or wrong-type user input, detected before any external call."""

    http_status = 400


class ExternalServiceError(PipelineError):
    """Non-success response or transport failure from the Gemini endpoint."""

    http_status = 502

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class IncompleteGenerationError(PipelineError):
    """The model response did not contain every required segment."""

    http_status = 502

    def __init__(self, message: str, missing: Optional[List[str]] = None, raw_response: str = ""):
        super().__init__(message)
        self.missing = list(missing or [])
        self.raw_response = raw_response


class ArtifactIOError(PipelineError, OSError):
    """Local file read or archive serialization failure."""

    http_status = 500


class RunnerBusyError(PipelineError):
    """A task is already in flight."""

    http_status = 409
