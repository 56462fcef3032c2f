"""
Document Studio Pipeline Package
Extraction, prompt composition, progress simulation, parsing, packaging and
form rendering.
"""

from .errors import (
    PipelineError,
    ValidationError,
    ExternalServiceError,
    IncompleteGenerationError,
    ArtifactIOError,
    RunnerBusyError,
)
from .extractor import Extractor, ExtractorConfig
from .composer import PromptComposer, build_prompt, build_code_prompt
from .progress import ProgressRunner, ProgressTicker, RunnerState, next_progress
from .parser import CodeArtifactSet, parse_segments
from .packager import package
from .form_renderer import FormSchema, render
from .fields import parse_field_json, flatten_fields
from .pdf_cloner import clone_pdf
from .code_generator import CodeGenerator, GeneratedBundle

__all__ = [
    # Errors
    "PipelineError",
    "ValidationError",
    "ExternalServiceError",
    "IncompleteGenerationError",
    "ArtifactIOError",
    "RunnerBusyError",
    # Core stages
    "Extractor",
    "ExtractorConfig",
    "PromptComposer",
    "build_prompt",
    "build_code_prompt",
    "ProgressRunner",
    "ProgressTicker",
    "RunnerState",
    "next_progress",
    "CodeArtifactSet",
    "parse_segments",
    "package",
    # Forms, fields and PDFs
    "FormSchema",
    "render",
    "parse_field_json",
    "flatten_fields",
    "clone_pdf",
    "CodeGenerator",
    "GeneratedBundle",
]
