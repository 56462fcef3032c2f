"""
Code Generator
JSON template + requirement -> Gemini -> HTML/JS/CSS -> zip archive.
"""

import logging
from dataclasses import dataclass

from .composer import PromptComposer
from .packager import package
from .parser import CODE_GENERATOR_FILES, CodeArtifactSet, parse_segments

logger = logging.getLogger("doc_studio.code_generator")


DEFAULT_CODE_PROMPT = (
    "Generate a responsive card component with a title, description, and an interactive button."
)
CODE_FOLDER = "gemini-generated-code"
CODE_ARCHIVE = f"{CODE_FOLDER}.zip"


@dataclass(frozen=True)
class GeneratedBundle:
    """Parsed artifacts plus the packaged archive."""
    artifacts: CodeArtifactSet
    archive: bytes
    archive_name: str = CODE_ARCHIVE


class CodeGenerator:
    """Runs the template-driven code generation pipeline."""

    def __init__(self, composer: PromptComposer):
        self.composer = composer

    def generate(self, template_json: str, user_prompt: str = DEFAULT_CODE_PROMPT) -> CodeArtifactSet:
        """Ask Gemini for code and parse the three segments."""
        raw = self.composer.generate_code(template_json, user_prompt or DEFAULT_CODE_PROMPT)
        logger.info(f"Received {len(raw)} characters of generated code")
        return parse_segments(raw)

    def generate_bundle(self, template_json: str, user_prompt: str = DEFAULT_CODE_PROMPT) -> GeneratedBundle:
        """Generate, parse and package in one go."""
        artifacts = self.generate(template_json, user_prompt)
        archive = package(artifacts.to_files(CODE_GENERATOR_FILES), CODE_ARCHIVE, folder=CODE_FOLDER)
        return GeneratedBundle(artifacts=artifacts, archive=archive)
