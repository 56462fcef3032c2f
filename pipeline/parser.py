"""
Stage 3: Response Parser
Pulls the HTML, JavaScript and CSS segments out of a free-text model response.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import IncompleteGenerationError

logger = logging.getLogger("doc_studio.parser")


SEGMENT_PATTERNS = {
    "html_code": re.compile(r"<html_code>([\s\S]*?)</html_code>", re.IGNORECASE),
    "js_code": re.compile(r"<js_code>([\s\S]*?)</js_code>", re.IGNORECASE),
    "css_code": re.compile(r"<css_code>([\s\S]*?)</css_code>", re.IGNORECASE),
}

# Opening fence with optional language tag, or a closing fence
FENCE_PATTERN = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\r?\n?")

CODE_GENERATOR_FILES = ("index.html", "script.js", "style.css")
FORM_FILES = ("form.html", "form.js", "form.css")


@dataclass(frozen=True)
class CodeArtifactSet:
    """The three generated artifacts. Only ever built complete."""
    structure: str  # HTML
    behavior: str  # JavaScript
    style: str  # CSS

    def to_files(self, names: Tuple[str, str, str] = CODE_GENERATOR_FILES) -> Dict[str, str]:
        """Map the artifacts onto (html, js, css) filenames."""
        html_name, js_name, css_name = names
        return {
            html_name: self.structure,
            js_name: self.behavior,
            css_name: self.style,
        }


def clean_segment(segment: str) -> str:
    """Strip code-fence markers and surrounding whitespace."""
    return FENCE_PATTERN.sub("", segment).strip()


def parse_segments(raw: str) -> CodeArtifactSet:
    """
    Extract the three tagged segments from a model response.

    Raises:
        IncompleteGenerationError: if any of the three tags is missing
    """
    raw = raw or ""
    matches = {tag: pattern.search(raw) for tag, pattern in SEGMENT_PATTERNS.items()}
    missing = [tag for tag, match in matches.items() if match is None]

    if missing:
        logger.error(f"Gemini response parsing error, missing {', '.join(missing)}. Response:\n{raw}")
        raise IncompleteGenerationError(
            "Could not extract all HTML, JS, and CSS blocks. Check Gemini's output format. "
            f"Missing: {', '.join(missing)}",
            missing=missing,
            raw_response=raw,
        )

    return CodeArtifactSet(
        structure=clean_segment(matches["html_code"].group(1)),
        behavior=clean_segment(matches["js_code"].group(1)),
        style=clean_segment(matches["css_code"].group(1)),
    )
