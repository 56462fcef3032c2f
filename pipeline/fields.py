"""
Extracted field data: parsing the model's JSON answer and flattening it for
display, editing and PDF cloning.
"""

import json
import logging
from typing import Any, Dict, List, Tuple

from .errors import IncompleteGenerationError
from .parser import clean_segment

logger = logging.getLogger("doc_studio.fields")


def parse_field_json(raw: str) -> Dict[str, Any]:
    """
    Parse the field-extraction response into a mapping.

    An empty response yields {}. A top-level list is wrapped as {"items": [...]}.

    Raises:
        IncompleteGenerationError: if no JSON object can be recovered
    """
    text = clean_segment(raw or "")
    if not text:
        return {}

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Try to recover the outermost object from surrounding prose
        start = text.find("{")
        end = text.rfind("}") + 1
        if start == -1 or end <= start:
            logger.error(f"Field response is not JSON:\n{raw}")
            raise IncompleteGenerationError("Gemini did not return a JSON object", raw_response=raw or "")
        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError as e:
            logger.error(f"Field response is not valid JSON ({e}):\n{raw}")
            raise IncompleteGenerationError(f"Gemini returned invalid JSON: {e}", raw_response=raw or "") from e

    if isinstance(data, list):
        return {"items": data}
    if not isinstance(data, dict):
        return {"value": data}
    return data


def flatten_fields(fields: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """
    Flatten nested field data to (dotted key, display value) pairs.

    Lists of scalars are joined with ", "; lists of objects are indexed.
    """
    pairs: List[Tuple[str, str]] = []
    for key, value in fields.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            pairs.extend(flatten_fields(value, path))
        elif isinstance(value, list):
            if all(not isinstance(item, (dict, list)) for item in value):
                pairs.append((path, ", ".join(display_value(item) for item in value)))
            else:
                for index, item in enumerate(value, start=1):
                    if isinstance(item, dict):
                        pairs.extend(flatten_fields(item, f"{path}[{index}]"))
                    else:
                        pairs.append((f"{path}[{index}]", display_value(item)))
        else:
            pairs.append((path, display_value(value)))
    return pairs


def display_value(value: Any) -> str:
    """Render a field value as display text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
