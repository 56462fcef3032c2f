"""
Form-Schema Renderer
Turns a JSON form template into form.html / form.js / form.css without any
external call. Output is fully determined by the schema and prefill data.
"""

import html
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import ValidationError
from .fields import display_value
from .parser import CodeArtifactSet

DETAILS_KEY = "form_details"
SIGNATURES_KEY = "signature_fields"
DEFAULT_TITLE = "Dynamic Form"


# ----------------------------------------------------------------------------
# Schema model
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class TextField:
    """Leaf string value. The value is placeholder text from the template."""
    key: str
    value: str = ""


@dataclass(frozen=True)
class ChoiceField:
    """String list value, rendered as a drop-down."""
    key: str
    options: Tuple[str, ...]


@dataclass(frozen=True)
class Section:
    """A named group of fields; may nest further sections."""
    key: str
    fields: Tuple["Field", ...]


Field = Union[TextField, ChoiceField, Section]


@dataclass(frozen=True)
class FormDetails:
    """The form_details metadata header."""
    form_type: Tuple[str, ...] = ()
    academy_name: str = ""
    academy_slogan: str = ""
    academy_type: str = ""

    @property
    def title(self) -> str:
        form_type = " / ".join(self.form_type)
        parts = [part for part in (form_type, self.academy_name) if part]
        return " - ".join(parts) or DEFAULT_TITLE


@dataclass(frozen=True)
class FormSchema:
    """A validated form template."""
    details: Optional[FormDetails]
    sections: Tuple[Section, ...]
    signatures: Optional[Section] = None

    @property
    def title(self) -> str:
        return self.details.title if self.details else DEFAULT_TITLE

    def ordered_sections(self) -> List[Tuple[str, Section]]:
        """(legend, section) pairs in render order, signatures last."""
        ordered = [(to_title_case(section.key), section) for section in self.sections]
        if self.signatures is not None:
            ordered.append(("Signatures", self.signatures))
        return ordered

    @classmethod
    def from_dict(cls, data: Any) -> "FormSchema":
        """
        Validate a parsed JSON template.

        Raises:
            ValidationError: if the shape does not match
        """
        if not isinstance(data, dict):
            raise ValidationError("Form template must be a JSON object")

        details = None
        signatures = None
        sections: List[Section] = []
        for key, value in data.items():
            if key == DETAILS_KEY:
                details = _parse_details(value)
            elif not isinstance(value, dict):
                raise ValidationError(f"Section '{key}' must be an object of fields")
            elif key == SIGNATURES_KEY:
                signatures = _parse_section(key, value)
            else:
                sections.append(_parse_section(key, value))

        return cls(details=details, sections=tuple(sections), signatures=signatures)

    @classmethod
    def from_field_data(cls, fields: Dict[str, Any]) -> Tuple["FormSchema", Dict[str, str]]:
        """
        Build a schema and id-keyed prefill data from extracted field values.

        Top-level scalar values are grouped under an "extracted_fields" section.
        """
        prefill: Dict[str, str] = {}
        general: Dict[str, Any] = {}
        template: Dict[str, Any] = {}
        for key, value in fields.items():
            if isinstance(value, dict):
                template[key] = _template_from_data(value, prefill)
            elif isinstance(value, list) and any(isinstance(item, dict) for item in value):
                template[key] = _template_from_data({key: value}, prefill)
            else:
                general[key] = ""
                prefill[field_id(key)] = _prefill_value(value)

        if general:
            template = {"extracted_fields": general, **template}
        return cls.from_dict(template), prefill


def _parse_details(value: Any) -> FormDetails:
    if not isinstance(value, dict):
        raise ValidationError(f"'{DETAILS_KEY}' must be an object")

    form_type = value.get("form_type", ())
    if isinstance(form_type, str):
        form_type = (form_type,)
    elif isinstance(form_type, list) and all(isinstance(item, str) for item in form_type):
        form_type = tuple(form_type)
    else:
        raise ValidationError("'form_type' must be a string or a list of strings")

    text = {}
    for name in ("academy_name", "academy_slogan", "academy_type"):
        item = value.get(name, "")
        if not isinstance(item, str):
            raise ValidationError(f"'{name}' must be a string")
        text[name] = item
    return FormDetails(form_type=form_type, **text)


def _parse_section(key: str, value: Dict[str, Any]) -> Section:
    fields: List[Field] = []
    for field_key, field_value in value.items():
        if isinstance(field_value, str):
            fields.append(TextField(field_key, field_value))
        elif isinstance(field_value, list):
            if not all(isinstance(option, str) for option in field_value):
                raise ValidationError(f"Options of '{field_key}' must be strings")
            fields.append(ChoiceField(field_key, tuple(field_value)))
        elif isinstance(field_value, dict):
            fields.append(_parse_section(field_key, field_value))
        else:
            raise ValidationError(
                f"Field '{key}.{field_key}' must be a string, a list of strings or an object, "
                f"got {type(field_value).__name__}"
            )
    return Section(key=key, fields=tuple(fields))


def _template_from_data(data: Dict[str, Any], prefill: Dict[str, str]) -> Dict[str, Any]:
    template: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            template[key] = _template_from_data(value, prefill)
        elif isinstance(value, list) and any(isinstance(item, dict) for item in value):
            for index, item in enumerate(value, start=1):
                item_key = f"{key}_{index}"
                if isinstance(item, dict):
                    template[item_key] = _template_from_data(item, prefill)
                else:
                    template[item_key] = ""
                    prefill[field_id(item_key)] = _prefill_value(item)
        else:
            template[key] = ""
            prefill[field_id(key)] = _prefill_value(value)
    return template


def _prefill_value(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(display_value(item) for item in value)
    return display_value(value)


# ----------------------------------------------------------------------------
# Naming helpers
# ----------------------------------------------------------------------------

def field_id(key: str) -> str:
    """Lower-case the key and replace anything outside [a-z0-9] with '-'."""
    return re.sub(r"[^a-z0-9]", "-", key.lower())


def to_title_case(key: str) -> str:
    """fullName / full_name -> 'Full Name'."""
    spaced = re.sub(r"([A-Z])", r" \1", key).replace("_", " ").strip()
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split(" "))


def _esc(text: str) -> str:
    return html.escape(text, quote=True)


# ----------------------------------------------------------------------------
# HTML
# ----------------------------------------------------------------------------

def render_field(field: Field, depth: int = 1) -> str:
    """Render one field by the classification priority order."""
    if isinstance(field, Section):
        return render_section(to_title_case(field.key), field, depth + 1)

    pad = "  " * depth
    key = field.key
    fid = _esc(field_id(key))
    label = _esc(to_title_case(key))

    if isinstance(field, ChoiceField):
        options = "".join(
            f'\n{pad}    <option value="{_esc(option)}">{_esc(option)}</option>' for option in field.options
        )
        return (
            f'{pad}<div class="form-group">\n'
            f'{pad}  <label for="{fid}">{label}:</label>\n'
            f'{pad}  <select id="{fid}" name="{fid}">\n'
            f'{pad}    <option value="" disabled selected>Select {label}</option>{options}\n'
            f"{pad}  </select>\n"
            f"{pad}</div>"
        )

    if "Signature" in field.value:
        return (
            f'{pad}<div class="form-group signature-field">\n'
            f"{pad}  <label>{label}:</label>\n"
            f'{pad}  <div class="signature-box">{_esc(field.value)}</div>\n'
            f"{pad}</div>"
        )

    if "address" in key:
        control = f'<textarea id="{fid}" name="{fid}" rows="3" placeholder="Enter {label}"></textarea>'
    elif "date" in key:
        control = f'<input type="date" id="{fid}" name="{fid}" />'
    elif "email" in key:
        control = f'<input type="email" id="{fid}" name="{fid}" placeholder="e.g., example@domain.com" />'
    elif "phone" in key or "code" in key:
        control = f'<input type="tel" id="{fid}" name="{fid}" placeholder="Enter {label}" />'
    else:
        control = f'<input type="text" id="{fid}" name="{fid}" placeholder="Enter {label}" />'

    return (
        f'{pad}<div class="form-group">\n'
        f'{pad}  <label for="{fid}">{label}:</label>\n'
        f"{pad}  {control}\n"
        f"{pad}</div>"
    )


def render_section(legend: str, section: Section, depth: int = 0) -> str:
    """Render a section as a fieldset."""
    pad = "  " * depth
    body = "\n".join(render_field(field, depth + 1) for field in section.fields)
    lines = [f"{pad}<fieldset>", f"{pad}  <legend>{_esc(legend)}</legend>"]
    if body:
        lines.append(body)
    lines.append(f"{pad}</fieldset>")
    return "\n".join(lines)


def _render_header(schema: FormSchema) -> str:
    details = schema.details
    if details is None:
        return f"      <h1>{_esc(DEFAULT_TITLE)}</h1>"
    subtitle = " - ".join(part for part in (details.academy_slogan, details.academy_type) if part)
    lines = [f"      <h1>{_esc(details.academy_name or schema.title)}</h1>"]
    if subtitle:
        lines.append(f"      <h2>{_esc(subtitle)}</h2>")
    lines.append(f"      <h3>{_esc(schema.title)}</h3>")
    return "\n".join(lines)


def _embed_json(data: Optional[Dict[str, Any]]) -> str:
    if data is None:
        return "null"
    # "</" would close the inline <script> element early
    return json.dumps(data, indent=2, ensure_ascii=False).replace("</", "<\\/")


def generate_html(schema: FormSchema, prefill: Optional[Dict[str, Any]] = None) -> str:
    sections = "\n".join(render_section(legend, section, depth=3) for legend, section in schema.ordered_sections())
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{_esc(schema.title)}</title>
  <link rel="stylesheet" href="form.css">
</head>
<body>
  <div class="form-container">
    <header>
{_render_header(schema)}
    </header>
    <form id="dynamicForm">
{sections}
      <button type="submit" id="saveButton">Submit &amp; Save Data</button>
    </form>
  </div>
  <script>
    // Initial user data for pre-filling (null when none was supplied)
    window.initialUserData = {_embed_json(prefill)};
  </script>
  <script src="form.js"></script>
</body>
</html>
"""


# ----------------------------------------------------------------------------
# JavaScript
# ----------------------------------------------------------------------------

def collect_field_ids(schema: FormSchema) -> List[str]:
    """Ids of every rendered value-bearing control, in render order."""
    ids: List[str] = []

    def walk(section: Section):
        for field in section.fields:
            if isinstance(field, Section):
                walk(field)
            elif isinstance(field, ChoiceField) or "Signature" not in field.value:
                fid = field_id(field.key)
                if fid not in ids:
                    ids.append(fid)

    for _, section in schema.ordered_sections():
        walk(section)
    return ids


def generate_js(schema: FormSchema) -> str:
    field_ids = json.dumps(collect_field_ids(schema), indent=2)
    return f"""/**
 * Dynamic Form Script
 * Pre-fills the form and saves submitted values as JSON.
 */

const FIELD_IDS = {field_ids};

document.addEventListener('DOMContentLoaded', () => {{
    const form = document.getElementById('dynamicForm');

    // 1. Pre-fill form with initialUserData if available
    if (window.initialUserData) {{
        for (const key in window.initialUserData) {{
            const element = document.getElementById(key);
            if (element) {{
                element.value = window.initialUserData[key];
            }}
        }}
    }}

    // 2. Handle form submission
    form.addEventListener('submit', function (e) {{
        e.preventDefault();
        const data = {{}};

        FIELD_IDS.forEach((id) => {{
            const element = document.getElementById(id);
            if (element) {{
                data[id] = element.value;
            }}
        }});

        console.log('Form Data Collected:', data);

        const dataJson = JSON.stringify(data, null, 2);
        const blob = new Blob([dataJson], {{ type: 'application/json' }});

        const link = document.createElement('a');
        link.href = URL.createObjectURL(blob);
        link.download = 'form-submission-' + new Date().toISOString().slice(0, 10) + '.json';
        document.body.appendChild(link);
        link.click();
        document.body.removeChild(link);

        alert('Form submitted and data saved successfully to ' + link.download);
    }});
}});
"""


# ----------------------------------------------------------------------------
# CSS
# ----------------------------------------------------------------------------

FORM_CSS = """/**
 * Dynamic Form Styles
 */
body {
  font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
  background-color: #f4f7f6;
  padding: 40px;
}
.form-container {
  max-width: 900px;
  margin: 0 auto;
  background: #ffffff;
  padding: 30px 40px;
  border-radius: 10px;
  box-shadow: 0 4px 12px rgba(0, 0, 0, 0.1);
}
header {
  text-align: center;
  margin-bottom: 30px;
  border-bottom: 2px solid #0056b3;
  padding-bottom: 10px;
}
h1 { color: #0056b3; font-size: 1.8em; margin: 5px 0; }
h2 { color: #333; font-size: 1.2em; font-weight: 400; margin: 5px 0; }
h3 { color: #666; font-size: 1em; font-weight: 300; margin: 5px 0; }

/* Form Sections */
fieldset {
  border: 1px solid #ddd;
  border-radius: 5px;
  padding: 20px;
  margin-bottom: 25px;
}
fieldset fieldset {
  margin: 10px 0 15px;
  background: #fafafa;
}
legend {
  font-size: 1.2em;
  font-weight: bold;
  color: #007bff;
  padding: 0 10px;
}
.form-group {
  margin-bottom: 15px;
  display: grid;
  grid-template-columns: 200px 1fr;
  align-items: center;
}
label {
  font-weight: 600;
  color: #555;
}
input[type="text"], input[type="email"], input[type="date"], input[type="tel"], select, textarea {
  width: 100%;
  padding: 10px;
  border: 1px solid #ccc;
  border-radius: 4px;
  box-sizing: border-box;
  transition: border-color 0.3s;
}
input:focus, select:focus, textarea:focus {
  border-color: #007bff;
  outline: none;
}
textarea {
  resize: vertical;
}

/* Signature Field Styling */
.signature-field {
  grid-template-columns: 1fr;
}
.signature-box {
  border: 1px dashed #aaa;
  padding: 20px;
  text-align: center;
  color: #999;
  font-style: italic;
  margin-top: 5px;
}

/* Submit Button */
#saveButton {
  display: block;
  width: 100%;
  padding: 12px;
  background-color: #28a745;
  color: white;
  border: none;
  border-radius: 5px;
  cursor: pointer;
  font-size: 1.1em;
  margin-top: 30px;
  transition: background-color 0.3s;
}
#saveButton:hover {
  background-color: #1e7e34;
}
"""


def generate_css() -> str:
    return FORM_CSS


def render(schema: Union[FormSchema, Dict[str, Any]], prefill: Optional[Dict[str, Any]] = None) -> CodeArtifactSet:
    """
    Render form markup, script and stylesheet.

    Args:
        schema: A FormSchema, or a parsed JSON template (validated here)
        prefill: Optional id -> value data embedded for pre-filling

    Returns:
        CodeArtifactSet(structure=html, behavior=js, style=css)
    """
    if not isinstance(schema, FormSchema):
        schema = FormSchema.from_dict(schema)
    if prefill is not None and not isinstance(prefill, dict):
        raise ValidationError("User data must be a JSON object")

    return CodeArtifactSet(
        structure=generate_html(schema, prefill),
        behavior=generate_js(schema),
        style=generate_css(),
    )
