#!/usr/bin/env python3
"""
Document Studio - Main CLI Entry Point

Extract fields from a scanned PDF or image with Gemini, generate HTML/JS/CSS
from a JSON template, render dynamic forms, and ask questions about a document.

Usage:
    python main.py extract <file> [options]
    python main.py generate-code <template.json> --prompt "..."
    python main.py render-form <template.json> [--data data.json]
    python main.py ask <file> --question "..."
    python main.py clone <file.pdf> --fields fields.json
    python main.py serve

Examples:
    python main.py extract invoice.png --output-dir ./output
    python main.py generate-code form.json -p "Create a dashboard view"
"""

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config import AppConfig
from pipeline.code_generator import CODE_ARCHIVE, CodeGenerator, DEFAULT_CODE_PROMPT
from pipeline.composer import FIELD_EXTRACTION_INSTRUCTION, PromptComposer
from pipeline.errors import PipelineError
from pipeline.extractor import Extractor, ExtractorConfig
from pipeline.fields import flatten_fields, parse_field_json
from pipeline.form_renderer import FormSchema, render
from pipeline.packager import package
from pipeline.parser import FORM_FILES
from pipeline.pdf_cloner import clone_pdf
from pipeline.progress import ProgressRunner
from pipeline.uploads import load_document, load_json, load_json_text
from providers.base import GenerationProvider, UploadedDocument
from providers.gemini_provider import GeminiProvider

FORM_ARCHIVE = "dynamic-form-package.zip"


def generate_run_id(filename: str, kind: str) -> str:
    """
    Generate a unique run ID based on document name, job kind, and timestamp.

    Format: {doc_name}_{kind}_{YYYYMMDD_HHMMSS_ffffff}
    """
    doc_name = Path(filename or "upload").stem
    # Sanitize document name (remove special chars, limit length)
    doc_name = "".join(c if c.isalnum() or c == "_" else "_" for c in doc_name)[:50]
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    return f"{doc_name}_{kind}_{timestamp}"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Set up logging to the console (rich) and optionally to a file.

    Args:
        level: Console level when not verbose
        log_file: Optional path for a DEBUG-level log file
        verbose: Enable verbose (DEBUG) console logging

    Returns:
        Configured "doc_studio" logger
    """
    logger = logging.getLogger("doc_studio")
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers
    logger.handlers = []

    console_handler = RichHandler(show_path=False, rich_tracebacks=True)
    console_handler.setLevel(logging.DEBUG if verbose else level)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)

    return logger


@dataclass
class Services:
    """Explicitly wired components; one provider instance shared by all."""
    config: AppConfig
    provider: GenerationProvider
    extractor: Extractor
    composer: PromptComposer
    code_generator: CodeGenerator

    def new_runner(self) -> ProgressRunner:
        return ProgressRunner(
            tick_interval=self.config.tick_interval,
            finalize_delay=self.config.finalize_delay,
        )


def build_services(config: Optional[AppConfig] = None, provider: Optional[GenerationProvider] = None) -> Services:
    """Construct the provider once and hand it to every component."""
    config = config or AppConfig.from_env()
    provider = provider or GeminiProvider(config)
    composer = PromptComposer(provider)
    return Services(
        config=config,
        provider=provider,
        extractor=Extractor(provider, ExtractorConfig(dpi=config.pdf_dpi)),
        composer=composer,
        code_generator=CodeGenerator(composer),
    )


@dataclass
class ExtractionOutcome:
    """Result of one field-extraction run."""
    text: str
    raw_response: str
    fields: Dict[str, Any] = field(default_factory=dict)


def run_extraction(
    services: Services,
    document: UploadedDocument,
    instruction: str = FIELD_EXTRACTION_INSTRUCTION,
) -> ExtractionOutcome:
    """
    OCR the document, then ask Gemini for its fields as JSON.

    Steps run strictly in order: extraction, composition, field parsing.
    """
    logger = logging.getLogger("doc_studio.run")
    logger.info(f"Extracting text from {document.filename} ({document.mime_type}, {document.size} bytes)")
    text = services.extractor.extract_text(document)

    logger.info("Composing field extraction prompt")
    raw = services.composer.generate(instruction, text, structured=True)
    fields = parse_field_json(raw)
    logger.info(f"Parsed {len(fields)} top-level fields")
    return ExtractionOutcome(text=text, raw_response=raw, fields=fields)


def render_form_bundle(template: Any, prefill: Optional[Dict[str, Any]] = None) -> bytes:
    """Render a form template and package form.html/js/css."""
    artifacts = render(template, prefill)
    return package(artifacts.to_files(FORM_FILES), FORM_ARCHIVE)


def render_fields_bundle(fields: Dict[str, Any]) -> bytes:
    """Render a pre-filled form from extracted field data."""
    schema, prefill = FormSchema.from_field_data(fields)
    return render_form_bundle(schema, prefill)


def run_with_progress(console: Console, runner: ProgressRunner, description: str, task, artifact):
    """Drive a ProgressRunner and mirror its percentage in a rich progress bar."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task(description, total=100)
        if not runner.start(task, artifact):
            raise click.ClickException("Nothing to process")
        while not runner.wait(0.1):
            progress.update(bar, completed=runner.progress)
        progress.update(bar, completed=runner.progress)

    if runner.error is not None:
        raise runner.error
    return runner.result


def _open_document(path: str) -> UploadedDocument:
    with open(path, "rb") as f:
        return load_document(f, Path(path).name, None)


def _load_json_file(path: str) -> Any:
    with open(path, "rb") as f:
        return load_json(f, Path(path).name, None)


def _write(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--log-file', type=click.Path(dir_okay=False), default=None, help='Also write a DEBUG log here')
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_file: Optional[str]):
    """Gemini-powered document extraction and code generation."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = Console()
    setup_logging(log_file=Path(log_file) if log_file else None, verbose=verbose)


def _services(ctx: click.Context) -> Services:
    if "services" not in ctx.obj:
        try:
            ctx.obj["services"] = build_services()
        except ValueError as e:
            raise click.ClickException(str(e))
    return ctx.obj["services"]


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--prompt', '-p', default=FIELD_EXTRACTION_INSTRUCTION, show_default=True,
              help='Instruction sent along with the extracted text')
@click.option('--output-dir', '-o', type=click.Path(file_okay=False), default='./output',
              help='Output directory for results (default: ./output)')
@click.option('--bundle/--no-bundle', default=False, help='Also write a pre-filled form bundle')
@click.pass_context
def extract(ctx: click.Context, file_path: str, prompt: str, output_dir: str, bundle: bool):
    """
    Extract fields from a scanned PDF or image.

    FILE_PATH: Path to the PDF or image to process
    """
    console: Console = ctx.obj["console"]
    services = _services(ctx)
    run_id = generate_run_id(file_path, "extract")
    output_path = Path(output_dir) / run_id

    console.print(Panel.fit(
        "[bold blue]Document Field Extraction[/bold blue]\n"
        f"Processing: {file_path}\n"
        f"Model: {services.config.model_name}\n"
        f"Run ID: [cyan]{run_id}[/cyan]",
        border_style="blue"
    ))

    try:
        document = _open_document(file_path)
        outcome = run_with_progress(
            console,
            services.new_runner(),
            "[cyan]Extracting...",
            lambda doc: run_extraction(services, doc, prompt),
            document,
        )
    except PipelineError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    written = {
        "text": _write(output_path / "extracted.txt", outcome.text.encode("utf-8")),
        "fields": _write(output_path / "fields.json",
                         json.dumps(outcome.fields, indent=2, ensure_ascii=False).encode("utf-8")),
    }
    if bundle:
        written["bundle"] = _write(output_path / FORM_ARCHIVE, render_fields_bundle(outcome.fields))

    summary = Table(title="Extracted Fields", show_header=True)
    summary.add_column("Field", style="cyan")
    summary.add_column("Value", style="white")
    for key, value in flatten_fields(outcome.fields):
        summary.add_row(key, value)
    console.print(summary)

    console.print(f"[bold]Output Directory:[/bold] {output_path}")
    for output_type, path in written.items():
        console.print(f"  • {output_type}: {path.name}")


@cli.command('generate-code')
@click.argument('template_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--prompt', '-p', default=DEFAULT_CODE_PROMPT, show_default=True,
              help='Requirement for the generated page')
@click.option('--output', '-o', type=click.Path(dir_okay=False), default=CODE_ARCHIVE,
              help='Where to write the zip archive')
@click.pass_context
def generate_code(ctx: click.Context, template_path: str, prompt: str, output: str):
    """Generate index.html, script.js and style.css from a JSON template."""
    console: Console = ctx.obj["console"]
    services = _services(ctx)

    try:
        with open(template_path, "rb") as f:
            template_json = load_json_text(f, Path(template_path).name, None)
        bundle = run_with_progress(
            console,
            services.new_runner(),
            "[cyan]Generating code...",
            lambda text: services.code_generator.generate_bundle(text, prompt),
            template_json,
        )
    except PipelineError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    path = _write(Path(output), bundle.archive)
    console.print(f"[green]✓[/green] Wrote {path} ({len(bundle.archive)} bytes)")


@cli.command('render-form')
@click.argument('template_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--data', '-d', 'data_path', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Optional user data JSON for pre-filling')
@click.option('--output', '-o', type=click.Path(dir_okay=False), default=FORM_ARCHIVE,
              help='Where to write the zip archive')
@click.pass_context
def render_form(ctx: click.Context, template_path: str, data_path: Optional[str], output: str):
    """Render form.html, form.js and form.css from a form template (no API call)."""
    console: Console = ctx.obj["console"]
    try:
        template = _load_json_file(template_path)
        prefill = _load_json_file(data_path) if data_path else None
        archive = render_form_bundle(template, prefill)
    except PipelineError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    path = _write(Path(output), archive)
    console.print(f"[green]✓[/green] Wrote {path}")


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--question', '-q', required=True, help='Question about the document')
@click.pass_context
def ask(ctx: click.Context, file_path: str, question: str):
    """Answer a question using only the document's text."""
    console: Console = ctx.obj["console"]
    services = _services(ctx)
    try:
        if file_path.lower().endswith(".txt"):
            text = Path(file_path).read_text(encoding="utf-8")
        else:
            text = services.extractor.extract_text(_open_document(file_path))
        answer = services.composer.answer_question(text, question)
    except PipelineError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(Panel(answer, title="Answer", border_style="green"))


@cli.command()
@click.argument('pdf_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--fields', '-f', 'fields_path', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Field JSON to append as extra pages')
@click.option('--output', '-o', type=click.Path(dir_okay=False), default='cloned-document.pdf',
              help='Where to write the cloned PDF')
@click.pass_context
def clone(ctx: click.Context, pdf_path: str, fields_path: Optional[str], output: str):
    """Clone a PDF and append the given fields."""
    console: Console = ctx.obj["console"]
    try:
        fields = _load_json_file(fields_path) if fields_path else None
        data = clone_pdf(Path(pdf_path).read_bytes(), fields)
    except PipelineError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    path = _write(Path(output), data)
    console.print(f"[green]✓[/green] Wrote {path}")


@cli.command()
@click.option('--port', type=int, default=None, help='Port (default: PORT env or 5001)')
@click.option('--debug', is_flag=True, help='Flask debug mode')
@click.pass_context
def serve(ctx: click.Context, port: Optional[int], debug: bool):
    """Run the local web UI."""
    from app import create_app

    services = _services(ctx)
    app = create_app(services)
    app.run(host="0.0.0.0", port=port or services.config.port, debug=debug, threaded=True)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
