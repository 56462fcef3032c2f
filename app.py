#!/usr/bin/env python3
"""
Document Studio Local UI

Single-page Flask application: upload a PDF or image, watch simulated
progress while Gemini extracts its fields, edit the fields, then download a
cloned PDF or a pre-filled form bundle. Also generates HTML/JS/CSS from a
JSON template, renders dynamic forms, and answers questions about a text.
"""

import io
import json
import logging
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from flask import Flask, jsonify, request, send_file

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from main import (
    FORM_ARCHIVE,
    Services,
    build_services,
    generate_run_id,
    render_fields_bundle,
    render_form_bundle,
    run_extraction,
    setup_logging,
)
from pipeline.code_generator import DEFAULT_CODE_PROMPT, GeneratedBundle
from pipeline.composer import FIELD_EXTRACTION_INSTRUCTION
from pipeline.errors import PipelineError, RunnerBusyError, ValidationError
from pipeline.pdf_cloner import clone_pdf
from pipeline.progress import ProgressRunner
from pipeline.uploads import load_document, load_json, load_json_text, read_stream

logger = logging.getLogger("doc_studio.app")

# Finished jobs kept in memory (results include archives and document text)
MAX_JOBS = 50


# ============================================================================
# Job State Management
# ============================================================================

@dataclass
class Job:
    """State for a single background job."""
    run_id: str
    kind: str  # extract, generate-code
    filename: str
    runner: ProgressRunner
    created_at: str
    completed_at: Optional[str] = None
    result: Any = None
    error: Optional[str] = None

    @property
    def status(self) -> str:
        if self.runner.is_running and self.completed_at is None:
            return "running"
        if self.error is not None:
            return "failed"
        if self.completed_at is not None:
            return "completed"
        return "queued"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "kind": self.kind,
            "filename": self.filename,
            "status": self.status,
            "state": self.runner.state.value,
            "progress": self.runner.progress,
            "running": self.runner.is_running,
            "error": self.error,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }


class JobRegistry:
    """In-memory job table. One job may be in flight at a time."""

    def __init__(self, runner_factory: Callable[[], ProgressRunner], max_jobs: int = MAX_JOBS):
        self.lock = threading.Lock()
        self.max_jobs = max_jobs
        self._runner_factory = runner_factory
        self._jobs: Dict[str, Job] = {}

    def submit(self, kind: str, filename: str, task: Callable[[Any], Any], artifact: Any) -> Job:
        """Create a job and start its runner."""
        with self.lock:
            active = [job for job in self._jobs.values() if job.runner.is_running]
            if active:
                raise RunnerBusyError(f"Job {active[0].run_id} is still running")

            job = Job(
                run_id=generate_run_id(filename, kind),
                kind=kind,
                filename=filename,
                runner=self._runner_factory(),
                created_at=datetime.now().isoformat(),
            )
            self._jobs[job.run_id] = job

            started = job.runner.start(
                task,
                artifact,
                on_success=lambda result: self._complete(job, result=result),
                on_error=lambda exc: self._complete(job, error=exc),
            )
            if not started:
                del self._jobs[job.run_id]
                raise ValidationError("Nothing to process")
            self._evict()

        logger.info(f"Started {kind} job {job.run_id}")
        return job

    def _complete(self, job: Job, result: Any = None, error: Optional[BaseException] = None):
        with self.lock:
            job.result = result
            job.error = str(error) if error is not None else None
            job.completed_at = datetime.now().isoformat()
        if error is not None:
            logger.error(f"Job {job.run_id} failed: {error}")
        else:
            logger.info(f"Job {job.run_id} completed")

    def _evict(self):
        # Caller holds the lock; only finished jobs are dropped, oldest first
        finished = sorted(
            (job for job in self._jobs.values() if not job.runner.is_running),
            key=lambda j: j.created_at,
        )
        for job in finished[:max(0, len(self._jobs) - self.max_jobs)]:
            del self._jobs[job.run_id]
            logger.debug(f"Evicted job {job.run_id}")

    def get(self, run_id: str) -> Optional[Job]:
        with self.lock:
            return self._jobs.get(run_id)

    def update_result(self, run_id: str, **kwargs):
        """Update fields of a finished job's result."""
        with self.lock:
            job = self._jobs.get(run_id)
            if job is not None and job.result is not None:
                for key, value in kwargs.items():
                    if hasattr(job.result, key):
                        setattr(job.result, key, value)

    def all(self) -> List[Job]:
        """Get all jobs, newest first."""
        with self.lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)


# ============================================================================
# Application Factory
# ============================================================================

class _NotFound(Exception):
    """Unknown run id."""


def create_app(services: Optional[Services] = None) -> Flask:
    """Build the Flask app around explicitly constructed services."""
    services = services or build_services()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = services.config.max_content_length
    app.extensions["doc_studio"] = services

    jobs = JobRegistry(services.new_runner)
    app.extensions["doc_studio_jobs"] = jobs

    @app.errorhandler(PipelineError)
    def handle_pipeline_error(e: PipelineError):
        logger.warning(f"{type(e).__name__}: {e.message}")
        return jsonify({"error": e.message}), e.http_status

    @app.errorhandler(413)
    def handle_too_large(e):
        return jsonify({"error": f"File exceeds the {services.config.max_upload_mb} MB upload limit"}), 413

    def _job_or_404(run_id: str) -> Job:
        job = jobs.get(run_id)
        if job is None:
            raise _NotFound(run_id)
        return job

    @app.errorhandler(_NotFound)
    def handle_not_found(e: _NotFound):
        return jsonify({"error": "Run not found"}), 404

    def _upload(field_name: str):
        file = request.files.get(field_name)
        if file is None or file.filename == "":
            raise ValidationError("No file selected")
        return file

    # ------------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------------

    @app.route("/")
    def index():
        """Serve the main HTML page."""
        return HTML_TEMPLATE.replace("{{extract_prompt}}", FIELD_EXTRACTION_INSTRUCTION).replace(
            "{{code_prompt}}", DEFAULT_CODE_PROMPT
        )

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "model": services.config.model_name})

    # ------------------------------------------------------------------------
    # Field extraction
    # ------------------------------------------------------------------------

    @app.route("/extract", methods=["POST"])
    def start_extraction():
        """Upload a PDF or image and start field extraction."""
        file = _upload("document")
        document = load_document(file.stream, file.filename, file.mimetype)
        instruction = (request.form.get("prompt") or FIELD_EXTRACTION_INSTRUCTION).strip()

        job = jobs.submit(
            "extract",
            document.filename,
            lambda doc: run_extraction(services, doc, instruction),
            document,
        )
        return jsonify({"run_id": job.run_id, "status": job.status}), 202

    @app.route("/status/<run_id>")
    def get_status(run_id: str):
        """Get progress and outcome of a job."""
        return jsonify(_job_or_404(run_id).to_dict())

    @app.route("/runs")
    def list_runs():
        """List jobs (newest first)."""
        return jsonify({"runs": [job.to_dict() for job in jobs.all()]})

    @app.route("/fields/<run_id>", methods=["GET", "PUT"])
    def job_fields(run_id: str):
        """Inspect or replace the extracted fields of a finished job."""
        job = _job_or_404(run_id)
        if job.kind != "extract":
            raise ValidationError("Run has no extracted fields")
        if job.result is None:
            raise ValidationError("Extraction has not completed")

        if request.method == "PUT":
            fields = request.get_json(silent=True)
            if not isinstance(fields, dict):
                raise ValidationError("Fields must be a JSON object")
            jobs.update_result(run_id, fields=fields)
            logger.info(f"Fields of {run_id} edited ({len(fields)} top-level keys)")

        return jsonify({"run_id": run_id, "fields": job.result.fields, "text": job.result.text})

    @app.route("/clone", methods=["POST"])
    def clone():
        """Clone an uploaded PDF and append the (edited) fields."""
        file = _upload("pdf")
        if not file.filename.lower().endswith(".pdf") and file.mimetype != "application/pdf":
            raise ValidationError("File must be a PDF")

        fields = None
        run_id = request.form.get("run_id")
        if run_id:
            job = _job_or_404(run_id)
            fields = job.result.fields if job.result is not None and hasattr(job.result, "fields") else None
        elif request.form.get("fields"):
            try:
                fields = json.loads(request.form["fields"])
            except json.JSONDecodeError as e:
                raise ValidationError(f"Error parsing fields JSON: {e}") from e

        data = clone_pdf(read_stream(file.stream, file.filename), fields)
        name = request.form.get("filename") or "cloned-document"
        return send_file(io.BytesIO(data), mimetype="application/pdf", as_attachment=True,
                         download_name=f"{name}.pdf")

    # ------------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------------

    @app.route("/generate-code", methods=["POST"])
    def start_code_generation():
        """Upload a JSON template and start code generation."""
        file = _upload("template")
        template_json = load_json_text(file.stream, file.filename, file.mimetype)
        prompt = (request.form.get("prompt") or DEFAULT_CODE_PROMPT).strip()

        job = jobs.submit(
            "generate-code",
            file.filename,
            lambda text: services.code_generator.generate_bundle(text, prompt),
            template_json,
        )
        return jsonify({"run_id": job.run_id, "status": job.status}), 202

    @app.route("/download/<run_id>")
    def download(run_id: str):
        """Download the generated code zip, or a form bundle for extracted fields."""
        job = _job_or_404(run_id)
        if job.result is None:
            raise ValidationError(job.error or "Run has not completed")

        if isinstance(job.result, GeneratedBundle):
            data, name = job.result.archive, job.result.archive_name
        else:
            data, name = render_fields_bundle(job.result.fields), FORM_ARCHIVE
        return send_file(io.BytesIO(data), mimetype="application/zip", as_attachment=True, download_name=name)

    # ------------------------------------------------------------------------
    # Dynamic forms (no API call)
    # ------------------------------------------------------------------------

    @app.route("/render-form", methods=["POST"])
    def render_form():
        """Render form.html/js/css from a template and optional user data."""
        template_file = _upload("template")
        template = load_json(template_file.stream, template_file.filename, template_file.mimetype)

        prefill = None
        data_file = request.files.get("data")
        if data_file is not None and data_file.filename:
            prefill = load_json(data_file.stream, data_file.filename, data_file.mimetype)

        data = render_form_bundle(template, prefill)
        return send_file(io.BytesIO(data), mimetype="application/zip", as_attachment=True,
                         download_name=FORM_ARCHIVE)

    # ------------------------------------------------------------------------
    # Question answering
    # ------------------------------------------------------------------------

    @app.route("/api/gemini", methods=["POST"])
    def ask_document():
        """Answer a question using only the posted document text."""
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            payload = {}
        pdf_text = payload.get("pdfText")
        question = payload.get("question")
        if not pdf_text or not question:
            return jsonify({"error": "Missing PDF text or question."}), 400

        try:
            text = services.composer.answer_question(pdf_text, question)
        except Exception as e:
            logger.error(f"Question answering failed: {e}", exc_info=True)
            return jsonify({"error": "Internal Server Error"}), 500
        return jsonify({"text": text})

    @app.route("/api/chat", methods=["POST"])
    def chat():
        """Free-form message with an optional file attachment."""
        message = (request.form.get("msg") or "").strip()
        if not message:
            raise ValidationError("Message cannot be empty")

        attachment = None
        file = request.files.get("file")
        if file is not None and file.filename:
            attachment = load_document(file.stream, file.filename, file.mimetype)

        return jsonify({"text": services.composer.chat(message, attachment)})

    return app


# ============================================================================
# HTML Template
# ============================================================================

HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Document Studio</title>
    <style>
        :root {
            --bg-primary: #0f172a;
            --bg-secondary: #1e293b;
            --bg-tertiary: #334155;
            --text-primary: #f1f5f9;
            --text-secondary: #94a3b8;
            --accent: #3b82f6;
            --success: #22c55e;
            --error: #ef4444;
            --border: #475569;
        }
        * { box-sizing: border-box; margin: 0; padding: 0; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;
            background: var(--bg-primary);
            color: var(--text-primary);
            line-height: 1.6;
        }
        .top-header {
            padding: 1rem 2rem;
            border-bottom: 1px solid var(--border);
            background: var(--bg-secondary);
        }
        .app-title { font-size: 1.25rem; font-weight: 600; }
        .app-subtitle { font-size: 0.85rem; color: var(--text-secondary); }
        .grid {
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(420px, 1fr));
            gap: 1.25rem;
            padding: 1.5rem 2rem;
        }
        .card {
            background: var(--bg-secondary);
            border: 1px solid var(--border);
            border-radius: 8px;
            padding: 1.25rem;
        }
        .card h2 { font-size: 1rem; margin-bottom: 0.75rem; }
        label { display: block; font-size: 0.8rem; color: var(--text-secondary); margin: 0.6rem 0 0.3rem; }
        input[type="file"], textarea, input[type="text"] {
            width: 100%;
            padding: 0.5rem;
            background: var(--bg-tertiary);
            border: 1px solid var(--border);
            border-radius: 6px;
            color: var(--text-primary);
        }
        textarea { min-height: 80px; font-family: inherit; }
        textarea.code { min-height: 220px; font-family: monospace; font-size: 0.8rem; }
        button {
            margin-top: 0.75rem;
            padding: 0.55rem 1rem;
            background: var(--accent);
            border: none;
            border-radius: 6px;
            color: white;
            cursor: pointer;
        }
        button:disabled { opacity: 0.5; cursor: not-allowed; }
        .progress { height: 8px; background: var(--bg-tertiary); border-radius: 4px; margin-top: 0.75rem; overflow: hidden; display: none; }
        .progress.visible { display: block; }
        .progress-bar { height: 100%; width: 0; background: var(--accent); transition: width 0.15s; }
        .status { font-size: 0.8rem; margin-top: 0.5rem; color: var(--text-secondary); }
        .status.error { color: var(--error); }
        .status.ok { color: var(--success); }
        pre { white-space: pre-wrap; font-size: 0.85rem; margin-top: 0.5rem; }
    </style>
</head>
<body>
    <div class="top-header">
        <div class="app-title">Document Studio</div>
        <div class="app-subtitle">Gemini OCR, field editing, code and form generation</div>
    </div>

    <div class="grid">
        <div class="card">
            <h2>Extract Fields</h2>
            <label for="document">PDF or image</label>
            <input type="file" id="document" accept=".pdf,image/*">
            <label for="extractPrompt">Instruction</label>
            <textarea id="extractPrompt">{{extract_prompt}}</textarea>
            <button id="extractBtn">Process</button>
            <div class="progress" id="extractProgress"><div class="progress-bar"></div></div>
            <div class="status" id="extractStatus"></div>
            <label for="fields">Fields (editable JSON)</label>
            <textarea id="fields" class="code"></textarea>
            <button id="saveFieldsBtn" disabled>Save Fields</button>
            <button id="bundleBtn" disabled>Download Form Bundle</button>
            <button id="cloneBtn" disabled>Download Cloned PDF</button>
        </div>

        <div class="card">
            <h2>Generate Code from JSON Template</h2>
            <label for="template">JSON template</label>
            <input type="file" id="template" accept=".json,application/json">
            <label for="codePrompt">Requirement</label>
            <textarea id="codePrompt">{{code_prompt}}</textarea>
            <button id="codeBtn">Generate &amp; Download</button>
            <div class="progress" id="codeProgress"><div class="progress-bar"></div></div>
            <div class="status" id="codeStatus"></div>
        </div>

        <div class="card">
            <h2>Dynamic Form Generator</h2>
            <label for="formTemplate">Form template JSON</label>
            <input type="file" id="formTemplate" accept=".json,application/json">
            <label for="formData">User data JSON (optional, for pre-fill)</label>
            <input type="file" id="formData" accept=".json,application/json">
            <button id="formBtn">Generate Form ZIP</button>
            <div class="status" id="formStatus"></div>
        </div>

        <div class="card">
            <h2>Ask the Document</h2>
            <label for="question">Question (uses the extracted text)</label>
            <input type="text" id="question">
            <button id="askBtn">Ask</button>
            <pre id="answer"></pre>
        </div>
    </div>

    <script>
        const state = { extractRun: null, extractText: '' };

        function setStatus(id, message, kind) {
            const el = document.getElementById(id);
            el.textContent = message;
            el.className = 'status' + (kind ? ' ' + kind : '');
        }

        async function jsonOrThrow(response) {
            const data = await response.json();
            if (!response.ok) throw new Error(data.error || response.statusText);
            return data;
        }

        async function downloadResponse(response, fallbackName) {
            if (!response.ok) {
                const data = await response.json();
                throw new Error(data.error || response.statusText);
            }
            const blob = await response.blob();
            const disposition = response.headers.get('Content-Disposition') || '';
            const match = disposition.match(/filename="?([^";]+)"?/);
            const link = document.createElement('a');
            link.href = URL.createObjectURL(blob);
            link.download = match ? match[1] : fallbackName;
            document.body.appendChild(link);
            link.click();
            document.body.removeChild(link);
        }

        function pollRun(runId, progressId, onDone, onError) {
            const container = document.getElementById(progressId);
            const bar = container.querySelector('.progress-bar');
            container.classList.add('visible');
            const timer = setInterval(async () => {
                try {
                    const run = await jsonOrThrow(await fetch('/status/' + runId));
                    bar.style.width = run.progress + '%';
                    if (!run.running) {
                        clearInterval(timer);
                        container.classList.remove('visible');
                        bar.style.width = '0';
                        run.error ? onError(new Error(run.error)) : onDone(run);
                    }
                } catch (err) {
                    clearInterval(timer);
                    container.classList.remove('visible');
                    onError(err);
                }
            }, 150);
        }

        document.getElementById('extractBtn').addEventListener('click', async () => {
            const file = document.getElementById('document').files[0];
            if (!file) return;
            const button = document.getElementById('extractBtn');
            const body = new FormData();
            body.append('document', file);
            body.append('prompt', document.getElementById('extractPrompt').value);
            button.disabled = true;
            setStatus('extractStatus', 'Processing...');
            try {
                const run = await jsonOrThrow(await fetch('/extract', { method: 'POST', body }));
                state.extractRun = run.run_id;
                pollRun(run.run_id, 'extractProgress', async () => {
                    const data = await jsonOrThrow(await fetch('/fields/' + state.extractRun));
                    state.extractText = data.text;
                    document.getElementById('fields').value = JSON.stringify(data.fields, null, 2);
                    ['saveFieldsBtn', 'bundleBtn', 'cloneBtn'].forEach(id => document.getElementById(id).disabled = false);
                    setStatus('extractStatus', 'Extraction complete.', 'ok');
                    button.disabled = false;
                }, (err) => {
                    setStatus('extractStatus', 'Processing error: ' + err.message, 'error');
                    button.disabled = false;
                });
            } catch (err) {
                setStatus('extractStatus', err.message, 'error');
                button.disabled = false;
            }
        });

        document.getElementById('saveFieldsBtn').addEventListener('click', async () => {
            try {
                const fields = JSON.parse(document.getElementById('fields').value);
                await jsonOrThrow(await fetch('/fields/' + state.extractRun, {
                    method: 'PUT',
                    headers: { 'Content-Type': 'application/json' },
                    body: JSON.stringify(fields),
                }));
                setStatus('extractStatus', 'Fields saved.', 'ok');
            } catch (err) {
                setStatus('extractStatus', err.message, 'error');
            }
        });

        document.getElementById('bundleBtn').addEventListener('click', async () => {
            try {
                await downloadResponse(await fetch('/download/' + state.extractRun), 'dynamic-form-package.zip');
            } catch (err) {
                setStatus('extractStatus', err.message, 'error');
            }
        });

        document.getElementById('cloneBtn').addEventListener('click', async () => {
            const file = document.getElementById('document').files[0];
            if (!file || !file.name.toLowerCase().endsWith('.pdf')) {
                setStatus('extractStatus', 'Select a PDF to clone.', 'error');
                return;
            }
            const body = new FormData();
            body.append('pdf', file);
            body.append('run_id', state.extractRun);
            try {
                await downloadResponse(await fetch('/clone', { method: 'POST', body }), 'cloned-document.pdf');
            } catch (err) {
                setStatus('extractStatus', err.message, 'error');
            }
        });

        document.getElementById('codeBtn').addEventListener('click', async () => {
            const file = document.getElementById('template').files[0];
            if (!file) {
                setStatus('codeStatus', 'Please upload a dynamic JSON template file.', 'error');
                return;
            }
            const button = document.getElementById('codeBtn');
            const body = new FormData();
            body.append('template', file);
            body.append('prompt', document.getElementById('codePrompt').value);
            button.disabled = true;
            setStatus('codeStatus', 'Generating...');
            try {
                const run = await jsonOrThrow(await fetch('/generate-code', { method: 'POST', body }));
                pollRun(run.run_id, 'codeProgress', async () => {
                    await downloadResponse(await fetch('/download/' + run.run_id), 'gemini-generated-code.zip');
                    setStatus('codeStatus', 'Code generated.', 'ok');
                    button.disabled = false;
                }, (err) => {
                    setStatus('codeStatus', 'Generation error: ' + err.message, 'error');
                    button.disabled = false;
                });
            } catch (err) {
                setStatus('codeStatus', err.message, 'error');
                button.disabled = false;
            }
        });

        document.getElementById('formBtn').addEventListener('click', async () => {
            const template = document.getElementById('formTemplate').files[0];
            if (!template) {
                setStatus('formStatus', 'Please upload a valid Form Template JSON first.', 'error');
                return;
            }
            const body = new FormData();
            body.append('template', template);
            const data = document.getElementById('formData').files[0];
            if (data) body.append('data', data);
            setStatus('formStatus', 'Generating files...');
            try {
                await downloadResponse(await fetch('/render-form', { method: 'POST', body }), 'dynamic-form-package.zip');
                setStatus('formStatus', 'Successfully generated and saved dynamic-form-package.zip.', 'ok');
            } catch (err) {
                setStatus('formStatus', err.message, 'error');
            }
        });

        document.getElementById('askBtn').addEventListener('click', async () => {
            const question = document.getElementById('question').value;
            try {
                const data = await jsonOrThrow(await fetch('/api/gemini', {
                    method: 'POST',
                    headers: { 'Content-Type': 'application/json' },
                    body: JSON.stringify({ pdfText: state.extractText, question }),
                }));
                document.getElementById('answer').textContent = data.text;
            } catch (err) {
                document.getElementById('answer').textContent = err.message;
            }
        });
    </script>
</body>
</html>
"""


if __name__ == "__main__":
    services = build_services()
    setup_logging(level=services.config.log_level)
    application = create_app(services)
    print(f"Starting Document Studio on http://localhost:{services.config.port}")
    application.run(host="0.0.0.0", port=services.config.port, debug=False, threaded=True)
