#!/usr/bin/env python3
"""
Test Suite for the Document Studio Web App
Drives the Flask routes through the test client with a canned provider.
"""

import io
import json
import sys
import threading
import time
import zipfile
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from app import create_app
from config import AppConfig
from main import build_services
from pipeline.errors import ExternalServiceError
from providers.base import GenerationProvider, GenerationResponse

CODE_REPLY = "<html_code><h1>Card</h1></html_code><js_code>init();</js_code><css_code>h1{}</css_code>"


class FakeProvider(GenerationProvider):
    """Answers OCR and generation calls with canned text."""

    def __init__(self, ocr_text="Name: Ada", reply='{"name": "Ada", "city": "London"}', error=None, gate=None):
        super().__init__(name="fake", model_name="fake-model")
        self.ocr_text = ocr_text
        self.reply = reply
        self.error = error
        self.gate = gate
        self.requests = []

    def extract_text(self, content, mime_type):
        return self.ocr_text

    def generate(self, request):
        self.requests.append(request)
        if self.gate is not None:
            self.gate.wait(2)
        if self.error is not None:
            raise self.error
        return GenerationResponse(text=self.reply, model=request.model)


def _client(provider=None):
    config = AppConfig(api_key="test-key", tick_interval=0.01, finalize_delay=0)
    services = build_services(config, provider or FakeProvider())
    app = create_app(services)
    app.config["TESTING"] = True
    return app.test_client()


def _png_bytes():
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (30, 30), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


def _pdf_bytes():
    import fitz  # PyMuPDF

    doc = fitz.open()
    doc.new_page(width=200, height=200).insert_text((20, 40), "Source page")
    data = doc.tobytes()
    doc.close()
    return data


def _wait_for(client, run_id, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        status = client.get(f"/status/{run_id}").get_json()
        if not status["running"] and status["completed_at"]:
            return status
        time.sleep(0.02)
    raise AssertionError(f"run {run_id} did not finish")


def _extract(client):
    response = client.post(
        "/extract",
        data={"document": (io.BytesIO(_png_bytes()), "scan.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 202, response.get_json()
    return response.get_json()["run_id"]


def test_index_and_health():
    print("Testing index and health...")
    client = _client()

    page = client.get("/")
    assert page.status_code == 200
    assert b"Document Studio" in page.data
    assert client.get("/health").get_json() == {"status": "ok", "model": "gemini-2.5-flash"}
    print("  ✓ Pages served")


def test_extraction_flow():
    """Upload, poll to completion, read and edit fields, download a bundle."""
    print("\nTesting extraction flow...")
    client = _client()

    run_id = _extract(client)
    status = _wait_for(client, run_id)
    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert [run["run_id"] for run in client.get("/runs").get_json()["runs"]] == [run_id]
    print("  ✓ Run completed at 100%")

    fields = client.get(f"/fields/{run_id}").get_json()
    assert fields["fields"] == {"name": "Ada", "city": "London"}
    assert fields["text"] == "Name: Ada"

    edited = client.put(f"/fields/{run_id}", json={"name": "Ada Lovelace"})
    assert edited.status_code == 200
    assert client.get(f"/fields/{run_id}").get_json()["fields"] == {"name": "Ada Lovelace"}
    print("  ✓ Fields edited")

    download = client.get(f"/download/{run_id}")
    assert download.status_code == 200
    with zipfile.ZipFile(io.BytesIO(download.data)) as archive:
        assert archive.namelist() == ["form.html", "form.js", "form.css"]
        assert "Ada Lovelace" in archive.read("form.html").decode("utf-8")
    print("  ✓ Pre-filled form bundle downloaded")


def test_extraction_rejects_bad_upload():
    client = _client()

    missing = client.post("/extract", data={}, content_type="multipart/form-data")
    assert missing.status_code == 400
    assert missing.get_json() == {"error": "No file selected"}

    wrong = client.post(
        "/extract",
        data={"document": (io.BytesIO(b"hello"), "notes.txt")},
        content_type="multipart/form-data",
    )
    assert wrong.status_code == 400


def test_failed_run_reports_error():
    print("\nTesting failed run...")
    client = _client(FakeProvider(error=ExternalServiceError("Gemini API error: 503", status="503")))

    run_id = _extract(client)
    status = _wait_for(client, run_id)
    assert status["status"] == "failed"
    assert "503" in status["error"]
    assert status["progress"] == 100
    assert client.get(f"/download/{run_id}").status_code == 400
    print("  ✓ Error surfaced in status")


def test_second_job_rejected_while_busy():
    gate = threading.Event()
    client = _client(FakeProvider(gate=gate))

    run_id = _extract(client)
    busy = client.post(
        "/extract",
        data={"document": (io.BytesIO(_png_bytes()), "other.png")},
        content_type="multipart/form-data",
    )
    assert busy.status_code == 409
    gate.set()
    _wait_for(client, run_id)


def test_unknown_run():
    client = _client()
    assert client.get("/status/nope").status_code == 404
    assert client.get("/download/nope").status_code == 404


def test_code_generation_flow():
    print("\nTesting code generation flow...")
    provider = FakeProvider(reply=CODE_REPLY)
    client = _client(provider)

    response = client.post(
        "/generate-code",
        data={"template": (io.BytesIO(b'{"title": "Card"}'), "card.json"), "prompt": "Make a card"},
        content_type="multipart/form-data",
    )
    assert response.status_code == 202
    run_id = response.get_json()["run_id"]
    assert _wait_for(client, run_id)["status"] == "completed"
    assert '"Make a card"' in provider.requests[0].prompt

    download = client.get(f"/download/{run_id}")
    assert download.status_code == 200
    assert "gemini-generated-code.zip" in download.headers["Content-Disposition"]
    with zipfile.ZipFile(io.BytesIO(download.data)) as archive:
        assert archive.read("gemini-generated-code/index.html") == b"<h1>Card</h1>"
    print("  ✓ Zip with index.html, script.js, style.css")


def test_code_generation_incomplete_response():
    client = _client(FakeProvider(reply="<html_code>X</html_code><js_code>Y</js_code>"))

    response = client.post(
        "/generate-code",
        data={"template": (io.BytesIO(b"{}"), "t.json")},
        content_type="multipart/form-data",
    )
    status = _wait_for(client, response.get_json()["run_id"])
    assert status["status"] == "failed"
    assert "css_code" in status["error"]


def test_code_generation_rejects_non_json():
    client = _client()
    response = client.post(
        "/generate-code",
        data={"template": (io.BytesIO(b"<svg/>"), "logo.svg")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json() == {"error": "Please select a valid JSON file."}


def test_render_form():
    print("\nTesting form rendering route...")
    client = _client()
    template = {"general_fields": {"full_name": "text"}, "signature_fields": {"sig": "Signature"}}

    response = client.post(
        "/render-form",
        data={
            "template": (io.BytesIO(json.dumps(template).encode()), "form.json"),
            "data": (io.BytesIO(b'{"full-name": "Ada"}'), "data.json"),
        },
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.data)) as archive:
        html = archive.read("form.html").decode("utf-8")
    assert 'id="full-name"' in html
    assert '"full-name": "Ada"' in html
    print("  ✓ Form bundle with embedded user data")

    bad = client.post(
        "/render-form",
        data={"template": (io.BytesIO(b'{"section": {"age": 3}}'), "form.json")},
        content_type="multipart/form-data",
    )
    assert bad.status_code == 400


def test_clone_with_run_fields():
    import fitz  # PyMuPDF

    client = _client()
    run_id = _extract(client)
    _wait_for(client, run_id)

    response = client.post(
        "/clone",
        data={"pdf": (io.BytesIO(_pdf_bytes()), "source.pdf"), "run_id": run_id},
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    doc = fitz.open(stream=response.data, filetype="pdf")
    assert doc.page_count == 2
    assert "city: London" in doc[1].get_text()
    doc.close()


def test_clone_rejects_non_object_fields():
    client = _client()

    response = client.post(
        "/clone",
        data={"pdf": (io.BytesIO(_pdf_bytes()), "source.pdf"), "fields": "[1, 2]"},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json() == {"error": "Fields must be a JSON object"}


def test_registry_evicts_oldest_finished_jobs():
    """Only the newest finished jobs are kept once the cap is reached."""
    from app import JobRegistry
    from pipeline.progress import ProgressRunner

    registry = JobRegistry(lambda: ProgressRunner(tick_interval=0.005, finalize_delay=0), max_jobs=2)
    run_ids = []
    for name in ("a.png", "b.png", "c.png"):
        job = registry.submit("extract", name, lambda artifact: artifact, name)
        assert job.runner.wait(5)
        run_ids.append(job.run_id)

    assert registry.get(run_ids[0]) is None
    assert [job.run_id for job in registry.all()] == [run_ids[2], run_ids[1]]


def test_ask_document():
    print("\nTesting question answering...")
    provider = FakeProvider(reply="The fee is 40.")
    client = _client(provider)

    answer = client.post("/api/gemini", json={"pdfText": "Fee: 40", "question": "What is the fee?"})
    assert answer.status_code == 200
    assert answer.get_json() == {"text": "The fee is 40."}
    assert "Fee: 40" in provider.requests[0].system_instruction

    missing = client.post("/api/gemini", json={"question": "What?"})
    assert missing.status_code == 400
    assert missing.get_json() == {"error": "Missing PDF text or question."}
    array_body = client.post("/api/gemini", json=["Fee: 40", "What is the fee?"])
    assert array_body.status_code == 400
    assert array_body.get_json() == {"error": "Missing PDF text or question."}
    print("  ✓ Answer returned, missing input rejected")

    failing = _client(FakeProvider(error=ExternalServiceError("down")))
    broken = failing.post("/api/gemini", json={"pdfText": "x", "question": "y"})
    assert broken.status_code == 500
    assert broken.get_json() == {"error": "Internal Server Error"}


def test_chat():
    provider = FakeProvider(reply="Hello!")
    client = _client(provider)

    response = client.post(
        "/api/chat",
        data={"msg": "Describe this", "file": (io.BytesIO(_png_bytes()), "photo.png")},
        content_type="multipart/form-data",
    )
    assert response.get_json() == {"text": "Hello!"}
    assert provider.requests[0].attachments[0].mime_type == "image/png"

    empty = client.post("/api/chat", data={"msg": " "}, content_type="multipart/form-data")
    assert empty.status_code == 400


def main():
    """Run all tests."""
    print("=" * 60)
    print("Document Studio Web App - Route Tests")
    print("=" * 60)

    tests = [value for name, value in sorted(globals().items()) if name.startswith("test_") and callable(value)]
    failures = 0

    for test in tests:
        try:
            test()
        except Exception as e:
            print(f"\n✗ {test.__name__} failed: {type(e).__name__}: {e}")
            failures += 1

    print("\n" + "=" * 60)
    print("✓ ALL TESTS PASSED" if failures == 0 else f"✗ {failures} TEST(S) FAILED")
    print("=" * 60)
    return 0 if failures == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
