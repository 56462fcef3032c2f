#!/usr/bin/env python3
"""
Test Suite for the Gemini Provider and Configuration
Uses a stand-in SDK client, so no API credentials or network are needed.
"""

import os
import sys
from pathlib import Path
from types import SimpleNamespace

import httpx
from google.genai import errors as genai_errors

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config import AppConfig, DEFAULT_MODEL
from pipeline.errors import ExternalServiceError
from providers.base import UploadedDocument
from providers.gemini_provider import OCR_PROMPT, STRUCTURED_TEMPERATURE, GeminiProvider


def _response(text):
    part = SimpleNamespace(text=text)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


class FakeModels:
    """Captures generate_content calls; replays a response or raises."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def _provider(result=None, error=None):
    models = FakeModels(result, error)
    client = SimpleNamespace(models=models)
    return GeminiProvider(AppConfig(api_key="test-key"), client=client), models


def test_first_text():
    """candidates[0].content.parts[0].text or ''."""
    print("Testing response text extraction...")

    assert GeminiProvider.first_text(_response("  hello \n")) == "hello"
    assert GeminiProvider.first_text(SimpleNamespace(candidates=[])) == ""
    assert GeminiProvider.first_text(SimpleNamespace(candidates=None)) == ""
    assert GeminiProvider.first_text(SimpleNamespace(candidates=[SimpleNamespace(content=None)])) == ""
    assert GeminiProvider.first_text(_response(None)) == ""
    print("  ✓ Missing text yields empty string")


def test_extract_text_request():
    """OCR sends the fixed instruction plus inline image bytes."""
    print("\nTesting OCR request...")
    provider, models = _provider(_response("Total: 40"))

    assert provider.extract_text(b"\x89PNG", "image/png") == "Total: 40"
    assert len(models.calls) == 1
    call = models.calls[0]
    assert call["model"] == DEFAULT_MODEL
    parts = call["contents"][0].parts
    assert parts[0].text == OCR_PROMPT
    assert parts[1].inline_data.data == b"\x89PNG"
    assert parts[1].inline_data.mime_type == "image/png"
    print("  ✓ One request with text + inline data")


def test_generate_structured():
    print("\nTesting structured generation config...")
    provider, models = _provider(_response('{"a": 1}'))

    request = provider.build_request("Extract", structured_output=True)
    response = provider.generate(request)

    assert response.text == '{"a": 1}'
    assert response.model == DEFAULT_MODEL
    config = models.calls[0]["config"]
    assert config.response_mime_type == "application/json"
    assert config.temperature == STRUCTURED_TEMPERATURE
    print("  ✓ JSON MIME type and low temperature")


def test_generate_with_system_instruction_and_attachment():
    provider, models = _provider(_response("ok"))

    attachment = UploadedDocument(b"%PDF-1.4", "application/pdf", "a.pdf")
    request = provider.build_request(
        "Question?", temperature=0.2, system_instruction="Context", attachments=(attachment,)
    )
    provider.generate(request)

    call = models.calls[0]
    assert call["config"].temperature == 0.2
    assert call["config"].system_instruction == "Context"
    parts = call["contents"][0].parts
    assert parts[0].text == "Question?"
    assert parts[1].inline_data.mime_type == "application/pdf"


def test_api_error_mapped():
    """Non-success responses become ExternalServiceError with the status."""
    print("\nTesting API error mapping...")
    error = genai_errors.APIError(
        503, {"error": {"code": 503, "message": "The model is overloaded.", "status": "UNAVAILABLE"}}
    )
    provider, models = _provider(error=error)

    try:
        provider.extract_text(b"img", "image/png")
    except ExternalServiceError as e:
        assert e.status == "503 UNAVAILABLE"
        assert "The model is overloaded." in e.message
        assert e.http_status == 502
        print("  ✓ 503 UNAVAILABLE mapped")
    else:
        raise AssertionError("expected ExternalServiceError")
    assert len(models.calls) == 1


def test_transport_error_mapped():
    provider, _ = _provider(error=httpx.ConnectError("connection refused"))

    try:
        provider.generate(provider.build_request("hi"))
    except ExternalServiceError as e:
        assert "connection refused" in e.message
        assert e.status is None
    else:
        raise AssertionError("expected ExternalServiceError")


def test_missing_api_key():
    provider = GeminiProvider(AppConfig(api_key=""))
    try:
        provider.client
    except ValueError as e:
        assert "GOOGLE_API_KEY" in str(e)
    else:
        raise AssertionError("expected ValueError")


def test_config_from_env():
    """Environment variables override defaults; a missing key is an error."""
    print("\nTesting configuration...")
    names = ["GOOGLE_API_KEY", "GEMINI_API_KEY", "GEMINI_MODEL", "PORT", "PROGRESS_TICK_SECONDS", "LOG_LEVEL"]
    saved = {name: os.environ.get(name) for name in names}
    try:
        for name in names:
            os.environ.pop(name, None)

        try:
            AppConfig.from_env()
        except ValueError as e:
            assert "GOOGLE_API_KEY" in str(e)
            print("  ✓ Missing key rejected")
        else:
            raise AssertionError("expected ValueError")

        os.environ.update({
            "GEMINI_API_KEY": "k",
            "GEMINI_MODEL": "gemini-2.0-flash",
            "PORT": "8080",
            "PROGRESS_TICK_SECONDS": "0.05",
            "LOG_LEVEL": "debug",
        })
        config = AppConfig.from_env()
        assert config.api_key == "k"
        assert config.model_name == "gemini-2.0-flash"
        assert config.port == 8080
        assert config.tick_interval == 0.05
        assert config.log_level == "DEBUG"
        assert config.max_content_length == 25 * 1024 * 1024
        print("  ✓ Environment overrides applied")
    finally:
        for name, value in saved.items():
            if value is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = value


def main():
    """Run all tests."""
    print("=" * 60)
    print("Document Studio Providers - Component Tests")
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
