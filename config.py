"""
Application configuration loaded from environment variables (.env supported).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_MODEL = "gemini-2.5-flash"


@dataclass
class AppConfig:
    """Settings shared by the CLI and the web app."""
    api_key: str
    model_name: str = DEFAULT_MODEL
    base_url: Optional[str] = None  # Override the Gemini endpoint (proxies, tests)
    timeout_ms: int = 300_000
    pdf_dpi: int = 200  # DPI for PDF page rasterization before OCR
    port: int = 5001
    max_upload_mb: int = 25
    tick_interval: float = 0.15  # Seconds between simulated progress ticks
    finalize_delay: float = 0.5  # Seconds the 100% state stays visible
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Build the configuration from the environment.

        Raises:
            ValueError: if no API key is configured
        """
        load_dotenv()

        api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("Missing GOOGLE_API_KEY in environment variables")

        return cls(
            api_key=api_key,
            model_name=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
            base_url=os.getenv("GEMINI_BASE_URL") or None,
            timeout_ms=int(os.getenv("GEMINI_TIMEOUT_MS", 300_000)),
            pdf_dpi=int(os.getenv("PDF_DPI", 200)),
            port=int(os.getenv("PORT", 5001)),
            max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", 25)),
            tick_interval=float(os.getenv("PROGRESS_TICK_SECONDS", 0.15)),
            finalize_delay=float(os.getenv("PROGRESS_FINALIZE_SECONDS", 0.5)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def max_content_length(self) -> int:
        return self.max_upload_mb * 1024 * 1024
