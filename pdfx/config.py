"""
Configuration for the PDF translation pipeline

All settings come from the environment with sane defaults, see
PipelineConfig.from_env().

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .retry_handler import RetryConfig

logger = logging.getLogger("pdfx.config")

DEFAULT_STORAGE_DIR = ".pdfx_store"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_OCR_LANGUAGES = "eng+uzb+uzb_cyrl"
DEFAULT_OLLAMA_URL = "http://localhost:11434"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid integer %s=%r", name, raw)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid number %s=%r", name, raw)
        return default


@dataclass
class PipelineConfig:
    """Settings shared by the job manager, controller and its collaborators."""
    storage_dir: Path = field(default_factory=lambda: Path(DEFAULT_STORAGE_DIR))
    font_path: Optional[Path] = None

    # extraction / OCR
    ocr_min_words: int = 20
    ocr_languages: str = DEFAULT_OCR_LANGUAGES
    ocr_timeout: float = 300.0
    ocr_dpi: int = 300

    # translation
    backend: str = "openai"
    model: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_org_id: Optional[str] = None
    ollama_base_url: str = DEFAULT_OLLAMA_URL
    temperature: float = 0.2
    max_tokens: int = 4000
    request_timeout: float = 120.0
    max_chunk_size: int = 3000
    chunk_delay: float = 0.2
    retry: RetryConfig = field(default_factory=RetryConfig)

    # job orchestration
    flush_interval: int = 3
    max_concurrent_jobs: int = 2

    @property
    def uploads_dir(self) -> Path:
        return self.storage_dir / "uploads"

    @property
    def outputs_dir(self) -> Path:
        return self.storage_dir / "outputs"

    @property
    def database_path(self) -> Path:
        return self.storage_dir / "jobs.db"

    def ensure_folders(self) -> None:
        for path in (self.storage_dir, self.uploads_dir, self.outputs_dir):
            path.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        font_path = os.environ.get("PDFX_FONT_PATH")
        retry = RetryConfig(
            max_retries=_env_int("PDFX_MAX_RETRIES", RetryConfig.max_retries),
            initial_delay=_env_float("PDFX_RETRY_DELAY", RetryConfig.initial_delay),
        )
        return cls(
            storage_dir=Path(os.environ.get("PDFX_STORAGE_DIR", DEFAULT_STORAGE_DIR)),
            font_path=Path(font_path) if font_path else None,
            ocr_min_words=_env_int("PDFX_OCR_MIN_WORDS", 20),
            ocr_languages=os.environ.get("PDFX_OCR_LANGUAGES", DEFAULT_OCR_LANGUAGES),
            ocr_timeout=_env_float("PDFX_OCR_TIMEOUT", 300.0),
            backend=os.environ.get("PDFX_BACKEND", "openai").lower(),
            model=os.environ.get("PDFX_MODEL") or None,
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_org_id=os.environ.get("OPENAI_ORG_ID") or None,
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", DEFAULT_OLLAMA_URL),
            temperature=_env_float("PDFX_TEMPERATURE", 0.2),
            max_tokens=_env_int("PDFX_MAX_TOKENS", 4000),
            request_timeout=_env_float("PDFX_REQUEST_TIMEOUT", 120.0),
            max_chunk_size=_env_int("PDFX_MAX_CHUNK_SIZE", 3000),
            chunk_delay=_env_float("PDFX_CHUNK_DELAY", 0.2),
            retry=retry,
            flush_interval=max(1, _env_int("PDFX_FLUSH_INTERVAL", 3)),
            max_concurrent_jobs=max(1, _env_int("PDFX_MAX_JOBS", 2)),
        )
