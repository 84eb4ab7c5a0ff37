"""
Ollama Backend for the PDF translation pipeline
Local LLM alternative to OpenAI

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import asyncio
import logging
from typing import List

import requests

from .config import DEFAULT_OLLAMA_URL
from .errors import (
    ModelOverloadError,
    ModelTimeoutError,
    NetworkError,
    RateLimitError,
    TranslationError,
)
from .translation_prompts import build_messages, clean_translation

logger = logging.getLogger("pdfx.ollama")

DEFAULT_OLLAMA_MODEL = "qwen2.5:7b"


def check_ollama_installed(base_url: str = DEFAULT_OLLAMA_URL) -> bool:
    """Check if Ollama is running and accessible."""
    try:
        response = requests.get(f"{base_url}/api/tags", timeout=5)
        return response.status_code == 200
    except requests.RequestException:
        return False


def get_installed_models(base_url: str = DEFAULT_OLLAMA_URL) -> List[str]:
    """Returns list of installed Ollama models."""
    try:
        response = requests.get(f"{base_url}/api/tags", timeout=10)
        if response.status_code == 200:
            return [m["name"] for m in response.json().get("models", [])]
    except requests.RequestException as e:
        logger.warning("Could not get installed models: %s", e)
    return []


class OllamaTranslator:
    """Translation capability backed by a local Ollama server (/api/chat)."""

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str = DEFAULT_OLLAMA_URL,
        temperature: float = 0.2,
        max_tokens: int = 4000,
        timeout: float = 300.0,
        session: requests.Session = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.session = session or requests.Session()

    async def translate(self, text: str, target_language: str) -> str:
        if not text or not text.strip():
            return ""
        # requests is blocking
        return await asyncio.to_thread(self._translate_sync, text, target_language)

    def _translate_sync(self, text: str, target_language: str) -> str:
        try:
            response = self.session.post(
                f"{self.base_url}/api/chat",
                json={
                    "model": self.model,
                    "messages": build_messages(text, target_language),
                    "stream": False,
                    "options": {
                        "temperature": self.temperature,
                        "num_predict": self.max_tokens,
                    },
                },
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ModelTimeoutError(f"Ollama request timed out: {e}") from e
        except requests.ConnectionError as e:
            raise NetworkError(f"Ollama not reachable at {self.base_url}: {e}") from e
        except requests.RequestException as e:
            raise TranslationError(f"Ollama request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError("Ollama rate limit (HTTP 429)")
        if response.status_code >= 500:
            raise ModelOverloadError(f"Ollama server error: HTTP {response.status_code}")
        if response.status_code != 200:
            raise TranslationError(f"Ollama API error: HTTP {response.status_code}")

        try:
            content = response.json().get("message", {}).get("content", "")
        except ValueError as e:
            raise TranslationError(f"Ollama returned invalid JSON: {e}") from e

        return clean_translation(content)
