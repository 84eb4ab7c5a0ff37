#!/usr/bin/env python3
"""
OpenAI API Backend for the PDF translation pipeline
© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""

import logging
import os
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from .config import DEFAULT_MODEL
from .errors import (
    ModelOverloadError,
    ModelTimeoutError,
    NetworkError,
    RateLimitError,
    TranslationError,
)
from .translation_prompts import build_messages, clean_translation

logger = logging.getLogger("pdfx.openai")


def _retry_after(error: Any) -> Optional[float]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def map_openai_error(error: Exception) -> Exception:
    """Translate SDK exceptions into the pipeline's error taxonomy."""
    if isinstance(error, openai.APITimeoutError):
        return ModelTimeoutError(f"OpenAI request timed out: {error}")
    if isinstance(error, openai.APIConnectionError):
        return NetworkError(f"OpenAI connection error: {error}")
    if isinstance(error, openai.RateLimitError):
        return RateLimitError(f"OpenAI rate limit: {error}", retry_after=_retry_after(error))
    if isinstance(error, openai.InternalServerError):
        return ModelOverloadError(f"OpenAI server error: {error}")
    if isinstance(error, openai.APIStatusError):
        return TranslationError(f"OpenAI error {error.status_code}: {error}")
    return TranslationError(f"OpenAI error: {error}")


class OpenAITranslator:
    """
    Translation capability backed by OpenAI chat completions.

    translate(text, target_language) -> translated text. Errors are raised
    as TranslationError subclasses, never swallowed.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.2,
        max_tokens: int = 4000,
        api_key: Optional[str] = None,
        organization: Optional[str] = None,
        timeout: float = 120.0,
    ):
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._organization = organization
        self.timeout = timeout

    @property
    def client(self) -> AsyncOpenAI:
        # created on first use
        if self._client is None:
            api_key = self._api_key or os.environ.get("OPENAI_API_KEY", "")
            if not api_key:
                raise TranslationError("OpenAI API key not set. Set OPENAI_API_KEY environment variable.")
            self._client = AsyncOpenAI(
                api_key=api_key,
                organization=self._organization,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def translate(self, text: str, target_language: str) -> str:
        if not text or not text.strip():
            return ""

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(text, target_language),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            raise map_openai_error(e) from e

        if not response.choices:
            raise TranslationError("OpenAI returned no choices")

        raw = response.choices[0].message.content or ""
        result = clean_translation(raw)
        logger.debug("Translated %d -> %d characters", len(text), len(result))
        return result
