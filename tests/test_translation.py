"""
Unit Tests - translation backends, prompts and retry handling

Run with: pytest tests/test_translation.py -v
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
import requests

from pdfx.errors import (
    ModelOverloadError,
    ModelTimeoutError,
    NetworkError,
    RateLimitError,
    TranslationError,
)
from pdfx.ollama_backend import OllamaTranslator
from pdfx.openai_backend import OpenAITranslator, map_openai_error
from pdfx.retry_handler import (
    RetryConfig,
    RetryStrategy,
    calculate_delay,
    call_with_retry,
    classify_error,
)
from pdfx.translation_prompts import build_messages, clean_translation

API_URL = "https://api.openai.com/v1/chat/completions"


def completion(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def mock_client(result=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=result, side_effect=error)
    return client


# =============================================================================
# OPENAI BACKEND TESTS
# =============================================================================

class TestOpenAITranslator:
    """Tests for openai_backend.py"""

    def test_translates_text(self):
        client = mock_client(completion("Bonjour le monde"))
        translator = OpenAITranslator(client=client, model="gpt-4o-mini")

        result = asyncio.run(translator.translate("Hello world", "French"))

        assert result == "Bonjour le monde"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"][1] == {"role": "user", "content": "Hello world"}
        assert "French" in kwargs["messages"][0]["content"]

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
    def test_empty_input_makes_no_call(self, text):
        client = mock_client(completion("should not be used"))
        translator = OpenAITranslator(client=client)

        assert asyncio.run(translator.translate(text, "French")) == ""
        client.chat.completions.create.assert_not_called()

    def test_answer_is_cleaned(self):
        client = mock_client(completion("Here is the translation:\n\nBonjour"))
        translator = OpenAITranslator(client=client)

        assert asyncio.run(translator.translate("Hello", "French")) == "Bonjour"

    def test_no_choices_raises(self):
        response = MagicMock()
        response.choices = []
        translator = OpenAITranslator(client=mock_client(response))

        with pytest.raises(TranslationError):
            asyncio.run(translator.translate("Hello", "French"))

    def test_sdk_errors_are_mapped(self):
        request = httpx.Request("POST", API_URL)
        translator = OpenAITranslator(client=mock_client(error=openai.APITimeoutError(request=request)))

        with pytest.raises(ModelTimeoutError):
            asyncio.run(translator.translate("Hello", "French"))

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        translator = OpenAITranslator(api_key=None)

        with pytest.raises(TranslationError, match="API key"):
            asyncio.run(translator.translate("Hello", "French"))


class TestOpenAIErrorMapping:
    """SDK exceptions to pipeline errors."""

    def _response(self, status, headers=None):
        return httpx.Response(status, request=httpx.Request("POST", API_URL), headers=headers)

    def test_rate_limit_with_retry_after(self):
        error = openai.RateLimitError(
            "slow down", response=self._response(429, {"retry-after": "7"}), body=None
        )
        mapped = map_openai_error(error)

        assert isinstance(mapped, RateLimitError)
        assert mapped.retry_after == 7.0

    def test_server_error(self):
        error = openai.InternalServerError("boom", response=self._response(500), body=None)
        assert isinstance(map_openai_error(error), ModelOverloadError)

    def test_connection_error(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", API_URL))
        assert isinstance(map_openai_error(error), NetworkError)

    def test_client_error_is_not_retryable(self):
        error = openai.BadRequestError("bad", response=self._response(400), body=None)
        mapped = map_openai_error(error)

        assert type(mapped) is TranslationError
        assert classify_error(mapped)[0] is False


# =============================================================================
# OLLAMA BACKEND TESTS
# =============================================================================

class TestOllamaTranslator:
    """Tests for ollama_backend.py"""

    def _session(self, status=200, payload=None, error=None):
        session = MagicMock()
        response = MagicMock()
        response.status_code = status
        response.json.return_value = payload or {}
        session.post.return_value = response
        session.post.side_effect = error
        return session

    def test_translates_text(self):
        session = self._session(payload={"message": {"content": "Hallo Welt"}})
        translator = OllamaTranslator(model="qwen2.5:7b", session=session)

        assert asyncio.run(translator.translate("Hello world", "German")) == "Hallo Welt"
        body = session.post.call_args.kwargs["json"]
        assert body["model"] == "qwen2.5:7b"
        assert body["stream"] is False

    def test_empty_input_makes_no_call(self):
        session = self._session()
        translator = OllamaTranslator(session=session)

        assert asyncio.run(translator.translate("  ", "German")) == ""
        session.post.assert_not_called()

    @pytest.mark.parametrize("error,expected", [
        (requests.Timeout("read timed out"), ModelTimeoutError),
        (requests.ConnectionError("refused"), NetworkError),
    ])
    def test_request_errors(self, error, expected):
        translator = OllamaTranslator(session=self._session(error=error))

        with pytest.raises(expected):
            asyncio.run(translator.translate("Hello", "German"))

    @pytest.mark.parametrize("status,expected", [
        (429, RateLimitError),
        (503, ModelOverloadError),
        (404, TranslationError),
    ])
    def test_http_errors(self, status, expected):
        translator = OllamaTranslator(session=self._session(status=status))

        with pytest.raises(expected):
            asyncio.run(translator.translate("Hello", "German"))


# =============================================================================
# PROMPT TESTS
# =============================================================================

class TestTranslationPrompts:
    """Tests for translation_prompts.py"""

    def test_messages_carry_target_language(self):
        messages = build_messages("Some text", "Uzbek")

        assert messages[0]["role"] == "system"
        assert "Translate to Uzbek" in messages[0]["content"]
        assert messages[1]["content"] == "Some text"

    @pytest.mark.parametrize("raw,expected", [
        ("Bonjour", "Bonjour"),
        ("```\nBonjour\n```", "Bonjour"),
        ("```text\nBonjour\n```", "Bonjour"),
        ("Translation: Bonjour", "Bonjour"),
        ("Here is the translation in French:\nBonjour", "Bonjour"),
        ("Here is your translation:\n```\nBonjour\n```", "Bonjour"),
        ("", ""),
    ])
    def test_clean_translation(self, raw, expected):
        assert clean_translation(raw) == expected

    def test_clean_translation_keeps_inner_lines(self):
        assert clean_translation("Ligne un\n\nLigne deux") == "Ligne un\n\nLigne deux"


# =============================================================================
# RETRY HANDLER TESTS
# =============================================================================

NO_WAIT = RetryConfig(max_retries=2, initial_delay=0, jitter=False)


class Flaky:
    """Raises the given errors in turn, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRetryHandler:
    """Tests for retry_handler.py"""

    def test_retryable_error_is_retried(self):
        func = Flaky(NetworkError("connection reset"))
        retries = []

        result = asyncio.run(call_with_retry(func, NO_WAIT, on_retry=lambda a, e, d: retries.append(a)))

        assert result == "ok"
        assert func.calls == 2
        assert retries == [0]

    def test_non_retryable_error_raised_immediately(self):
        func = Flaky(TranslationError("401 unauthorized"))

        with pytest.raises(TranslationError):
            asyncio.run(call_with_retry(func, NO_WAIT))
        assert func.calls == 1

    def test_gives_up_after_max_retries(self):
        func = Flaky(*[ModelTimeoutError("timed out")] * 5)

        with pytest.raises(ModelTimeoutError):
            asyncio.run(call_with_retry(func, NO_WAIT))
        assert func.calls == 3

    def test_zero_retries(self):
        func = Flaky(ModelOverloadError("busy"))

        with pytest.raises(ModelOverloadError):
            asyncio.run(call_with_retry(func, RetryConfig(max_retries=0)))
        assert func.calls == 1

    @pytest.mark.parametrize("error,retryable,kind", [
        (ModelTimeoutError("x"), True, "timeout"),
        (RateLimitError("x"), True, "rate_limit"),
        (ModelOverloadError("x"), True, "overload"),
        (NetworkError("x"), True, "network"),
        (asyncio.TimeoutError(), True, "timeout"),
        (RuntimeError("Request timed out"), True, "timeout"),
        (RuntimeError("HTTP 502 Bad Gateway"), True, "server_error"),
        (RuntimeError("context length exceeded"), False, "context_length"),
        (RuntimeError("403 Forbidden"), False, "auth_error"),
        (RuntimeError("something odd"), False, "unknown"),
    ])
    def test_classify_error(self, error, retryable, kind):
        assert classify_error(error) == (retryable, kind)

    def test_delay_exponential(self):
        config = RetryConfig(initial_delay=1.0, jitter=False)

        assert [calculate_delay(a, config) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_capped(self):
        config = RetryConfig(initial_delay=10.0, max_delay=15.0, jitter=False)
        assert calculate_delay(5, config) == 15.0

    def test_delay_linear(self):
        config = RetryConfig(initial_delay=2.0, jitter=False, strategy=RetryStrategy.LINEAR)
        assert calculate_delay(2, config) == 6.0

    def test_delay_honours_retry_after(self):
        config = RetryConfig(jitter=False)

        assert calculate_delay(0, config, RateLimitError("x", retry_after=3)) == 3.0
        assert calculate_delay(0, config, RateLimitError("x")) == config.rate_limit_delay
