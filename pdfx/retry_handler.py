"""
Retry Handler for LLM API Calls

Provides retry logic for handling:
- Timeouts
- Rate limits
- Network errors
- Model overload

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from .errors import (
    ModelOverloadError,
    ModelTimeoutError,
    NetworkError,
    RateLimitError,
    RetryableError,
)

logger = logging.getLogger("pdfx.retry")

T = TypeVar("T")


class RetryStrategy(Enum):
    """Retry strategies for different error types."""
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CONSTANT = "constant"


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 2
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    rate_limit_delay: float = 30.0


DEFAULT_CONFIG = RetryConfig()


def calculate_delay(
    attempt: int,
    config: RetryConfig,
    error: Optional[Exception] = None
) -> float:
    """Calculate delay before next retry attempt."""
    if isinstance(error, RateLimitError) and error.retry_after:
        base_delay = error.retry_after
    elif isinstance(error, RateLimitError):
        base_delay = config.rate_limit_delay
    else:
        if config.strategy == RetryStrategy.EXPONENTIAL:
            base_delay = config.initial_delay * (config.exponential_base ** attempt)
        elif config.strategy == RetryStrategy.LINEAR:
            base_delay = config.initial_delay * (attempt + 1)
        else:  # CONSTANT
            base_delay = config.initial_delay

    base_delay = min(base_delay, config.max_delay)

    if config.jitter:
        base_delay += random.uniform(0, base_delay * 0.1)

    return base_delay


def classify_error(error: Exception) -> Tuple[bool, str]:
    """
    Classify an error as retryable or not.

    Typed errors from the backends win; message patterns are the fallback
    for anything a third-party client raised untranslated.

    Returns (is_retryable, error_type)
    """
    if isinstance(error, (ModelTimeoutError, asyncio.TimeoutError)):
        return True, "timeout"
    if isinstance(error, RateLimitError):
        return True, "rate_limit"
    if isinstance(error, ModelOverloadError):
        return True, "overload"
    if isinstance(error, NetworkError):
        return True, "network"
    if isinstance(error, RetryableError):
        return True, "retryable"

    error_str = str(error).lower()

    if any(x in error_str for x in ["timeout", "timed out", "deadline exceeded"]):
        return True, "timeout"

    if any(x in error_str for x in ["rate limit", "too many requests", "429"]):
        return True, "rate_limit"

    if any(x in error_str for x in ["overload", "503", "service unavailable", "busy"]):
        return True, "overload"

    if any(x in error_str for x in ["connection", "network", "unreachable", "refused"]):
        return True, "network"

    if any(x in error_str for x in ["500", "502", "504", "internal server"]):
        return True, "server_error"

    # Context length exceeded - not retryable with same input
    if any(x in error_str for x in ["context length", "too long", "max tokens"]):
        return False, "context_length"

    if any(x in error_str for x in ["invalid", "malformed", "bad request", "400"]):
        return False, "invalid_input"

    if any(x in error_str for x in ["auth", "401", "403", "unauthorized", "forbidden"]):
        return False, "auth_error"

    return False, "unknown"


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """
    Await func() and retry retryable failures.

    Non-retryable errors and the last retryable error are re-raised unchanged,
    the caller decides what a failure means for the page.
    """
    config = config or DEFAULT_CONFIG
    attempt = 0

    while True:
        try:
            return await func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            is_retryable, error_type = classify_error(e)

            if not is_retryable:
                logger.warning("Non-retryable error (%s): %s", error_type, e)
                raise

            if attempt >= config.max_retries:
                logger.error("Max retries (%d) exceeded: %s", config.max_retries, e)
                raise

            delay = calculate_delay(attempt, config, e)
            logger.warning(
                "Retryable error (%s), attempt %d/%d, waiting %.1fs: %s",
                error_type,
                attempt + 1,
                config.max_retries + 1,
                delay,
                e,
            )

            if on_retry:
                on_retry(attempt, e, delay)

            await asyncio.sleep(delay)
            attempt += 1
