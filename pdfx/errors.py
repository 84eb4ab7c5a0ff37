"""
Error taxonomy for the PDF translation pipeline

Fatal errors end the whole job, recoverable errors degrade a single page.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

from typing import Optional


class PdfxError(Exception):
    """Base class for all pipeline errors."""
    pass


# =============================================================================
# FATAL - abort the job
# =============================================================================

class FatalJobError(PdfxError):
    """Aborts the whole job: status becomes 'error'."""
    pass


class ExtractionError(FatalJobError):
    """The source PDF cannot be opened or parsed."""
    pass


class CompositionError(FatalJobError):
    """The translated PDF cannot be written (font asset, output path)."""
    pass


class StoreWriteError(FatalJobError):
    """The durable job store rejected a write."""
    pass


# =============================================================================
# RECOVERABLE - degrade one page
# =============================================================================

class RecoverablePageError(PdfxError):
    """Degrades only the affected page; the job continues."""
    pass


class OcrError(RecoverablePageError):
    """OCR tool missing, failed or timed out."""
    pass


class TranslationError(RecoverablePageError):
    """The language model could not translate a chunk."""
    pass


class RetryableError(TranslationError):
    """Translation failure worth another attempt."""
    pass


class ModelTimeoutError(RetryableError):
    """LLM request timed out."""
    pass


class RateLimitError(RetryableError):
    """Rate limit exceeded."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class ModelOverloadError(RetryableError):
    """Model is overloaded or the server answered 5xx."""
    pass


class NetworkError(RetryableError):
    """Network connectivity error."""
    pass


# =============================================================================
# CONTROL FLOW
# =============================================================================

class CancellationSignal(Exception):
    """Raised inside a job when a stop was requested. Not an error."""
    pass


class JobNotFoundError(KeyError):
    """Unknown job id."""
    def __init__(self, job_id: str):
        super().__init__(f"Unknown job_id: {job_id}")
        self.job_id = job_id
