"""
Data Models for the PDF translation pipeline

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import time
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    queued = "queued"
    processing = "processing"
    completed = "completed"
    error = "error"
    cancelled = "cancelled"
    stopped = "stopped"


TERMINAL_STATUSES = frozenset({
    JobStatus.completed,
    JobStatus.error,
    JobStatus.cancelled,
    JobStatus.stopped,
})


class PageStatus(str, Enum):
    pending = "pending"
    extracted = "extracted"
    translated = "translated"
    failed = "failed"


# translated and failed are both final for a page
_PAGE_RANK = {
    PageStatus.pending: 0,
    PageStatus.extracted: 1,
    PageStatus.translated: 2,
    PageStatus.failed: 2,
}


class PageRecord(BaseModel):
    """One page of the source document."""
    page_number: int = Field(..., ge=1, description="1-based page number")
    original_text: str = Field("", description="Extracted or OCR-recovered text")
    # None until the translation step ran, "" when it failed
    translated_text: Optional[str] = Field(None)
    needs_ocr: bool = Field(False, description="Decided once at extraction time")
    status: PageStatus = Field(PageStatus.pending)
    error: Optional[str] = Field(None, description="Why the page was degraded")

    def advance(self, status: PageStatus) -> None:
        """Move the page forward through its lifecycle. Regressions are rejected."""
        if status == self.status:
            return
        if _PAGE_RANK[status] <= _PAGE_RANK[self.status]:
            raise ValueError(
                f"Page {self.page_number}: cannot move from {self.status.value} to {status.value}"
            )
        self.status = status


class Job(BaseModel):
    """
    Status object for one PDF translation job.
    Owned by the JobStore; only the JobController mutates it.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., description="Opaque unique job handle")
    user_id: Union[int, str] = Field(..., description="Owner reference")
    filename: str = Field("", description="Original upload name")
    stored_filename: str = Field("", description="Name of the stored upload")
    input_path: str = Field(..., description="Location of the uploaded source PDF")
    target_language: str = Field("English")

    status: JobStatus = Field(JobStatus.queued)
    progress: int = Field(0, ge=0, le=100, description="Progress in percent (0-100)")
    message: Optional[str] = Field(None, description="Last human-readable status text")
    error: Optional[str] = Field(None, description="Fatal cause when status is 'error'")

    total_pages: int = Field(0, ge=0)
    current_page: int = Field(0, ge=0)
    pages: List[PageRecord] = Field(default_factory=list)

    output_path: Optional[str] = Field(None, description="Set only on successful completion")
    stop_requested: bool = Field(False, description="Cooperative cancellation flag")

    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: JobStatus) -> None:
        if self.is_terminal and status != self.status:
            raise ValueError(
                f"Job {self.id} is {self.status.value}; cannot move to {status.value}"
            )
        self.status = status

    def summary(self) -> "JobSummary":
        return JobSummary(**self.model_dump(exclude={"pages"}))

    def page_views(self) -> List["PageView"]:
        return [
            PageView(
                page_number=p.page_number,
                original_text=p.original_text,
                translated_text=p.translated_text or "",
            )
            for p in sorted(self.pages, key=lambda p: p.page_number)
        ]


class JobSummary(BaseModel):
    """Job snapshot without the heavy page text, for polling and history."""
    id: str
    user_id: Union[int, str]
    filename: str
    stored_filename: str
    input_path: str
    target_language: str
    status: JobStatus
    progress: int
    message: Optional[str]
    error: Optional[str]
    total_pages: int
    current_page: int
    output_path: Optional[str]
    stop_requested: bool
    created_at: float
    updated_at: float


class PageView(BaseModel):
    """Side-by-side view of one page."""
    page_number: int
    original_text: str = ""
    translated_text: str = ""


class ComposePage(BaseModel):
    """Input unit of the PDF composer."""
    page_number: int
    text: str = ""
