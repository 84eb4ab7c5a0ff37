"""
Job Controller - drives one translation job from upload to output PDF

State machine:
    queued -> processing -> completed | error | cancelled | stopped

Phases and their share of the progress bar:
    extraction    0 -> 10
    OCR pass     10 -> 35
    translation  35 -> 90
    composition  90 -> 100

Progress only moves forward and reaches 100 only in a terminal state.
Pages are worked on sequentially; a page is published to the job record
once its translation step has finished.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from .chunker import TextChunker
from .composer import PdfComposer
from .config import PipelineConfig
from .errors import (
    CancellationSignal,
    FatalJobError,
    JobNotFoundError,
    StoreWriteError,
)
from .extractor import OcrMergeStrategy, PageExtractor, resolve_page_text
from .job_store import JobStore
from .models import ComposePage, Job, JobStatus, PageRecord, PageStatus
from .ocr_engine import OcrEngine
from .retry_handler import call_with_retry
from .text_normalizer import normalize_extracted, sanitize_text

logger = logging.getLogger("pdfx.controller")

EXTRACTION_DONE = 10
OCR_DONE = 35
TRANSLATION_DONE = 90
MAX_PROCESSING_PROGRESS = 99


def _phase_progress(start: int, end: int, done: int, total: int) -> int:
    if total <= 0:
        return end
    return start + int((end - start) * done / total)


class JobController:
    """
    Runs jobs against an injected store and set of capabilities.

    The controller keeps no per-job state on itself, so one instance can
    serve several jobs concurrently.
    """

    def __init__(
        self,
        store: JobStore,
        extractor: PageExtractor,
        ocr_engine: OcrEngine,
        translator,
        composer: PdfComposer,
        config: Optional[PipelineConfig] = None,
        chunker: Optional[TextChunker] = None,
        ocr_strategy: OcrMergeStrategy = OcrMergeStrategy.prefer_ocr,
    ):
        self.store = store
        self.extractor = extractor
        self.ocr_engine = ocr_engine
        self.translator = translator
        self.composer = composer
        self.config = config or PipelineConfig()
        self.chunker = chunker or TextChunker(self.config.max_chunk_size)
        self.ocr_strategy = ocr_strategy

    # -------------------------------------------------------------------------
    # entry point
    # -------------------------------------------------------------------------

    async def run(self, job_id: str) -> Optional[Job]:
        """Process the job to a terminal state and return the final snapshot."""
        try:
            job = await self.store.get(job_id)
        except JobNotFoundError:
            logger.warning("Job %s: no such job, skipping", job_id)
            return None
        if job.is_terminal:
            logger.info("Job %s: already %s, skipping", job_id, job.status.value)
            return job

        work_dir = None
        try:
            job = await self.store.update(
                job_id,
                status=JobStatus.processing,
                total_pages=0,
                current_page=0,
                message="Analyzing PDF…",
            )
            logger.info("Job %s: pipeline started (input=%s, target_language=%s)",
                        job_id, job.input_path, job.target_language)
            await self._check_stop(job_id)

            work_dir = Path(tempfile.mkdtemp(prefix=f"pdfx-{job_id}-"))

            records = await self._extract(job)
            await self._check_stop(job_id)
            await self._ocr_pass(job, records, work_dir)
            await self._translate_pass(job, records)
            await self._check_stop(job_id)
            output_path = await self._compose(job, records)

            return await self._finish(
                job_id,
                JobStatus.completed,
                message="Translation completed.",
                output_path=output_path,
            )

        except CancellationSignal:
            logger.info("Job %s: cancelled by request", job_id)
            return await self._finish(job_id, JobStatus.cancelled, message="Job cancelled")

        except asyncio.CancelledError:
            logger.warning("Job %s: worker cancelled, stopping", job_id)
            await self._finish(job_id, JobStatus.stopped, message="Job interrupted by shutdown")
            raise

        except JobNotFoundError:
            logger.warning("Job %s: record deleted while running", job_id)
            return None

        except FatalJobError as e:
            logger.error("Job %s: fatal %s: %s", job_id, type(e).__name__, e)
            return await self._finish(job_id, JobStatus.error, message=f"Error: {e}", error=str(e))

        except Exception as e:
            logger.exception("Job %s: pipeline failed with exception", job_id)
            return await self._finish(job_id, JobStatus.error, message=f"Error: {e}", error=str(e) or type(e).__name__)

        finally:
            if work_dir is not None:
                shutil.rmtree(work_dir, ignore_errors=True)

    # -------------------------------------------------------------------------
    # phases
    # -------------------------------------------------------------------------

    async def _extract(self, job: Job) -> List[PageRecord]:
        records = await asyncio.to_thread(self.extractor.extract_path, job.input_path)
        total = len(records)
        logger.info("Job %s: extracted %d pages", job.id, total)

        await self._progress(
            job.id,
            EXTRACTION_DONE,
            total_pages=total,
            message=f"Extracted {total} pages",
        )
        await self.store.flush(job.id)
        return records

    async def _ocr_pass(self, job: Job, records: List[PageRecord], work_dir: Path) -> None:
        candidates = [r for r in records if r.needs_ocr or not r.original_text.strip()]
        if candidates:
            logger.info("Job %s: %d pages need OCR", job.id, len(candidates))

        for done, record in enumerate(candidates):
            await self._check_stop(job.id)
            await self._progress(
                job.id,
                _phase_progress(EXTRACTION_DONE, OCR_DONE, done, len(candidates)),
                current_page=record.page_number,
                message=f"OCR page {record.page_number}/{len(records)}…",
            )

            try:
                ocr_text = await self.ocr_engine.ocr_page(job.input_path, record.page_number, work_dir)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Job %s: OCR failed on page %d: %s", job.id, record.page_number, e)
                record.error = f"OCR failed: {e}"
                ocr_text = ""

            record.original_text = resolve_page_text(
                record.original_text, normalize_extracted(ocr_text), self.ocr_strategy
            )

        for record in records:
            record.advance(PageStatus.extracted)

        await self._progress(job.id, OCR_DONE, message="Text extraction finished")
        await self.store.flush(job.id)

    async def _translate_pass(self, job: Job, records: List[PageRecord]) -> None:
        total = len(records)
        interval = max(1, self.config.flush_interval)

        for done, record in enumerate(records):
            await self._check_stop(job.id)
            await self._progress(
                job.id,
                _phase_progress(OCR_DONE, TRANSLATION_DONE, done, total),
                current_page=record.page_number,
                message=f"Translating page {record.page_number}/{total}…",
            )

            translated, error = await self._translate_page(job, record)
            if error is None:
                record.translated_text = translated
                record.advance(PageStatus.translated)
            else:
                record.translated_text = ""
                record.error = f"{record.error}; {error}" if record.error else error
                record.advance(PageStatus.failed)

            published = record.model_copy(deep=True)
            await self.store.mutate(job.id, lambda j: j.pages.append(published))
            await self._progress(job.id, _phase_progress(OCR_DONE, TRANSLATION_DONE, done + 1, total))

            if (done + 1) % interval == 0:
                await self.store.flush(job.id)

        failed = sum(1 for r in records if r.status == PageStatus.failed)
        if failed:
            logger.warning("Job %s: %d of %d pages failed to translate", job.id, failed, total)

    async def _translate_page(self, job: Job, record: PageRecord) -> Tuple[str, Optional[str]]:
        """(translated text, None) or ("", error note). Never raises page errors."""
        try:
            parts = []
            for index, piece in enumerate(self.chunker.chunk(record.original_text)):
                if index and self.config.chunk_delay > 0:
                    await asyncio.sleep(self.config.chunk_delay)
                translated = await call_with_retry(
                    lambda piece=piece: self.translator.translate(piece, job.target_language),
                    self.config.retry,
                )
                parts.append(sanitize_text(translated))
            return self.chunker.join(parts), None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Job %s: translation failed on page %d: %s", job.id, record.page_number, e)
            return "", f"Translation failed: {e}"

    async def _compose(self, job: Job, records: List[PageRecord]) -> str:
        await self._progress(job.id, TRANSLATION_DONE, message="Building translated PDF…")

        pages = [
            ComposePage(page_number=r.page_number, text=r.translated_text or "")
            for r in records
        ]
        output_path = self.config.outputs_dir / f"{job.id}_translated.pdf"
        title = job.filename or Path(job.input_path).name

        result = await asyncio.to_thread(self.composer.compose, pages, output_path, title)
        logger.info("Job %s: output written to %s", job.id, result)
        return result

    # -------------------------------------------------------------------------
    # helpers
    # -------------------------------------------------------------------------

    async def _check_stop(self, job_id: str) -> None:
        if await self.store.is_stop_requested(job_id):
            raise CancellationSignal(job_id)

    async def _progress(self, job_id: str, value: int, **fields) -> Job:
        """Monotonic progress setter, capped below 100 while processing."""
        def apply(job: Job) -> None:
            job.progress = max(job.progress, min(int(value), MAX_PROCESSING_PROGRESS))
            for name, field_value in fields.items():
                setattr(job, name, field_value)

        return await self.store.mutate(job_id, apply)

    async def _finish(self, job_id: str, status: JobStatus, message: str, **fields) -> Optional[Job]:
        try:
            job = await self.store.update(job_id, status=status, progress=100, message=message, **fields)
        except JobNotFoundError:
            logger.warning("Job %s: record deleted before reaching %s", job_id, status.value)
            return None
        try:
            await self.store.flush(job_id)
        except StoreWriteError as e:
            # the in-memory record is terminal already
            logger.error("Job %s: final state not persisted: %s", job_id, e)
        logger.info("Job %s: finished with status=%s", job_id, status.value)
        return job
