from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple, Union
from uuid import uuid4

from .chunker import TextChunker
from .composer import PdfComposer
from .config import DEFAULT_MODEL, PipelineConfig
from .controller import JobController
from .extractor import PageExtractor, WordCountOcrPolicy
from .job_store import JobStore, SqliteJobBackend
from .models import Job, JobStatus, JobSummary, PageView
from .ocr_engine import OcrEngine
from .ollama_backend import DEFAULT_OLLAMA_MODEL, OllamaTranslator
from .openai_backend import OpenAITranslator

logger = logging.getLogger("pdfx.jobs")

UserId = Union[int, str]

MAX_HISTORY_PAGE_SIZE = 100

_UNSAFE_FILENAME_RE = re.compile(r'[^\w.\- ]+')


def safe_filename(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE_FILENAME_RE.sub("_", name).strip(" .")
    return name or "upload.pdf"


def build_translator(config: PipelineConfig):
    """Translation capability selected by config.backend."""
    if config.backend == "ollama":
        return OllamaTranslator(
            model=config.model or DEFAULT_OLLAMA_MODEL,
            base_url=config.ollama_base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.request_timeout,
        )
    if config.backend != "openai":
        raise ValueError(f"Unknown translation backend: {config.backend}")
    return OpenAITranslator(
        model=config.model or DEFAULT_MODEL,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        api_key=config.openai_api_key,
        organization=config.openai_org_id,
        timeout=config.request_timeout,
    )


class JobManager:
    """
    Entry point for callers: create, submit, poll, stop and inspect jobs.

    Submitted jobs wait in a queue; max_concurrent_jobs workers each run
    one job at a time. Must be used from inside a running event loop.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        store: Optional[JobStore] = None,
        controller: Optional[JobController] = None,
        translator=None,
    ):
        self.config = config or PipelineConfig.from_env()
        self.config.ensure_folders()

        self.store = store or JobStore(SqliteJobBackend(self.config.database_path))
        self.controller = controller or JobController(
            store=self.store,
            extractor=PageExtractor(WordCountOcrPolicy(self.config.ocr_min_words)),
            ocr_engine=OcrEngine(
                languages=self.config.ocr_languages,
                timeout=self.config.ocr_timeout,
                dpi=self.config.ocr_dpi,
            ),
            translator=translator or build_translator(self.config),
            composer=PdfComposer(self.config.font_path),
            config=self.config,
            chunker=TextChunker(self.config.max_chunk_size),
        )

        self._queue: asyncio.Queue = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._done: dict = {}

    # -------------------------------------------------------------------------
    # worker pool
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._workers:
            return
        await self.store.mark_interrupted()
        for index in range(self.config.max_concurrent_jobs):
            self._workers.append(asyncio.create_task(self._worker(index), name=f"pdfx-worker-{index}"))
        logger.info("Started %d job workers", len(self._workers))

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                logger.info("Worker %d picked up job %s", index, job_id)
                await self.controller.run(job_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker %d: unhandled error in job %s", index, job_id)
            finally:
                self._queue.task_done()
                event = self._done.pop(job_id, None)
                if event is not None:
                    event.set()

    async def shutdown(self) -> None:
        """Cancel the workers. Jobs in flight end as 'stopped'."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Job workers stopped")

    async def __aenter__(self) -> "JobManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # -------------------------------------------------------------------------
    # job creation
    # -------------------------------------------------------------------------

    async def create_job(
        self,
        user_id: UserId,
        input_path: Union[str, Path],
        target_language: str = "English",
        filename: Optional[str] = None,
        stored_filename: Optional[str] = None,
    ) -> Job:
        job_id = str(uuid4())
        input_path = Path(input_path)
        job = Job(
            id=job_id,
            user_id=user_id,
            filename=filename or input_path.name,
            stored_filename=stored_filename or input_path.name,
            input_path=str(input_path),
            target_language=target_language or "English",
            status=JobStatus.queued,
            progress=0,
            message="Queued",
        )
        return await self.store.create(job)

    async def submit(self, job_id: str) -> None:
        await self.store.get(job_id)
        if not self._workers:
            await self.start()
        self._done.setdefault(job_id, asyncio.Event())
        await self._queue.put(job_id)
        logger.info("Job %s queued (queue size=%d)", job_id, self._queue.qsize())

    async def submit_upload(
        self,
        user_id: UserId,
        filename: str,
        data: bytes,
        target_language: str = "English",
    ) -> Job:
        """Store the uploaded bytes, then create and submit a job for them."""
        job_id = str(uuid4())
        stored_filename = f"{job_id}_{safe_filename(filename)}"
        input_path = self.config.uploads_dir / stored_filename
        await asyncio.to_thread(input_path.write_bytes, data)

        job = Job(
            id=job_id,
            user_id=user_id,
            filename=filename,
            stored_filename=stored_filename,
            input_path=str(input_path),
            target_language=target_language or "English",
            message="Queued",
        )
        job = await self.store.create(job)
        await self.submit(job.id)
        return job

    # -------------------------------------------------------------------------
    # queries
    # -------------------------------------------------------------------------

    async def get(self, job_id: str) -> Job:
        return await self.store.get(job_id)

    async def status(self, job_id: str) -> JobSummary:
        return (await self.store.get(job_id)).summary()

    async def request_stop(self, job_id: str) -> Job:
        return await self.store.request_stop(job_id)

    async def result_path(self, job_id: str) -> Optional[Path]:
        job = await self.store.get(job_id)
        if job.status != JobStatus.completed or not job.output_path:
            return None
        return Path(job.output_path)

    async def pages(self, job_id: str) -> List[PageView]:
        return (await self.store.get(job_id)).page_views()

    async def page(self, job_id: str, page_number: int) -> PageView:
        for view in await self.pages(job_id):
            if view.page_number == page_number:
                return view
        return PageView(page_number=page_number)

    async def list_by_user(self, user_id: UserId) -> List[JobSummary]:
        return [job.summary() for job in await self.store.list_by_user(user_id)]

    async def history(self, user_id: UserId, page: int = 1, size: int = 20) -> Tuple[List[JobSummary], int]:
        """One page of a user's jobs, newest first, and the total count."""
        page = max(1, page)
        size = max(1, min(size, MAX_HISTORY_PAGE_SIZE))
        items = await self.list_by_user(user_id)
        start = (page - 1) * size
        return items[start:start + size], len(items)

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Wait until the job is terminal."""
        async def _poll() -> Job:
            while True:
                job = await self.store.get(job_id)
                if job.is_terminal:
                    return job
                event = self._done.get(job_id)
                if event is not None and not event.is_set():
                    await event.wait()
                else:
                    await asyncio.sleep(0.1)

        return await asyncio.wait_for(_poll(), timeout=timeout)

    # -------------------------------------------------------------------------
    # deletion
    # -------------------------------------------------------------------------

    async def delete(self, job_id: str) -> None:
        """Remove the job record and, best effort, its input and output files."""
        job = await self.store.get(job_id)
        if not job.is_terminal:
            await self.store.request_stop(job_id)

        for path in (job.input_path, job.output_path):
            if not path:
                continue
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Job %s: could not remove %s: %s", job_id, path, e)

        await self.store.delete(job_id)
        event = self._done.pop(job_id, None)
        if event is not None:
            event.set()
