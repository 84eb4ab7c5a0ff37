"""
Job Store - system of record for translation jobs

Live records are kept in memory; a durable backend (SQLite) receives
flushed snapshots so a crash mid-job leaves inspectable partial progress.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

from .errors import JobNotFoundError, StoreWriteError
from .models import Job, JobStatus, TERMINAL_STATUSES

logger = logging.getLogger("pdfx.job_store")

UserId = Union[int, str]


# =============================================================================
# DURABLE BACKEND
# =============================================================================

class JobBackend:
    """Durable persistence for job snapshots."""

    def save(self, job: Job) -> None:
        raise NotImplementedError

    def load(self, job_id: str) -> Optional[Job]:
        raise NotImplementedError

    def list_by_user(self, user_id: UserId) -> List[Job]:
        raise NotImplementedError

    def list_unfinished(self) -> List[Job]:
        raise NotImplementedError

    def delete(self, job_id: str) -> None:
        raise NotImplementedError


class SqliteJobBackend(JobBackend):
    """
    SQLite-based job table.

    One row per job; the full record (pages included) is stored as JSON,
    the columns used for lookups are duplicated next to it.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pdf_translation_jobs (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_user
                ON pdf_translation_jobs(user_id, created_at)
            """)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def save(self, job: Job) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO pdf_translation_jobs (id, user_id, status, created_at, updated_at, data)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    status = excluded.status,
                    updated_at = excluded.updated_at,
                    data = excluded.data
                """,
                (
                    job.id,
                    str(job.user_id),
                    job.status.value,
                    job.created_at,
                    job.updated_at,
                    job.model_dump_json(),
                ),
            )
            conn.commit()

    def load(self, job_id: str) -> Optional[Job]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT data FROM pdf_translation_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        return Job.model_validate_json(row["data"]) if row else None

    def list_by_user(self, user_id: UserId) -> List[Job]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT data FROM pdf_translation_jobs WHERE user_id = ? ORDER BY created_at DESC",
                (str(user_id),),
            ).fetchall()
        return [Job.model_validate_json(r["data"]) for r in rows]

    def list_unfinished(self) -> List[Job]:
        terminal = [s.value for s in TERMINAL_STATUSES]
        placeholders = ",".join("?" for _ in terminal)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT data FROM pdf_translation_jobs WHERE status NOT IN ({placeholders})",
                terminal,
            ).fetchall()
        return [Job.model_validate_json(r["data"]) for r in rows]

    def delete(self, job_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM pdf_translation_jobs WHERE id = ?", (job_id,))
            conn.commit()


# =============================================================================
# JOB STORE
# =============================================================================

class JobStore:
    """
    Keyed by job id. Readers always get deep copies, so a poll never sees a
    half-applied update and jobs never share mutable state.
    """

    def __init__(self, backend: Optional[JobBackend] = None):
        self.backend = backend
        self._jobs: Dict[str, Job] = {}
        self._deleted: Set[str] = set()
        self._lock = asyncio.Lock()

    async def _write(self, job: Job) -> None:
        """Persist a snapshot. Caller holds the lock so a delete cannot interleave."""
        if self.backend is None:
            return
        try:
            await asyncio.to_thread(self.backend.save, job)
        except Exception as e:
            logger.error("Job %s: durable write failed: %s", job.id, e)
            raise StoreWriteError(f"Cannot persist job {job.id}: {e}") from e

    async def _live(self, job_id: str) -> Job:
        """The live record, loaded from the backend if needed. Caller holds the lock."""
        if job_id in self._deleted:
            raise JobNotFoundError(job_id)
        job = self._jobs.get(job_id)
        if job is None and self.backend is not None:
            job = await asyncio.to_thread(self.backend.load, job_id)
            if job is not None:
                self._jobs[job_id] = job
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def create(self, job: Job) -> Job:
        async with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._deleted.discard(job.id)
            self._jobs[job.id] = job.model_copy(deep=True)
            await self._write(job)
        logger.info("Created job %s (user=%s, target_language=%s)", job.id, job.user_id, job.target_language)
        return job.model_copy(deep=True)

    async def get(self, job_id: str) -> Job:
        async with self._lock:
            return (await self._live(job_id)).model_copy(deep=True)

    async def update(self, job_id: str, **fields) -> Job:
        """Apply field changes to the live record. Status goes through Job.transition."""
        async with self._lock:
            job = await self._live(job_id)
            status = fields.pop("status", None)
            if status is not None:
                job.transition(JobStatus(status))
            for name, value in fields.items():
                setattr(job, name, value)
            job.updated_at = time.time()
            return job.model_copy(deep=True)

    async def mutate(self, job_id: str, fn: Callable[[Job], None]) -> Job:
        """Run fn on the live record under the store lock."""
        async with self._lock:
            job = await self._live(job_id)
            fn(job)
            job.updated_at = time.time()
            return job.model_copy(deep=True)

    async def flush(self, job_id: str) -> None:
        """Write the current snapshot, pages included, to the durable backend."""
        if self.backend is None:
            return
        async with self._lock:
            snapshot = (await self._live(job_id)).model_copy(deep=True)
            await self._write(snapshot)
        logger.debug("Job %s flushed (status=%s, pages=%d)", job_id, snapshot.status.value, len(snapshot.pages))

    async def request_stop(self, job_id: str) -> Job:
        async with self._lock:
            job = await self._live(job_id)
            if not job.is_terminal and not job.stop_requested:
                job.stop_requested = True
                job.message = "Cancelling…"
                job.updated_at = time.time()
                logger.info("Job %s: stop requested", job_id)
            return job.model_copy(deep=True)

    async def is_stop_requested(self, job_id: str) -> bool:
        async with self._lock:
            return (await self._live(job_id)).stop_requested

    async def list_by_user(self, user_id: UserId) -> List[Job]:
        """Jobs of one user, newest first. Live records win over stored ones."""
        async with self._lock:
            jobs = {
                j.id: j.model_copy(deep=True)
                for j in self._jobs.values()
                if str(j.user_id) == str(user_id)
            }
        if self.backend is not None:
            for stored in await asyncio.to_thread(self.backend.list_by_user, user_id):
                if stored.id not in self._deleted:
                    jobs.setdefault(stored.id, stored)
        return sorted(jobs.values(), key=lambda j: j.created_at, reverse=True)

    async def delete(self, job_id: str) -> Job:
        async with self._lock:
            job = await self._live(job_id)
            if self.backend is not None:
                try:
                    await asyncio.to_thread(self.backend.delete, job_id)
                except Exception as e:
                    raise StoreWriteError(f"Cannot delete job {job_id}: {e}") from e
            self._jobs.pop(job_id, None)
            self._deleted.add(job_id)
        logger.info("Deleted job %s", job_id)
        return job

    async def mark_interrupted(self) -> List[str]:
        """
        Jobs the backend still lists as running belong to a dead process:
        end them as 'stopped' so polling reports a terminal state.
        """
        if self.backend is None:
            return []
        interrupted = []
        for job in await asyncio.to_thread(self.backend.list_unfinished):
            async with self._lock:
                if job.id in self._jobs or job.id in self._deleted:
                    continue
                job.transition(JobStatus.stopped)
                job.progress = 100
                job.message = "Interrupted before completion"
                job.updated_at = time.time()
                await self._write(job)
            interrupted.append(job.id)
        if interrupted:
            logger.warning("Marked %d interrupted jobs as stopped", len(interrupted))
        return interrupted
