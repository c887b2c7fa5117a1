"""
Tubepulse Job Queue — backends holding comment jobs.

  - CeleryJobQueue (app.workers.tasks): durable, Redis broker, worker pool in
    a separate process. Production.
  - InMemoryJobQueue: asyncio worker pool inside the current process. Tests
    and single-process development.

Both expose the same two operations: ``add`` (returns the queue-assigned id
immediately) and ``get_state`` (``None`` for unknown or evicted ids).
"""
from __future__ import annotations

import abc
import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.core.config import Settings, get_settings
from app.services.jobs.job_types import Job, JobState, JobType

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[Optional[Dict[str, Any]]]]


class JobQueue(abc.ABC):

    @abc.abstractmethod
    async def add(self, job_type: JobType, video_id: str, payload: Dict[str, Any]) -> str:
        """Durably append one job and return its id without waiting for it."""

    @abc.abstractmethod
    async def get_state(self, job_id: str) -> Optional[JobState]:
        """Current lifecycle state, or None if the id is unknown."""

    async def close(self) -> None:
        pass


class InMemoryJobQueue(JobQueue):
    """
    asyncio queue drained by a fixed pool of worker tasks.

    Each worker claims one job at a time; an exception inside the handler
    marks only that job FAILED. Finished jobs are kept for status lookups
    until ``max_history`` newer ones have finished.
    """

    def __init__(
        self,
        handler: Optional[JobHandler] = None,
        concurrency: int = 3,
        max_history: int = 1000,
    ):
        self._handler = handler
        self.concurrency = concurrency
        self.max_history = max_history
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._jobs: Dict[str, Job] = {}
        self._finished: "OrderedDict[str, None]" = OrderedDict()
        self._workers: List[asyncio.Task] = []
        self._active = 0
        self.peak_active = 0

    # ── Public API ───────────────────────────────────────────────────

    async def add(self, job_type: JobType, video_id: str, payload: Dict[str, Any]) -> str:
        job = Job(
            id=str(uuid.uuid4()),
            job_type=job_type,
            video_id=video_id,
            payload=payload,
        )
        self._jobs[job.id] = job
        self._queue.put_nowait(job.id)
        logger.info(f"Job enqueued: {job.id} ({job.job_type.value} {video_id})")
        return job.id

    async def get_state(self, job_id: str) -> Optional[JobState]:
        job = self._jobs.get(job_id)
        return job.state if job else None

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    # ── Worker Pool ──────────────────────────────────────────────────

    def start(self, handler: Optional[JobHandler] = None) -> None:
        if handler is not None:
            self._handler = handler
        if self._handler is None:
            raise RuntimeError("InMemoryJobQueue needs a handler before start()")
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker_loop(i), name=f"job-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info(f"Started {self.concurrency} in-process job workers")

    async def join(self) -> None:
        """Wait until every job enqueued so far has finished."""
        await self._queue.join()

    async def close(self) -> None:
        for w in self._workers:
            w.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def _worker_loop(self, worker_id: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                job = self._jobs.get(job_id)
                if job is not None:
                    await self._execute(job, worker_id)
            finally:
                self._queue.task_done()

    async def _execute(self, job: Job, worker_id: int) -> None:
        job.state = JobState.ACTIVE
        self._active += 1
        self.peak_active = max(self.peak_active, self._active)
        started = time.time()
        try:
            job.result = await self._handler(job)
            job.state = JobState.COMPLETED
            logger.info(
                f"Job completed: {job.id} ({job.job_type.value}) "
                f"worker={worker_id} in {time.time() - started:.2f}s"
            )
        except Exception as e:
            job.state = JobState.FAILED
            job.error = str(e)
            logger.error(f"Job failed: {job.id} ({job.job_type.value} {job.video_id}): {e}")
        finally:
            self._active -= 1
            self._remember_finished(job.id)

    def _remember_finished(self, job_id: str) -> None:
        self._finished[job_id] = None
        while len(self._finished) > self.max_history:
            evicted, _ = self._finished.popitem(last=False)
            self._jobs.pop(evicted, None)


def build_job_queue(settings: Optional[Settings] = None) -> JobQueue:
    """Construct the process-wide queue once at startup."""
    settings = settings or get_settings()
    if settings.job_backend == "memory":
        return InMemoryJobQueue(concurrency=settings.job_worker_concurrency)
    if settings.job_backend == "celery":
        from app.workers.tasks import CeleryJobQueue
        return CeleryJobQueue()
    raise ValueError(f"Unknown job backend: {settings.job_backend}")
