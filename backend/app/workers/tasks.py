"""
Tubepulse Celery Worker Tasks

Asynchronous task definitions for:
- Comment jobs (analysis / classify / filter) submitted through the API
- Periodic channel + video snapshot collection

Also hosts ``CeleryJobQueue``, the production JobQueue backend the API
enqueues through.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from celery import Celery
from celery.result import AsyncResult
from celery.signals import before_task_publish, worker_process_init
from kombu.exceptions import OperationalError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.core.database import make_engine, make_session_factory
from app.core.errors import QueueUnavailableError
from app.core.logging_config import configure_logging
from app.services.jobs.job_queue import JobQueue
from app.services.jobs.job_types import Job, JobState, JobType
from app.services.jobs.locks import RedisLocks
from app.services.jobs.processor import JobProcessor
from app.services.snapshots.snapshot_service import SnapshotService
from app.services.workflow.workflow_client import WorkflowClient
from app.services.youtube.youtube_client import YouTubeClient

settings = get_settings()
logger = logging.getLogger(__name__)

COMMENT_JOB_TASK = "app.workers.tasks.process_comment_job_task"
SNAPSHOT_TASK = "app.workers.tasks.collect_snapshots_task"

# Custom state written at publish time; Celery reports PENDING for both
# "queued" and "never heard of it", and only the latter should be a 404.
SENT_STATE = "SENT"

CELERY_STATE_MAP = {
    SENT_STATE: JobState.WAITING,
    "RECEIVED": JobState.WAITING,
    "RETRY": JobState.WAITING,
    "STARTED": JobState.ACTIVE,
    "SUCCESS": JobState.COMPLETED,
    "FAILURE": JobState.FAILED,
    "REVOKED": JobState.FAILED,
}

# ── Celery App ───────────────────────────────────────────────────────────

celery_app = Celery(
    "tubepulse",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=settings.job_result_expires_seconds,
    result_extended=True,
    task_soft_time_limit=settings.job_soft_time_limit,
    task_time_limit=settings.job_time_limit,
    task_default_queue="default",
    task_routes={
        COMMENT_JOB_TASK: {"queue": "comments"},
        SNAPSHOT_TASK: {"queue": "snapshots"},
    },
    # Fixed pool: three comment jobs in flight per worker
    worker_concurrency=settings.job_worker_concurrency,
)

# ── Periodic Tasks ───────────────────────────────────────────────────────

celery_app.conf.beat_schedule = {
    "collect-snapshots": {
        "task": SNAPSHOT_TASK,
        "schedule": settings.snapshot_interval_seconds,
    },
    "health-check-every-minute": {
        "task": "app.workers.tasks.health_check_task",
        "schedule": 60.0,
    },
}


# ── Signals ──────────────────────────────────────────────────────────────

@before_task_publish.connect
def mark_job_sent(sender=None, headers=None, **kwargs):
    """Record SENT so a queued job is distinguishable from an unknown id.

    Runs before the message reaches the broker, so no worker can have
    written a state yet; a state that is already there is never replaced.
    """
    if sender != COMMENT_JOB_TASK:
        return
    task_id = (headers or {}).get("id")
    if not task_id:
        return
    backend = celery_app.backend
    if backend.get_state(task_id) != "PENDING":
        return
    backend.store_result(task_id, None, SENT_STATE)


@worker_process_init.connect
def init_worker_logging(**kwargs):
    configure_logging()


# ── Helpers ──────────────────────────────────────────────────────────────

def run_async(coro):
    """Run an async coroutine from sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _run_comment_job(job: Job) -> Dict[str, Any]:
    # Fresh loop per task → unpooled engine and task-local clients
    engine = make_engine(pooled=False)
    redis = Redis.from_url(settings.redis_url)
    try:
        async with WorkflowClient() as workflow, YouTubeClient() as youtube:
            processor = JobProcessor(
                session_factory=make_session_factory(engine),
                workflow=workflow,
                youtube=youtube,
                locks=RedisLocks(redis),
            )
            return await processor.process(job)
    finally:
        await redis.aclose()
        await engine.dispose()


async def _run_snapshot_cycle() -> Dict[str, int]:
    engine = make_engine(pooled=False)
    try:
        async with YouTubeClient() as youtube:
            return await SnapshotService(youtube).collect_all(make_session_factory(engine))
    finally:
        await engine.dispose()


# ── Tasks ────────────────────────────────────────────────────────────────

@celery_app.task(name=COMMENT_JOB_TASK, bind=True, acks_late=True)
def process_comment_job_task(self, message: Dict[str, Any]):
    """Execute one comment job. Exceptions propagate so Celery marks FAILURE;
    retries, if wanted, belong to the broker configuration."""
    job = Job.from_message(self.request.id, message)
    logger.info(f"Claimed {job.job_type.value} job {job.id} for video {job.video_id}")
    return run_async(_run_comment_job(job))


@celery_app.task(name=SNAPSHOT_TASK)
def collect_snapshots_task():
    """Snapshot all tracked channels and their recent videos."""
    try:
        logger.info("Starting snapshot cycle")
        return run_async(_run_snapshot_cycle())
    except Exception as e:
        logger.error(f"Snapshot cycle failed: {e}")
        raise


@celery_app.task(name="app.workers.tasks.health_check_task")
def health_check_task():
    """Periodic health check; ensures workers are alive."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# ── Queue Backend ────────────────────────────────────────────────────────

class CeleryJobQueue(JobQueue):
    """JobQueue over the Celery broker / result backend.

    Calls into Celery are blocking, so they run in a thread to keep the
    API's event loop free.
    """

    def __init__(self, app: Optional[Celery] = None):
        self.app = app or celery_app

    async def add(self, job_type: JobType, video_id: str, payload: Dict[str, Any]) -> str:
        message = Job(id="", job_type=job_type, video_id=video_id, payload=payload).to_message()
        try:
            result = await asyncio.to_thread(
                self.app.send_task, COMMENT_JOB_TASK, args=[message], retry=False,
            )
        except (OperationalError, RedisError, ConnectionError) as e:
            raise QueueUnavailableError(f"job broker unreachable: {e}") from e
        return result.id

    async def get_state(self, job_id: str) -> Optional[JobState]:
        try:
            state = await asyncio.to_thread(lambda: AsyncResult(job_id, app=self.app).state)
        except (RedisError, ConnectionError) as e:
            raise QueueUnavailableError(f"result backend unreachable: {e}") from e
        # PENDING is Celery's answer for ids it has no record of
        return CELERY_STATE_MAP.get(state)
