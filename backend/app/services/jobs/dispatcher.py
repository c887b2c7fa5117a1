"""
Tubepulse Job Dispatcher — turns API requests into queued comment jobs.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from app.core.errors import QueueUnavailableError
from app.services.jobs.job_queue import JobQueue
from app.services.jobs.job_types import validate_job

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Validates and enqueues; never waits for the job to run.

    Whether the video actually exists is the processor's concern.
    """

    def __init__(self, queue: JobQueue):
        self.queue = queue

    async def enqueue(self, job_type: Any, video_id: Any, payload: Optional[Dict[str, Any]] = None) -> str:
        jt, vid, clean_payload = validate_job(job_type, video_id, payload)
        try:
            job_id = await self.queue.add(jt, vid, clean_payload)
        except QueueUnavailableError:
            logger.error(f"Enqueue failed for {jt.value} job on {vid}: queue unavailable")
            raise
        logger.info(f"Dispatched {jt.value} job {job_id} for video {vid}")
        return job_id
