"""
Tubepulse Job Status Reporter — read-only lifecycle lookups.
"""
from __future__ import annotations

from typing import Optional

from app.services.jobs.job_queue import JobQueue
from app.services.jobs.job_types import JobState


class JobStatusReporter:
    def __init__(self, queue: JobQueue):
        self.queue = queue

    async def get_status(self, job_id: str) -> Optional[JobState]:
        """waiting | active | completed | failed, or None when the queue has
        no record of ``job_id`` (never existed or already evicted)."""
        if not job_id:
            return None
        return await self.queue.get_state(job_id)
