"""
Request-scoped accessors for the long-lived objects built in the lifespan.
"""
from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.models import Channel

from app.services.jobs.dispatcher import JobDispatcher
from app.services.jobs.job_queue import JobQueue
from app.services.jobs.status import JobStatusReporter
from app.services.snapshots.snapshot_service import SnapshotService
from app.services.youtube.youtube_client import YouTubeClient


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def get_youtube(request: Request) -> YouTubeClient:
    return request.app.state.youtube


def get_dispatcher(queue: JobQueue = Depends(get_job_queue)) -> JobDispatcher:
    return JobDispatcher(queue)


def get_status_reporter(queue: JobQueue = Depends(get_job_queue)) -> JobStatusReporter:
    return JobStatusReporter(queue)


def get_snapshot_service(youtube: YouTubeClient = Depends(get_youtube)) -> SnapshotService:
    return SnapshotService(youtube)


async def require_channel(db: AsyncSession, channel_id: int) -> Channel:
    channel = await db.get(Channel, channel_id)
    if channel is None or channel.is_deleted:
        raise HTTPException(status_code=404, detail="Channel not found")
    return channel
