"""
Tubepulse API — Comment Routes

Comment jobs are fire-and-forget: each POST enqueues and returns a job id,
the client then polls the status endpoint.

  - POST /videos/{video_id}/comments/analysis      — summary + positive ratio
  - POST /videos/{video_id}/comments/classify      — classify new comments
  - POST /videos/{video_id}/comments/filter        — keyword filter
  - GET  /videos/{video_id}/comments/jobs/{job_id} — job status
  - GET  /videos/{video_id}/comments/{positive|negative|filtered|summaries}
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_dispatcher, get_status_reporter
from app.core.database import get_db
from app.core.errors import InvalidJobError, QueueUnavailableError, VideoNotFoundError
from app.models.models import Comment, CommentSummary, CommentType
from app.schemas.schemas import (
    CommentListResponse,
    CommentSummaryListResponse,
    FilterJobRequest,
    JobEnqueuedResponse,
    JobStatusResponse,
)
from app.services.comments.comment_store import get_video
from app.services.jobs.dispatcher import JobDispatcher
from app.services.jobs.job_types import JobType
from app.services.jobs.status import JobStatusReporter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/videos", tags=["Comments"])


async def _enqueue(
    dispatcher: JobDispatcher, job_type: JobType, video_id: str, payload: Optional[Dict[str, Any]] = None,
) -> JobEnqueuedResponse:
    try:
        job_id = await dispatcher.enqueue(job_type, video_id, payload)
    except InvalidJobError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QueueUnavailableError:
        raise HTTPException(status_code=503, detail="Job queue unavailable, please retry later")
    return JobEnqueuedResponse(job_id=job_id)


# ── Jobs ─────────────────────────────────────────────────────────────────

@router.post("/{video_id}/comments/analysis", response_model=JobEnqueuedResponse)
async def enqueue_analysis(video_id: str, dispatcher: JobDispatcher = Depends(get_dispatcher)):
    """Queue a comment summary for the video."""
    return await _enqueue(dispatcher, JobType.ANALYSIS, video_id)


@router.post("/{video_id}/comments/classify", response_model=JobEnqueuedResponse)
async def enqueue_classify(video_id: str, dispatcher: JobDispatcher = Depends(get_dispatcher)):
    """Queue classification of comments newer than the video's watermark."""
    return await _enqueue(dispatcher, JobType.CLASSIFY, video_id)


@router.post("/{video_id}/comments/filter", response_model=JobEnqueuedResponse)
async def enqueue_filter(
    video_id: str,
    req: FilterJobRequest,
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    return await _enqueue(
        dispatcher, JobType.FILTER, video_id, {"filtering_keyword": req.filtering_keyword},
    )


@router.get("/{video_id}/comments/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    video_id: str,
    job_id: str,
    reporter: JobStatusReporter = Depends(get_status_reporter),
):
    try:
        state = await reporter.get_status(job_id)
    except QueueUnavailableError:
        raise HTTPException(status_code=503, detail="Job queue unavailable, please retry later")
    if state is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(status=state.value, job_id=job_id, video_id=video_id)


# ── Stored comments ──────────────────────────────────────────────────────

async def _require_video(db: AsyncSession, video_id: str) -> None:
    try:
        await get_video(db, video_id)
    except VideoNotFoundError:
        raise HTTPException(status_code=404, detail="Video not found")


async def _list_comments(db: AsyncSession, video_id: str, *conditions) -> CommentListResponse:
    await _require_video(db, video_id)
    result = await db.execute(
        select(Comment)
        .where(Comment.video_id == video_id, *conditions)
        .order_by(Comment.comment_date.desc())
    )
    return CommentListResponse(data=result.scalars().all())


@router.get("/{video_id}/comments/positive", response_model=CommentListResponse)
async def list_positive_comments(video_id: str, db: AsyncSession = Depends(get_db)):
    return await _list_comments(
        db, video_id,
        Comment.comment_type == CommentType.POSITIVE.value,
        Comment.is_filtered.is_(False),
    )


@router.get("/{video_id}/comments/negative", response_model=CommentListResponse)
async def list_negative_comments(video_id: str, db: AsyncSession = Depends(get_db)):
    return await _list_comments(
        db, video_id,
        Comment.comment_type == CommentType.NEGATIVE.value,
        Comment.is_filtered.is_(False),
    )


@router.get("/{video_id}/comments/filtered", response_model=CommentListResponse)
async def list_filtered_comments(video_id: str, db: AsyncSession = Depends(get_db)):
    """Comments matched by the video's current filtering keyword."""
    return await _list_comments(db, video_id, Comment.is_filtered.is_(True))


@router.get("/{video_id}/comments/summaries", response_model=CommentSummaryListResponse)
async def list_summaries(video_id: str, db: AsyncSession = Depends(get_db)):
    """Analysis summaries, newest first."""
    await _require_video(db, video_id)
    result = await db.execute(
        select(CommentSummary)
        .where(CommentSummary.video_id == video_id)
        .order_by(CommentSummary.created_at.desc(), CommentSummary.id.desc())
    )
    return CommentSummaryListResponse(data=result.scalars().all())
