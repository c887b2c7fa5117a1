"""
Tubepulse API — Video statistics routes.

Per-video numbers come from the newest VideoSnapshot of each video.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_channel
from app.core.database import get_db
from app.schemas.schemas import VideoCommentRate, VideoLikeRate, VideoWatch
from app.services.snapshots.stats import format_rate, latest_video_snapshots, recent_videos

router = APIRouter(prefix="/videos", tags=["Videos"])

RECENT_VIDEO_COUNT = 5


async def _recent_with_snapshots(db: AsyncSession, channel_id: int):
    await require_channel(db, channel_id)
    videos = await recent_videos(db, channel_id, RECENT_VIDEO_COUNT)
    # Batch fetch snapshots, eliminates N+1
    snapshots = await latest_video_snapshots(db, [v.id for v in videos])
    return [(v, snapshots.get(v.id)) for v in videos]


@router.get("/watches", response_model=List[VideoWatch])
async def list_watches(channel_id: int = Query(...), db: AsyncSession = Depends(get_db)):
    """View counts of the channel's newest videos."""
    rows = await _recent_with_snapshots(db, channel_id)
    return [
        VideoWatch(
            videoId=v.id,
            title=v.video_name,
            viewCount=(s.view_count if s else None) or 0,
            uploadDate=v.upload_date,
        )
        for v, s in rows
    ]


@router.get("/likes", response_model=List[VideoLikeRate])
async def list_like_rates(channel_id: int = Query(...), db: AsyncSession = Depends(get_db)):
    rows = await _recent_with_snapshots(db, channel_id)
    results = []
    for v, s in rows:
        views = (s.view_count if s else None) or 0
        likes = (s.like_count if s else None) or 0
        results.append(VideoLikeRate(
            videoId=v.id,
            title=v.video_name,
            likeCount=likes,
            viewCount=views,
            commentCount=(s.comment_count if s else None) or 0,
            likeRate=format_rate(likes, views, 2),
            uploadDate=v.upload_date,
        ))
    return results


@router.get("/comments", response_model=List[VideoCommentRate])
async def list_comment_rates(channel_id: int = Query(...), db: AsyncSession = Depends(get_db)):
    rows = await _recent_with_snapshots(db, channel_id)
    results = []
    for v, s in rows:
        views = (s.view_count if s else None) or 0
        comments = (s.comment_count if s else None) or 0
        results.append(VideoCommentRate(
            videoId=v.id,
            title=v.video_name,
            commentCount=comments,
            viewCount=views,
            commentRate=format_rate(comments, views, 2),
            uploadDate=v.upload_date,
        ))
    return results
