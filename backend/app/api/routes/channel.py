"""
Tubepulse API — Channel dashboard routes.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_channel
from app.core.database import get_db
from app.schemas.schemas import CategoryCount, ChannelVideo, SubscriberPoint
from app.services.snapshots.stats import (
    category_breakdown,
    channel_snapshots,
    format_rate,
    latest_channel_snapshot,
    latest_video_snapshots,
    recent_videos,
)

router = APIRouter(prefix="/channel", tags=["Channel"])

SUBSCRIBER_HISTORY = 5
RECENT_VIDEO_COUNT = 5


@router.get("/{channel_id}/avg-views")
async def get_average_views(channel_id: int, db: AsyncSession = Depends(get_db)):
    """Average views per video from the newest channel snapshot."""
    await require_channel(db, channel_id)
    snapshot = await latest_channel_snapshot(db, channel_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No snapshot for channel")
    return {"channel_id": channel_id, "average_view": snapshot.average_view}


@router.get("/{channel_id}/subscriber-change", response_model=List[SubscriberPoint])
async def get_subscriber_change(channel_id: int, db: AsyncSession = Depends(get_db)):
    await require_channel(db, channel_id)
    snapshots = await channel_snapshots(db, channel_id, SUBSCRIBER_HISTORY)
    return [
        SubscriberPoint(date=s.created_at.date().isoformat(), subscriber=s.subscriber)
        for s in snapshots
    ]


@router.get("/{channel_id}/videos", response_model=List[ChannelVideo])
async def get_channel_videos(channel_id: int, db: AsyncSession = Depends(get_db)):
    """Newest videos with view count plus comment and like rates."""
    await require_channel(db, channel_id)
    videos = await recent_videos(db, channel_id, RECENT_VIDEO_COUNT)
    snapshots = await latest_video_snapshots(db, [v.id for v in videos])

    results = []
    for v in videos:
        s = snapshots.get(v.id)
        views = (s.view_count if s else None) or 0
        results.append(ChannelVideo(
            videoId=v.id,
            title=v.video_name,
            thumbnail=v.video_thumbnail_url,
            publishedAt=v.upload_date.isoformat() if v.upload_date else None,
            viewCount=views,
            commentRate=format_rate(s.comment_count if s else None, views, 3),
            likeRate=format_rate(s.like_count if s else None, views, 1),
        ))
    return results


@router.get("/{channel_id}/categories", response_model=List[CategoryCount])
async def get_categories(channel_id: int, db: AsyncSession = Depends(get_db)):
    await require_channel(db, channel_id)
    return [CategoryCount(**row) for row in await category_breakdown(db, channel_id)]
