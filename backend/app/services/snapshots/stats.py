"""
Derived statistics over the snapshot tables (read side).

Snapshots are append-only, so the row with the highest id for an entity is
its most recent one.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.models import ChannelSnapshot, Video, VideoSnapshot


def format_rate(part: Optional[int], whole: Optional[int], digits: int) -> str:
    """``part / whole`` as a percentage string; zero when either side is empty."""
    if not part or not whole:
        return f"{0:.{digits}f}%"
    return f"{part / whole * 100:.{digits}f}%"


async def recent_videos(db: AsyncSession, channel_id: int, limit: int) -> List[Video]:
    """Newest uploads first."""
    result = await db.execute(
        select(Video)
        .where(Video.channel_id == channel_id, Video.is_deleted.is_(False))
        .order_by(Video.upload_date.desc(), Video.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def latest_video_snapshots(db: AsyncSession, video_ids: Iterable[str]) -> Dict[str, VideoSnapshot]:
    """Newest snapshot per video in a single query."""
    video_ids = list(video_ids)
    if not video_ids:
        return {}
    newest = (
        select(func.max(VideoSnapshot.id))
        .where(VideoSnapshot.video_id.in_(video_ids))
        .group_by(VideoSnapshot.video_id)
    )
    result = await db.execute(select(VideoSnapshot).where(VideoSnapshot.id.in_(newest)))
    return {s.video_id: s for s in result.scalars().all()}


async def latest_channel_snapshot(db: AsyncSession, channel_id: int) -> Optional[ChannelSnapshot]:
    result = await db.execute(
        select(ChannelSnapshot)
        .where(ChannelSnapshot.channel_id == channel_id)
        .order_by(ChannelSnapshot.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def channel_snapshots(db: AsyncSession, channel_id: int, limit: int) -> List[ChannelSnapshot]:
    """Last ``limit`` snapshots, oldest first."""
    result = await db.execute(
        select(ChannelSnapshot)
        .where(ChannelSnapshot.channel_id == channel_id)
        .order_by(ChannelSnapshot.id.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


def week_starts(weeks: int, now: Optional[datetime] = None) -> List[datetime]:
    """Sunday-midnight starts of the current and previous weeks, oldest first."""
    now = now or datetime.now(timezone.utc)
    days_since_sunday = (now.weekday() + 1) % 7
    this_week = (now - timedelta(days=days_since_sunday)).replace(
        hour=0, minute=0, second=0, microsecond=0,
    )
    return [this_week - timedelta(weeks=i) for i in reversed(range(weeks))]


async def weekly_uploads(
    db: AsyncSession, channel_id: int, weeks: int = 5, now: Optional[datetime] = None,
) -> List[Dict[str, object]]:
    counts = []
    for start in week_starts(weeks, now):
        end = start + timedelta(days=7)
        count = await db.scalar(
            select(func.count(Video.id)).where(
                Video.channel_id == channel_id,
                Video.upload_date >= start,
                Video.upload_date < end,
            )
        )
        counts.append({"week": start.date().isoformat(), "count": count or 0})
    return counts


async def category_breakdown(db: AsyncSession, channel_id: int) -> List[Dict[str, object]]:
    result = await db.execute(
        select(Video.category, func.count(Video.id))
        .where(Video.channel_id == channel_id, Video.is_deleted.is_(False))
        .group_by(Video.category)
        .order_by(func.count(Video.id).desc())
    )
    return [{"category": cat, "count": cnt} for cat, cnt in result.all()]
