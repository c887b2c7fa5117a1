"""
Tubepulse Competitor Service

Owners track up to ``settings.max_competitors`` other channels and compare
their recent uploads side by side.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import (
    ChannelNotFoundError, CompetitorLimitError, InvalidChannelUrlError, OwnChannelError,
)
from app.models.models import Channel, CompetitorChannel
from app.services.snapshots.snapshot_service import SnapshotService
from app.services.snapshots.stats import latest_video_snapshots, recent_videos, weekly_uploads

logger = logging.getLogger(__name__)
settings = get_settings()

_CHANNEL_ID_RE = re.compile(r"/channel/(UC[\w-]+)")
_HANDLE_RE = re.compile(r"/@([\w.\-]+)")

COMPARE_VIDEO_COUNT = 3
COMPARE_WEEKS = 5


async def resolve_channel_url(snapshots: SnapshotService, url: str) -> str:
    """YouTube channel id from a ``/channel/UC…`` or ``/@handle`` URL."""
    match = _CHANNEL_ID_RE.search(url)
    if match:
        return match.group(1)
    match = _HANDLE_RE.search(url)
    if match:
        channel_id = await snapshots.youtube.resolve_handle(match.group(1))
        if channel_id:
            return channel_id
        raise ChannelNotFoundError(f"No channel for handle @{match.group(1)}")
    raise InvalidChannelUrlError(f"Unrecognized channel URL: {url}")


async def list_competitors(db: AsyncSession, owner_channel_id: int) -> List[CompetitorChannel]:
    result = await db.execute(
        select(CompetitorChannel)
        .where(CompetitorChannel.owner_channel_id == owner_channel_id)
        .order_by(CompetitorChannel.id)
    )
    return list(result.scalars().unique().all())


async def add_competitor(
    db: AsyncSession, snapshots: SnapshotService, owner: Channel, url: str,
) -> Dict[str, Any]:
    """Link the channel behind ``url`` to ``owner``.

    Raises InvalidChannelUrlError, OwnChannelError, ChannelNotFoundError and
    CompetitorLimitError. Re-adding an existing competitor is a no-op.
    """
    youtube_channel_id = await resolve_channel_url(snapshots, url)
    if youtube_channel_id == owner.youtube_channel_id:
        raise OwnChannelError("Cannot register your own channel as a competitor")

    owner_pk = owner.id
    channel, created = await snapshots.ensure_channel(db, youtube_channel_id)
    channel_pk = channel.id
    if created:
        try:
            await snapshots.sync_channel_videos(db, channel)
        except httpx.HTTPError as e:
            await db.rollback()
            logger.warning(f"Initial video sync failed for {youtube_channel_id}: {e}")

    existing = await db.scalar(
        select(CompetitorChannel).where(
            CompetitorChannel.owner_channel_id == owner_pk,
            CompetitorChannel.channel_id == channel_pk,
        )
    )
    if existing is not None:
        return {"success": True, "message": "Competitor already registered", "channel_id": channel_pk}

    count = await db.scalar(
        select(func.count(CompetitorChannel.id))
        .where(CompetitorChannel.owner_channel_id == owner_pk)
    )
    if (count or 0) >= settings.max_competitors:
        raise CompetitorLimitError(f"At most {settings.max_competitors} competitors per channel")

    db.add(CompetitorChannel(owner_channel_id=owner_pk, channel_id=channel_pk))
    await db.commit()
    logger.info(f"Channel {owner_pk} now tracks competitor {channel_pk}")
    return {"success": True, "message": "Competitor registered", "channel_id": channel_pk}


async def remove_competitor(db: AsyncSession, owner_channel_id: int, channel_id: int) -> bool:
    link = await db.scalar(
        select(CompetitorChannel).where(
            CompetitorChannel.owner_channel_id == owner_channel_id,
            CompetitorChannel.channel_id == channel_id,
        )
    )
    if link is None:
        return False
    await db.delete(link)
    await db.commit()
    return True


async def _channel_comparison(db: AsyncSession, channel: Channel) -> Dict[str, Any]:
    videos = await recent_videos(db, channel.id, COMPARE_VIDEO_COUNT)
    snapshots = await latest_video_snapshots(db, [v.id for v in videos])
    latest = []
    for v in videos:
        s = snapshots.get(v.id)
        latest.append({
            "videoId": v.id,
            "title": v.video_name,
            "thumbnail": v.video_thumbnail_url,
            "uploadDate": v.upload_date,
            "views": s.view_count if s else None,
            "likes": s.like_count if s else None,
            "dislikes": s.dislike_count if s else None,
        })
    return {
        "channelId": channel.id,
        "channelName": channel.channel_name,
        "latestVideos": latest,
        "weeklyUploads": await weekly_uploads(db, channel.id, COMPARE_WEEKS),
    }


async def compare_channels(db: AsyncSession, owner: Channel) -> List[Dict[str, Any]]:
    """Owner first, then each competitor in registration order."""
    channels: List[Optional[Channel]] = [owner]
    channels += [link.channel for link in await list_competitors(db, owner.id)]
    return [await _channel_comparison(db, c) for c in channels if c is not None]
