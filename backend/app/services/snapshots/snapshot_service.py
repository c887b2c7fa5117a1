"""
Tubepulse Snapshot Service

Responsibilities:
  - Append VideoSnapshot rows (views, likes, comments, dislikes)
  - Append ChannelSnapshot rows (subscribers, totals, daily / average views)
  - Sync a channel's recent uploads into the Video table
  - Register channels seen for the first time
  - One collection cycle over every active channel (Celery beat)
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.errors import ChannelNotFoundError
from app.models.models import Channel, ChannelSnapshot, Video, VideoSnapshot
from app.services.youtube.youtube_client import YouTubeClient

logger = logging.getLogger(__name__)
settings = get_settings()


def average_view(total_view: Optional[int], total_videos: Optional[int]) -> float:
    if not total_view or not total_videos:
        return 0.0
    return total_view / total_videos


def daily_view(total_view: Optional[int], created: Optional[datetime], now: Optional[datetime] = None) -> float:
    if not total_view or created is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    days = max((now - created).days, 1)
    return total_view / days


class SnapshotService:
    """Writes append-only statistic snapshots from the YouTube Data API."""

    def __init__(self, youtube: YouTubeClient):
        self.youtube = youtube

    # ── Videos ───────────────────────────────────────────────────────────

    async def save_video_snapshot(self, db: AsyncSession, video_id: str) -> Optional[VideoSnapshot]:
        stats = await self.youtube.get_video_statistics(video_id)
        if stats is None:
            logger.warning(f"No statistics for video {video_id}; snapshot skipped")
            return None

        dislikes = await self.youtube.get_dislike_count(video_id)
        snapshot = VideoSnapshot(
            video_id=video_id,
            view_count=stats.view_count,
            like_count=stats.like_count,
            comment_count=stats.comment_count,
            dislike_count=dislikes,
        )
        db.add(snapshot)
        await db.commit()
        return snapshot

    async def sync_channel_videos(self, db: AsyncSession, channel: Channel, limit: Optional[int] = None) -> int:
        """Upsert the channel's most recent uploads. Returns new video count."""
        limit = limit or settings.channel_sync_video_limit
        if not channel.uploads_playlist_id:
            info = await self.youtube.get_channel(channel.youtube_channel_id)
            if info is None or not info.uploads_playlist_id:
                logger.warning(f"Channel {channel.youtube_channel_id} has no uploads playlist")
                return 0
            channel.uploads_playlist_id = info.uploads_playlist_id

        video_ids = await self.youtube.list_upload_ids(channel.uploads_playlist_id, limit)
        infos = await self.youtube.get_videos(video_ids)

        created = 0
        for info in infos:
            video = await db.get(Video, info.video_id)
            if video is None:
                video = Video(id=info.video_id, channel_id=channel.id)
                db.add(video)
                created += 1
            video.video_name = info.title
            video.video_thumbnail_url = info.thumbnail_url
            video.upload_date = info.published_at
            video.category = info.category_id
        await db.commit()

        logger.info(f"Synced {len(infos)} videos for channel {channel.youtube_channel_id} ({created} new)")
        return created

    # ── Channels ─────────────────────────────────────────────────────────

    async def ensure_channel(self, db: AsyncSession, youtube_channel_id: str) -> Tuple[Channel, bool]:
        """Existing channel row, or a new one filled from the API."""
        result = await db.execute(
            select(Channel).where(Channel.youtube_channel_id == youtube_channel_id)
        )
        channel = result.scalar_one_or_none()
        if channel is not None:
            return channel, False

        info = await self.youtube.get_channel(youtube_channel_id)
        if info is None:
            raise ChannelNotFoundError(f"YouTube channel not found: {youtube_channel_id}")

        channel = Channel(
            youtube_channel_id=youtube_channel_id,
            user_id=None,
            channel_name=info.title,
            profile_image_url=info.thumbnail_url,
            channel_intro=info.description,
            uploads_playlist_id=info.uploads_playlist_id,
        )
        db.add(channel)
        await db.commit()
        logger.info(f"Registered channel {youtube_channel_id} ({info.title})")
        return channel, True

    async def save_channel_snapshot(self, db: AsyncSession, channel: Channel) -> Optional[ChannelSnapshot]:
        info = await self.youtube.get_channel(channel.youtube_channel_id)
        if info is None:
            logger.warning(f"No statistics for channel {channel.youtube_channel_id}; snapshot skipped")
            return None

        snapshot = ChannelSnapshot(
            channel_id=channel.id,
            subscriber=info.subscriber_count,
            total_videos=info.video_count,
            total_view=info.view_count,
            channel_created=info.published_at,
            daily_view=daily_view(info.view_count, info.published_at),
            average_view=average_view(info.view_count, info.video_count),
            nation=info.country[:2] if info.country else None,
        )
        db.add(snapshot)
        await db.commit()
        return snapshot

    # ── Collection Cycle ─────────────────────────────────────────────────

    async def collect_all(self, session_factory: async_sessionmaker[AsyncSession]) -> Dict[str, int]:
        """Snapshot every active channel and its recent videos.

        A failure on one channel or video is logged and does not stop the cycle.
        """
        stats = {"channels": 0, "videos": 0, "failed": 0}
        async with session_factory() as db:
            result = await db.execute(select(Channel.id).where(Channel.is_deleted.is_(False)))
            channel_ids = list(result.scalars().all())

        # One session per channel so a rollback never touches the others
        for channel_id in channel_ids:
            async with session_factory() as db:
                channel = await db.get(Channel, channel_id)
                yt_id = channel.youtube_channel_id
                try:
                    await self.sync_channel_videos(db, channel)
                    if await self.save_channel_snapshot(db, channel):
                        stats["channels"] += 1
                except httpx.HTTPError as e:
                    await db.rollback()
                    stats["failed"] += 1
                    logger.error(f"Channel snapshot failed for {yt_id}: {e}")
                    continue

                vid_result = await db.execute(
                    select(Video.id)
                    .where(Video.channel_id == channel_id, Video.is_deleted.is_(False))
                    .order_by(Video.upload_date.desc())
                    .limit(settings.snapshot_recent_videos)
                )
                for video_id in vid_result.scalars().all():
                    try:
                        if await self.save_video_snapshot(db, video_id):
                            stats["videos"] += 1
                    except httpx.HTTPError as e:
                        await db.rollback()
                        stats["failed"] += 1
                        logger.error(f"Video snapshot failed for {video_id}: {e}")

        logger.info(f"Snapshot cycle complete: {stats}")
        return stats
