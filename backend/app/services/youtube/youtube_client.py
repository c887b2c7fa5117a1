"""
Tubepulse YouTube Client — read-only access to the YouTube Data API v3.

Used by:
  - the comment job processor (authoritative author / date / reply metadata
    for a single comment id)
  - the snapshot service (video and channel statistics, uploads listing)
  - competitor registration (handle → channel id resolution)

Dislike counts come from the Return YouTube Dislike API since the Data API
no longer exposes them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import get_settings
from app.core.errors import MetadataLookupError
from app.services.youtube.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)
settings = get_settings()

# videos.list / channels.list accept up to 50 ids per call
MAX_IDS_PER_CALL = 50


@dataclass
class CommentMetadata:
    author_name: Optional[str]
    author_id: Optional[str]
    published_at: Optional[datetime]
    parent_id: Optional[str] = None

    @property
    def is_top_level(self) -> bool:
        return not self.parent_id


@dataclass
class VideoStatistics:
    view_count: Optional[int]
    like_count: Optional[int]
    comment_count: Optional[int]


@dataclass
class VideoInfo:
    video_id: str
    title: Optional[str]
    thumbnail_url: Optional[str]
    published_at: Optional[datetime]
    category_id: Optional[str]


@dataclass
class ChannelInfo:
    youtube_channel_id: str
    title: Optional[str]
    description: Optional[str]
    thumbnail_url: Optional[str]
    uploads_playlist_id: Optional[str]
    subscriber_count: Optional[int]
    video_count: Optional[int]
    view_count: Optional[int]
    published_at: Optional[datetime]
    country: Optional[str]


class YouTubeClient:
    """Thin async wrapper over the Data API endpoints this service needs."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        min_interval: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.youtube_api_key
        self._client = httpx.AsyncClient(
            base_url=settings.youtube_api_base_url,
            timeout=settings.youtube_timeout_seconds,
            transport=transport,
        )
        self._limiter = RateLimiter(
            settings.youtube_min_request_interval if min_interval is None else min_interval
        )

    async def __aenter__(self) -> "YouTubeClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, **params: Any) -> Dict[str, Any]:
        await self._limiter.wait()
        resp = await self._client.get(path, params={**params, "key": self.api_key})
        resp.raise_for_status()
        return resp.json()

    # ── Comments ─────────────────────────────────────────────────────────

    async def get_comment_metadata(self, comment_id: str) -> CommentMetadata:
        """Look up one comment by id. Raises MetadataLookupError on any failure."""
        try:
            data = await self._get("/comments", part="snippet", id=comment_id)
        except (httpx.HTTPError, ValueError) as e:
            raise MetadataLookupError(f"comment {comment_id}: {e}") from e

        items = data.get("items") or []
        if not items:
            raise MetadataLookupError(f"comment {comment_id}: not found")

        snippet = items[0].get("snippet") or {}
        author_channel = snippet.get("authorChannelId") or {}
        return CommentMetadata(
            author_name=snippet.get("authorDisplayName"),
            author_id=author_channel.get("value") if isinstance(author_channel, dict) else author_channel,
            published_at=parse_timestamp(snippet.get("publishedAt")),
            parent_id=snippet.get("parentId"),
        )

    # ── Videos ───────────────────────────────────────────────────────────

    async def get_video_statistics(self, video_id: str) -> Optional[VideoStatistics]:
        data = await self._get("/videos", part="statistics", id=video_id)
        items = data.get("items") or []
        if not items:
            return None
        stats = items[0].get("statistics") or {}
        return VideoStatistics(
            view_count=_to_int(stats.get("viewCount")),
            like_count=_to_int(stats.get("likeCount")),
            comment_count=_to_int(stats.get("commentCount")),
        )

    async def get_dislike_count(self, video_id: str) -> Optional[int]:
        """Best effort. The dislike API is unofficial, so failures yield None."""
        try:
            await self._limiter.wait()
            resp = await self._client.get(settings.youtube_dislike_api_url, params={"videoId": video_id})
            resp.raise_for_status()
            return _to_int(resp.json().get("dislikes"))
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Dislike lookup failed for {video_id}: {e}")
            return None

    async def get_videos(self, video_ids: List[str]) -> List[VideoInfo]:
        videos: List[VideoInfo] = []
        for i in range(0, len(video_ids), MAX_IDS_PER_CALL):
            chunk = video_ids[i:i + MAX_IDS_PER_CALL]
            data = await self._get("/videos", part="snippet", id=",".join(chunk))
            for item in data.get("items") or []:
                snippet = item.get("snippet") or {}
                videos.append(VideoInfo(
                    video_id=item["id"],
                    title=snippet.get("title"),
                    thumbnail_url=_best_thumbnail(snippet.get("thumbnails")),
                    published_at=parse_timestamp(snippet.get("publishedAt")),
                    category_id=snippet.get("categoryId"),
                ))
        return videos

    async def list_upload_ids(self, playlist_id: str, limit: int) -> List[str]:
        """Most recent upload ids from a channel's uploads playlist."""
        ids: List[str] = []
        page_token: Optional[str] = None
        while len(ids) < limit:
            params = {"part": "contentDetails", "playlistId": playlist_id,
                      "maxResults": min(MAX_IDS_PER_CALL, limit - len(ids))}
            if page_token:
                params["pageToken"] = page_token
            data = await self._get("/playlistItems", **params)
            for item in data.get("items") or []:
                vid = (item.get("contentDetails") or {}).get("videoId")
                if vid:
                    ids.append(vid)
            page_token = data.get("nextPageToken")
            if not page_token:
                break
        return ids[:limit]

    # ── Channels ─────────────────────────────────────────────────────────

    async def resolve_handle(self, handle: str) -> Optional[str]:
        """Map an ``@handle`` (without the @) to a UC… channel id."""
        data = await self._get("/channels", part="id", forHandle=handle)
        items = data.get("items") or []
        return items[0].get("id") if items else None

    async def get_channel(self, channel_id: str) -> Optional[ChannelInfo]:
        data = await self._get(
            "/channels", part="snippet,statistics,contentDetails", id=channel_id,
        )
        items = data.get("items") or []
        if not items:
            return None
        item = items[0]
        snippet = item.get("snippet") or {}
        stats = item.get("statistics") or {}
        related = (item.get("contentDetails") or {}).get("relatedPlaylists") or {}
        return ChannelInfo(
            youtube_channel_id=item.get("id", channel_id),
            title=snippet.get("title"),
            description=snippet.get("description"),
            thumbnail_url=_best_thumbnail(snippet.get("thumbnails")),
            uploads_playlist_id=related.get("uploads"),
            subscriber_count=_to_int(stats.get("subscriberCount")),
            video_count=_to_int(stats.get("videoCount")),
            view_count=_to_int(stats.get("viewCount")),
            published_at=parse_timestamp(snippet.get("publishedAt")),
            country=snippet.get("country"),
        )


# ── Helpers ──────────────────────────────────────────────────────────────

def parse_timestamp(ts: Any) -> Optional[datetime]:
    if not ts or not isinstance(ts, str):
        return None
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _best_thumbnail(thumbnails: Optional[Dict[str, Any]]) -> Optional[str]:
    if not thumbnails:
        return None
    for size in ("high", "medium", "default"):
        if size in thumbnails:
            return thumbnails[size].get("url")
    return None
