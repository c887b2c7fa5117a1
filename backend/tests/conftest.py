"""
Shared fixtures: throwaway SQLite database, fake YouTube Data API and fake
workflow webhooks served through ``httpx.MockTransport``.
"""
from __future__ import annotations

import json
import os

# Settings are read once at import time by several modules
os.environ.setdefault("TUBEPULSE_DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TUBEPULSE_JOB_BACKEND", "memory")
os.environ.setdefault("TUBEPULSE_YOUTUBE_API_KEY", "test-key")
os.environ.setdefault("TUBEPULSE_YOUTUBE_MIN_REQUEST_INTERVAL", "0")
os.environ.setdefault("TUBEPULSE_WORKFLOW_BASE_URL", "http://workflow.test/webhook")

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from app.core.database import init_db, make_engine, make_session_factory
from app.models.models import Channel, Comment, Video
from app.services.jobs.locks import LocalLocks
from app.services.jobs.processor import JobProcessor
from app.services.workflow.workflow_client import WorkflowClient
from app.services.youtube.youtube_client import YouTubeClient


# ── Database ─────────────────────────────────────────────────────────────

@pytest.fixture
async def engine(tmp_path):
    # File-backed so concurrent sessions see the same data
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'tubepulse.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def add_channel(session_factory, youtube_channel_id: str = "UCowner", **fields) -> int:
    async with session_factory() as s:
        channel = Channel(youtube_channel_id=youtube_channel_id, channel_name=fields.pop("channel_name", "Owner"), **fields)
        s.add(channel)
        await s.commit()
        return channel.id


async def add_video(session_factory, video_id: str = "vid1", **fields) -> str:
    async with session_factory() as s:
        s.add(Video(id=video_id, video_name=fields.pop("video_name", f"Video {video_id}"), **fields))
        await s.commit()
    return video_id


async def add_comment(session_factory, youtube_comment_id: str, video_id: str = "vid1", **fields) -> None:
    fields.setdefault("comment", f"text of {youtube_comment_id}")
    fields.setdefault("comment_type", 0)
    async with session_factory() as s:
        s.add(Comment(youtube_comment_id=youtube_comment_id, video_id=video_id, **fields))
        await s.commit()


# ── Fake YouTube Data API ────────────────────────────────────────────────

class FakeYouTubeAPI:
    """In-memory stand-in for the handful of Data API endpoints we call."""

    def __init__(self):
        self.comments: Dict[str, Dict[str, Any]] = {}
        self.failing_comments: set = set()
        self.video_stats: Dict[str, Dict[str, str]] = {}
        self.video_snippets: Dict[str, Dict[str, Any]] = {}
        self.channels: Dict[str, Dict[str, Any]] = {}
        self.handles: Dict[str, str] = {}
        self.playlists: Dict[str, List[str]] = {}
        self.dislikes: Dict[str, int] = {}
        self.requests: List[httpx.Request] = []

    def add_comment(self, comment_id: str, author: str = "author", parent_id: Optional[str] = None,
                    published_at: str = "2024-03-01T10:00:00Z") -> None:
        snippet = {
            "authorDisplayName": author,
            "authorChannelId": {"value": f"UC-{author}"},
            "publishedAt": published_at,
        }
        if parent_id:
            snippet["parentId"] = parent_id
        self.comments[comment_id] = snippet

    def add_channel(self, channel_id: str, title: str = "Channel", subscribers: int = 100,
                    videos: int = 10, views: int = 5000, uploads: Optional[List[str]] = None) -> None:
        playlist = f"UU{channel_id[2:]}"
        self.channels[channel_id] = {
            "id": channel_id,
            "snippet": {
                "title": title,
                "description": f"{title} intro",
                "publishedAt": "2020-01-01T00:00:00Z",
                "country": "KR",
                "thumbnails": {"default": {"url": f"https://img.test/{channel_id}.jpg"}},
            },
            "statistics": {
                "subscriberCount": str(subscribers),
                "videoCount": str(videos),
                "viewCount": str(views),
            },
            "contentDetails": {"relatedPlaylists": {"uploads": playlist}},
        }
        self.playlists[playlist] = list(uploads or [])

    def add_video(self, video_id: str, title: str = "Video", published_at: str = "2024-03-01T00:00:00Z",
                  views: int = 1000, likes: int = 50, comments: int = 5) -> None:
        self.video_snippets[video_id] = {
            "title": title,
            "publishedAt": published_at,
            "categoryId": "22",
            "thumbnails": {"high": {"url": f"https://img.test/{video_id}.jpg"}},
        }
        self.video_stats[video_id] = {
            "viewCount": str(views), "likeCount": str(likes), "commentCount": str(comments),
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        path = request.url.path

        if request.url.host == "returnyoutubedislikeapi.com":
            vid = params.get("videoId")
            if vid not in self.dislikes:
                return httpx.Response(404)
            return httpx.Response(200, json={"id": vid, "dislikes": self.dislikes[vid]})

        if path.endswith("/comments"):
            cid = params.get("id")
            if cid in self.failing_comments:
                return httpx.Response(500, json={"error": "backend error"})
            items = [{"id": cid, "snippet": self.comments[cid]}] if cid in self.comments else []
            return httpx.Response(200, json={"items": items})

        if path.endswith("/videos"):
            ids = params.get("id", "").split(",")
            part = params.get("part")
            items = []
            for vid in ids:
                if part == "statistics" and vid in self.video_stats:
                    items.append({"id": vid, "statistics": self.video_stats[vid]})
                elif part == "snippet" and vid in self.video_snippets:
                    items.append({"id": vid, "snippet": self.video_snippets[vid]})
            return httpx.Response(200, json={"items": items})

        if path.endswith("/playlistItems"):
            ids = self.playlists.get(params.get("playlistId"), [])
            limit = int(params.get("maxResults", 50))
            items = [{"contentDetails": {"videoId": v}} for v in ids[:limit]]
            return httpx.Response(200, json={"items": items})

        if path.endswith("/channels"):
            if "forHandle" in params:
                cid = self.handles.get(params["forHandle"])
                return httpx.Response(200, json={"items": [{"id": cid}] if cid else []})
            cid = params.get("id")
            items = [self.channels[cid]] if cid in self.channels else []
            return httpx.Response(200, json={"items": items})

        return httpx.Response(404)


@pytest.fixture
def youtube_api():
    return FakeYouTubeAPI()


@pytest.fixture
async def youtube(youtube_api):
    client = YouTubeClient(transport=httpx.MockTransport(youtube_api.handler), min_interval=0)
    yield client
    await client.aclose()


# ── Fake workflow webhooks ───────────────────────────────────────────────

class FakeWorkflow:
    """Per-webhook canned responses; records every request body."""

    def __init__(self):
        self.responses: Dict[str, Callable[[Dict[str, Any]], httpx.Response]] = {}
        self.calls: List[tuple] = []

    def respond(self, path: str, body: Any = None, *, status: int = 200, text: Optional[str] = None) -> None:
        def reply(_payload):
            if text is not None:
                return httpx.Response(status, text=text)
            return httpx.Response(status, json=body)
        self.responses[path] = reply

    def respond_with(self, path: str, fn: Callable[[Dict[str, Any]], httpx.Response]) -> None:
        self.responses[path] = fn

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.rsplit("/", 1)[-1]
        payload = json.loads(request.content or b"{}")
        self.calls.append((path, payload))
        reply = self.responses.get(path)
        if reply is None:
            return httpx.Response(404, text="no such webhook")
        return reply(payload)


@pytest.fixture
def workflow_api():
    return FakeWorkflow()


@pytest.fixture
async def workflow(workflow_api):
    client = WorkflowClient(transport=httpx.MockTransport(workflow_api.handler))
    yield client
    await client.aclose()


@pytest.fixture
def processor(session_factory, workflow, youtube):
    return JobProcessor(
        session_factory=session_factory,
        workflow=workflow,
        youtube=youtube,
        locks=LocalLocks(),
    )


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
