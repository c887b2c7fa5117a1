"""
Per-video locks serializing comment-mutating jobs (classify, filter).

Two jobs for the same video would otherwise race on the classification
watermark and on the filter reset. Jobs for different videos never contend.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from redis.asyncio import Redis

from app.core.config import get_settings

settings = get_settings()


def comment_lock_key(video_id: str) -> str:
    return f"tubepulse:lock:comments:{video_id}"


class LocalLocks:
    """asyncio locks, valid only when every worker shares one event loop."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        # holders plus waiters per key; the lock is dropped when it reaches zero
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class RedisLocks:
    """Redis locks visible to every worker process."""

    def __init__(self, client: Redis, timeout: int | None = None):
        self._client = client
        self._timeout = timeout or settings.comment_lock_timeout_seconds

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        # timeout bounds how long a crashed holder can block the video
        async with self._client.lock(key, timeout=self._timeout):
            yield
