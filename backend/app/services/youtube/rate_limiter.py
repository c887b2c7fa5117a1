"""
Shared rate limiting for YouTube Data API requests.
"""
from __future__ import annotations

import asyncio
import time


class RateLimiter:
    """Enforces a minimum interval between calls made through ``wait()``.

    One instance is shared per client so concurrent callers queue on the lock
    instead of bursting the quota.
    """

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self._last_call = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        if self.min_interval <= 0:
            return
        async with self._lock:
            elapsed = time.monotonic() - self._last_call
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self._last_call = time.monotonic()
