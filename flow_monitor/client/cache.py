# flow_monitor/client/cache.py
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: Any
    fetched_at: float


class TTLCache:
    """Process-local cache keyed by endpoint identity.

    ``get_or_fetch`` returns a fresh entry without touching the network. On a
    miss only one fetch per key is in flight; concurrent callers await the same
    task. A failed fetch falls back to the last cached value, even when stale,
    or ``None`` when the key was never fetched.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        return entry.data if entry else None

    def is_fresh(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() - entry.fetched_at < self.ttl_seconds

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        if self.is_fresh(key):
            return self._entries[key].data

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._refresh(key, fetch))
            self._inflight[key] = task
        # shield: 单个调用方被取消时不影响共享的请求
        return await asyncio.shield(task)

    async def _refresh(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        try:
            data = await fetch()
        except Exception as e:
            logger.error(f"Error fetching {key}: {e}")
            return self.get(key)
        else:
            self._entries[key] = CacheEntry(data=data, fetched_at=self._clock())
            return data
        finally:
            self._inflight.pop(key, None)
