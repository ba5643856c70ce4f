"""In-memory expiring-entry cache with an asyncio sweep task."""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger("ghpulse.cache")

DEFAULT_TTL = 5 * 60.0
DEFAULT_MAX_SIZE = 1000
DEFAULT_SWEEP_INTERVAL = 60.0


@dataclass
class _Entry:
    data: Any
    stored_at: float
    ttl: float


class TTLCache:
    """String-keyed cache whose entries expire *ttl* seconds after being set.

    Expired entries are dropped lazily on access and eagerly by a background
    sweep task started with :meth:`start`.  When the cache is full, the oldest
    entry is evicted to make room.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._sweeper: asyncio.Task[None] | None = None
        self._hits = 0
        self._misses = 0

    # ── lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="ttl-cache-sweep")

    async def close(self) -> None:
        """Stop the sweep task and drop every entry."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        self._entries.clear()

    async def __aenter__(self) -> TTLCache:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None or self._expired(entry):
            self._entries.pop(key, None)
            self._misses += 1
            return None
        self._hits += 1
        return entry.data

    def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()
        self._entries[key] = _Entry(data=data, stored_at=self._clock(), ttl=ttl or self.default_ttl)

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._expired(entry):
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching the regular expression *pattern*."""
        regex = re.compile(pattern)
        doomed = [key for key in self._entries if regex.search(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def sweep(self) -> int:
        """Drop expired entries now.  Returns the number removed."""
        doomed = [key for key, entry in self._entries.items() if self._expired(entry)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }

    # ── internal ───────────────────────────────────────────────────────────

    def _expired(self, entry: _Entry) -> bool:
        return self._clock() - entry.stored_at > entry.ttl

    def _evict_oldest(self) -> None:
        if not self._entries:
            return
        oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
        del self._entries[oldest]

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                log.debug("cache.swept", removed=removed, size=len(self._entries))
