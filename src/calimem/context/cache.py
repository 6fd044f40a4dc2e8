from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedSummary:
    summary: str
    computed_at: float


class SummaryCache:
    """TTL cache of narrative summaries keyed by buffer snapshot.

    Reads never evict. An entry older than the TTL is reported as a miss but
    stays in the map until the next sweep, either explicit or from the
    background task started with `start()`.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CachedSummary] = {}
        self._sweeper: asyncio.Task[None] | None = None

    @staticmethod
    def key_for(message_ids: Iterable[str]) -> str:
        return json.dumps(list(message_ids))

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.computed_at < self.ttl_seconds:
            return entry.summary
        return None

    def set(self, key: str, summary: str) -> None:
        self._entries[key] = CachedSummary(summary=summary, computed_at=self._clock())

    def sweep(self) -> int:
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.computed_at > self.ttl_seconds
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the periodic sweep. Must be called from a running event loop."""
        if self.running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.ttl_seconds)
            removed = self.sweep()
            if removed:
                logger.debug("Swept %d expired summary cache entries", removed)
