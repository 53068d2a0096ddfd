# mirrorurl/crawler/frontier.py
"""
Crawl frontier: the queue of discovered-but-not-fetched targets together
with the visited set.

Workers never see the containers themselves. Every mutation goes through
one ``asyncio.Condition`` so that the visited check and the insert happen
as a single step, however many workers discover the same URL at once.

Life cycle::

    IDLE --start()--> RUNNING --(queue empty, nothing in flight | close())--> DRAINING --finish()--> DONE
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from enum import Enum
from typing import List, Optional, Tuple

from mirrorurl.crawler.models import CrawlTarget
from mirrorurl.logger import get_logger

log = get_logger("frontier")


class CrawlState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


class Frontier:
    """Breadth-first work queue with atomic de-duplication and timed retries."""

    def __init__(self, max_pages: Optional[int] = None) -> None:
        self.max_pages = max_pages
        self._visited: set[str] = set()
        self._ready: List[Tuple[int, int, CrawlTarget]] = []
        self._deferred: List[Tuple[float, int, CrawlTarget]] = []
        self._seq = itertools.count()
        self._in_flight = 0
        self._cond = asyncio.Condition()
        self._state = CrawlState.IDLE

    # ------------------------------------------------------------------ #
    # Introspection                                                       #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> CrawlState:
        return self._state

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    @property
    def limit_reached(self) -> bool:
        return self.max_pages is not None and len(self._visited) >= self.max_pages

    def is_visited(self, url: str) -> bool:
        return url in self._visited

    @property
    def closed(self) -> bool:
        return self._state in (CrawlState.DRAINING, CrawlState.DONE)

    def pending(self) -> int:
        """Queued, deferred and in-flight targets."""
        return len(self._ready) + len(self._deferred) + self._in_flight

    # ------------------------------------------------------------------ #
    # Life cycle                                                          #
    # ------------------------------------------------------------------ #
    def start(self) -> None:
        if self._state is not CrawlState.IDLE:
            raise RuntimeError(f"frontier already {self._state.value}")
        self._state = CrawlState.RUNNING

    async def close(self) -> List[CrawlTarget]:
        """Stop handing out work and return the queued targets that were dropped.

        In-flight targets may still complete.
        """
        async with self._cond:
            dropped: List[CrawlTarget] = []
            if self._state in (CrawlState.IDLE, CrawlState.RUNNING):
                dropped = self._take_queued()
                if dropped:
                    log.info("Cancelled: %d queued URL(s) will not be fetched", len(dropped))
                self._state = CrawlState.DRAINING
            self._cond.notify_all()
            return dropped

    def abandon(self) -> List[CrawlTarget]:
        """Synchronous close for a cancelled run; the lock may be held by a dying task."""
        if self._state is CrawlState.DONE:
            return []
        self._state = CrawlState.DRAINING
        return self._take_queued()

    def finish(self) -> None:
        if self._in_flight:
            raise RuntimeError(f"{self._in_flight} target(s) still in flight")
        self._state = CrawlState.DONE

    # ------------------------------------------------------------------ #
    # Queue operations                                                    #
    # ------------------------------------------------------------------ #
    async def offer(self, target: CrawlTarget) -> bool:
        """Enqueue *target* unless its URL was seen before. Atomic."""
        async with self._cond:
            if target.url in self._visited:
                return False
            if self.closed or self.limit_reached:
                return False
            self._visited.add(target.url)
            heapq.heappush(self._ready, (target.depth, next(self._seq), target))
            self._cond.notify()
            return True

    async def claim(self, url: str) -> bool:
        """Mark *url* visited without queueing it (e.g. a redirect target)."""
        async with self._cond:
            if url in self._visited:
                return False
            self._visited.add(url)
            return True

    async def get(self) -> Optional[CrawlTarget]:
        """Next target, or ``None`` when the crawl is draining."""
        async with self._cond:
            while True:
                if self._state is not CrawlState.RUNNING:
                    return None
                self._promote_deferred()
                if self._ready:
                    _, _, target = heapq.heappop(self._ready)
                    self._in_flight += 1
                    return target
                if not self._deferred and not self._in_flight:
                    self._state = CrawlState.DRAINING
                    self._cond.notify_all()
                    return None
                timeout = None
                if self._deferred:
                    timeout = max(0.0, self._deferred[0][0] - time.monotonic())
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout)
                except asyncio.TimeoutError:
                    pass

    async def task_done(self, target: CrawlTarget) -> None:
        async with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    async def defer(self, target: CrawlTarget) -> bool:
        """Put an in-flight *target* back, due at ``target.retry.not_before``.

        Returns ``False`` when the frontier is closed and the retry is dropped.
        """
        async with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()
            if self._state is not CrawlState.RUNNING:
                return False
            heapq.heappush(self._deferred, (target.retry.not_before, next(self._seq), target))
            return True

    def _promote_deferred(self) -> None:
        now = time.monotonic()
        while self._deferred and self._deferred[0][0] <= now:
            _, seq, target = heapq.heappop(self._deferred)
            heapq.heappush(self._ready, (target.depth, seq, target))

    def _take_queued(self) -> List[CrawlTarget]:
        queued = sorted(self._ready) + sorted(self._deferred)
        self._ready.clear()
        self._deferred.clear()
        return [target for _, _, target in queued]
