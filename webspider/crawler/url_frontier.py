"""
URL Frontier implementation for managing URLs to crawl.
Owns the pending queue, the visited set and the worker bookkeeping
used for quiescence detection.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Set

from .policy import URLPolicy


class URLFrontier:
    """
    Shared crawl state for the worker pool.

    Every mutation of the pending queue, the visited set, the in-flight
    counter and the live-worker count happens inside one critical section
    guarded by a single condition, which also wakes waiting workers.
    """

    def __init__(self, policy: URLPolicy, max_pages: int = 100):
        self.policy = policy
        self.max_pages = max_pages
        self.logger = logging.getLogger(__name__)

        self._pending: Deque[str] = deque()
        self._pending_set: Set[str] = set()
        self._visited: Dict[str, None] = {}
        self._in_flight = 0
        self._live_workers = 0
        self._stopped = False
        self._changed = asyncio.Condition()

    @property
    def visited(self) -> List[str]:
        """URLs dispatched for fetching, in dispatch order."""
        return list(self._visited)

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def live_workers(self) -> int:
        return self._live_workers

    @property
    def stopped(self) -> bool:
        return self._stopped

    def _cap_reached(self) -> bool:
        return len(self._visited) >= self.max_pages

    async def enqueue(self, url: str) -> bool:
        """
        Add a URL to the frontier.

        Returns True if the URL was queued, False if the policy refused it,
        it is already pending or visited, or the page cap is reached.

        Raises:
            MalformedURLError: if the URL is not absolute
        """
        if not self.policy.admit_to_frontier(url):
            return False

        async with self._changed:
            if url in self._pending_set or url in self._visited or self._cap_reached():
                return False
            self._pending.append(url)
            self._pending_set.add(url)
            self._changed.notify()

        self.logger.debug(f"Added URL to frontier: {url}")
        return True

    def _dispatch(self) -> Optional[str]:
        if self._stopped or not self._pending or self._cap_reached():
            return None
        url = self._pending.popleft()
        self._pending_set.discard(url)
        self._visited[url] = None
        self._in_flight += 1
        return url

    async def dequeue(self) -> Optional[str]:
        """
        Pop the oldest pending URL, mark it visited and count it in flight.

        Returns None if nothing is available right now, which does not mean
        the crawl is finished.
        """
        async with self._changed:
            return self._dispatch()

    async def next_target(self) -> Optional[str]:
        """
        Wait for the next URL to fetch.

        Returns None once the crawl is quiescent (nothing pending or nothing
        dispatchable, and no URL in flight) or a stop was requested. A worker
        that gets a URL must call task_done() when it has finished with it.
        """
        async with self._changed:
            while True:
                if self._stopped:
                    return None
                url = self._dispatch()
                if url is not None:
                    return url
                if self._in_flight == 0:
                    # Nobody can produce more work; let the siblings see it too
                    self._changed.notify_all()
                    return None
                await self._changed.wait()

    async def task_done(self):
        """Release the in-flight slot taken by next_target()/dequeue()."""
        async with self._changed:
            self._in_flight -= 1
            self._changed.notify_all()

    async def mark_visited(self, url: str):
        """Record a URL fetched outside the worker pool (the seed page)."""
        async with self._changed:
            self._visited[url] = None

    async def worker_started(self):
        async with self._changed:
            self._live_workers += 1

    async def worker_exited(self) -> int:
        """Unregister a worker; returns the number of workers still live."""
        async with self._changed:
            self._live_workers -= 1
            self._changed.notify_all()
            return self._live_workers

    async def stop(self):
        """Ask every worker to exit at its next loop iteration."""
        async with self._changed:
            self._stopped = True
            self._changed.notify_all()

    async def wait_for_workers(self):
        """Block until every registered worker has exited."""
        async with self._changed:
            await self._changed.wait_for(lambda: self._live_workers == 0)

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'pending': len(self._pending),
            'visited': len(self._visited),
            'in_flight': self._in_flight,
            'live_workers': self._live_workers,
            'max_pages': self.max_pages,
        }
