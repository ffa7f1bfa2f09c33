"""
Append-only streams read by independent cursors.

The output stream carries discovered URLs to the invoking program and to
every plugin; the status stream carries progress messages. Entries are
never removed, so each consumer keeps its own read offset.
"""

import asyncio
import logging
from typing import Generic, List, Optional, Set, TypeVar

from .policy import URLPolicy, strip_fragment


T = TypeVar('T')


class Stream(Generic[T]):
    """An append-only sequence that wakes readers when it grows or closes."""

    def __init__(self):
        self._entries: List[T] = []
        self._closed = False
        self._changed = asyncio.Condition()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> List[T]:
        """Copy of every entry appended so far."""
        return list(self._entries)

    async def append(self, entry: T):
        async with self._changed:
            self._entries.append(entry)
            self._changed.notify_all()

    async def close(self):
        """Mark the producer side finished; readers drain and then stop."""
        async with self._changed:
            self._closed = True
            self._changed.notify_all()

    def cursor(self) -> 'StreamCursor[T]':
        return StreamCursor(self)

    async def _read(self, cursor: 'StreamCursor[T]') -> Optional[T]:
        async with self._changed:
            await self._changed.wait_for(
                lambda: cursor.offset < len(self._entries) or self._closed
            )
            return self._take(cursor)

    def _take(self, cursor: 'StreamCursor[T]') -> Optional[T]:
        if cursor.offset < len(self._entries):
            entry = self._entries[cursor.offset]
            cursor.offset += 1
            return entry
        return None


class StreamCursor(Generic[T]):
    """A consumer-local read position in a stream."""

    def __init__(self, stream: Stream[T]):
        self.stream = stream
        self.offset = 0

    async def read_next(self) -> Optional[T]:
        """
        Return the next unread entry.

        Waits while the cursor is at the end of an open stream; returns None
        once the stream is closed and fully read.
        """
        return await self.stream._read(self)

    def poll(self) -> Optional[T]:
        """Return the next unread entry without waiting, or None."""
        return self.stream._take(self)

    @property
    def exhausted(self) -> bool:
        return self.stream.closed and self.offset >= len(self.stream)

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        entry = await self.read_next()
        if entry is None:
            raise StopAsyncIteration
        return entry


class OutputStream(Stream[str]):
    """Deduplicated stream of discovered URLs."""

    def __init__(self, policy: URLPolicy):
        super().__init__()
        self.policy = policy
        self._yielded: Set[str] = set()

    async def publish(self, url: str) -> bool:
        """
        Yield a URL to consumers.

        Returns False if the URL is filtered out or was already yielded.
        """
        url = strip_fragment(url)
        if not self.policy.admit_to_output(url):
            return False

        async with self._changed:
            if url in self._yielded:
                return False
            self._yielded.add(url)
            self._entries.append(url)
            self._changed.notify_all()
        return True


class StatusStream(Stream[str]):
    """Progress and error messages produced by the crawl."""

    def __init__(self):
        super().__init__()
        self.logger = logging.getLogger(__name__)

    async def status(self, message: str):
        self.logger.debug(message)
        await self.append(message)
