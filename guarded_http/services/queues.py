"""
Deferred request queues.

- RateLimitQueue: FIFO queue started one entry at a time, with a fixed
  delay between starts
- OfflineQueue: requests parked while connectivity is down, replayed on
  reconnect
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable

from loguru import logger

from guarded_http.utils import settle_future


@dataclass
class QueueEntry:
    """A deferred invocation and the future its caller is waiting on."""

    thunk: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]


class _TaskOwner:
    """Keeps references to background tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def _start(self, entry: QueueEntry) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(entry.thunk())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(partial(settle_future, entry.future))
        return task


class RateLimitQueue(_TaskOwner):
    """
    Serializes request starts with a minimum spacing.

    Usage:
        queue = RateLimitQueue(delay=0.3)
        response = await queue.enqueue(lambda: client.get("/items"))
    """

    def __init__(self, delay: float = 0.3, debug: bool = False):
        super().__init__()
        self._delay = delay
        self._queue: deque[QueueEntry] = deque()
        self._drain_task: asyncio.Task[None] | None = None
        self._debug = debug

    @property
    def is_processing(self) -> bool:
        return self._drain_task is not None

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, request_fn: Callable[[], Awaitable[Any]]) -> asyncio.Future[Any]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._queue.append(QueueEntry(thunk=request_fn, future=future))
        if self._drain_task is None:
            self._drain_task = loop.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        try:
            while self._queue:
                entry = self._queue.popleft()
                if not entry.future.cancelled():
                    self._start(entry)
                    if self._debug:
                        logger.debug(
                            f"[RateLimitQueue] Dispatched, {len(self._queue)} remaining"
                        )
                await asyncio.sleep(self._delay)
        finally:
            self._drain_task = None

    def cancel_all(self) -> int:
        """Drop queued entries that have not started."""
        count = len(self._queue)
        while self._queue:
            self._queue.popleft().future.cancel()
        if self._drain_task is not None:
            self._drain_task.cancel()
        return count


class OfflineQueue(_TaskOwner):
    """
    Buffers requests while the network is down.

    Replay issues the parked requests in insertion order. By default they
    then run concurrently, so completion order (and the order of their
    side effects) is not guaranteed. With `sequential=True` each replayed
    request finishes before the next one starts.
    """

    def __init__(self, sequential: bool = False, debug: bool = False):
        super().__init__()
        self._entries: list[QueueEntry] = []
        self._sequential = sequential
        self._debug = debug

    @property
    def pending_count(self) -> int:
        return len(self._entries)

    def defer(self, thunk: Callable[[], Awaitable[Any]]) -> asyncio.Future[Any]:
        """Park a request; the returned future settles when it is replayed."""
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._entries.append(QueueEntry(thunk=thunk, future=future))
        return future

    def replay(self) -> asyncio.Task[int]:
        """Issue every parked request. The task result is the number issued."""
        entries = [e for e in self._entries if not e.future.cancelled()]
        self._entries = []
        logger.info(f"[OfflineQueue] Network restored, retrying {len(entries)} queued requests")
        return asyncio.ensure_future(self._replay(entries))

    async def _replay(self, entries: list[QueueEntry]) -> int:
        for entry in entries:
            if entry.future.cancelled():
                continue
            task = self._start(entry)
            if self._sequential:
                # outcome is delivered through entry.future
                await asyncio.wait({task})
        return len(entries)

    def cancel_all(self) -> int:
        count = len(self._entries)
        for entry in self._entries:
            entry.future.cancel()
        self._entries = []
        return count
