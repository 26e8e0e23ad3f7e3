"""
Throttler - Enforces a minimum gap between successive dispatches.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class Throttler:
    """
    Spaces out calls so that consecutive dispatches are at least
    `limit` seconds apart. The dispatch time is shared by every call
    going through the same throttler.

    Usage:
        throttler = Throttler()
        response = await throttler.throttle(lambda: client.get("/feed"), limit=1.0)
    """

    def __init__(self, debug: bool = False):
        self._last_dispatch: float | None = None
        self._debug = debug

    @property
    def last_dispatch(self) -> float | None:
        return self._last_dispatch

    async def throttle(self, request_fn: Callable[[], Awaitable[T]], limit: float = 1.0) -> T:
        loop = asyncio.get_running_loop()
        now = loop.time()

        if self._last_dispatch is None or now - self._last_dispatch >= limit:
            self._last_dispatch = now
            return await request_fn()

        # Reserve the slot before sleeping so concurrent callers queue up behind it
        dispatch_at = self._last_dispatch + limit
        self._last_dispatch = dispatch_at
        delay = dispatch_at - now
        if self._debug:
            logger.debug(f"[Throttler] Delaying request by {delay:.3f}s")

        await asyncio.sleep(delay)
        self._last_dispatch = max(self._last_dispatch, loop.time())
        return await request_fn()
