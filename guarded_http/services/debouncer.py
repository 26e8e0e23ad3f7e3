"""
Debouncer - Collapses rapid repeated requests into one delayed invocation.

Calls sharing a key within the wait window all wait on one shared
future; each call pushes the timer out again, and only the latest
scheduling actually fires. Every caller gets its own shielded view, so a
caller giving up does not abort the dispatch for the others.
"""

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable

from loguru import logger

from guarded_http.utils import canonical_params, settle_future


@dataclass(frozen=True)
class DebounceKey:
    """Debounce identity: target plus canonicalized parameters."""

    target: str
    params: str

    @classmethod
    def build(cls, target: str, params: dict[str, Any] | None = None) -> "DebounceKey":
        return cls(target=target, params=canonical_params(params))

    def __str__(self) -> str:
        return f"{self.target}{self.params}"


@dataclass
class _DebounceEntry:
    future: asyncio.Future[Any]
    handle: asyncio.TimerHandle
    issue_fn: Callable[[], Awaitable[Any]]


class Debouncer:
    """
    Debounces async requests by key.

    Usage:
        debouncer = Debouncer()

        key = DebounceKey.build("/search", {"q": "a"})
        future = debouncer.debounce(key, 0.3, lambda: client.get("/search"))
        response = await future
    """

    def __init__(self, debug: bool = False):
        self._entries: dict[DebounceKey, _DebounceEntry] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._debug = debug
        self._stats = DebouncerStats()

    def debounce(
        self,
        key: DebounceKey,
        wait: float,
        issue_fn: Callable[[], Awaitable[Any]],
    ) -> asyncio.Future[Any]:
        """
        Schedule issue_fn after `wait` seconds, superseding earlier calls.

        Returns:
            A per-caller view of the future shared by every call with this
            key until the timer fires
        """
        loop = asyncio.get_running_loop()
        entry = self._entries.get(key)

        if entry is not None:
            entry.handle.cancel()
            entry.handle = loop.call_later(wait, self._fire, key)
            entry.issue_fn = issue_fn
            self._stats.superseded += 1
            self._log(f"SUPERSEDE: {str(key)[:50]}...")
            return asyncio.shield(entry.future)

        future: asyncio.Future[Any] = loop.create_future()
        handle = loop.call_later(wait, self._fire, key)
        self._entries[key] = _DebounceEntry(future=future, handle=handle, issue_fn=issue_fn)
        self._stats.scheduled += 1
        self._log(f"SCHEDULE: {str(key)[:50]}... in {wait}s")
        return asyncio.shield(future)

    def _fire(self, key: DebounceKey) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return

        self._stats.fired += 1
        self._log(f"FIRE: {str(key)[:50]}...")
        if entry.future.cancelled():
            return

        task = asyncio.ensure_future(entry.issue_fn())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(partial(settle_future, entry.future))

    def cancel_all(self) -> int:
        """Cancel every pending timer and its shared future (and all views of it)."""
        count = len(self._entries)
        for entry in self._entries.values():
            entry.handle.cancel()
            entry.future.cancel()
        self._entries.clear()
        if count:
            self._log(f"CANCEL_ALL: {count} debounced requests cancelled")
        return count

    def get_pending_count(self) -> int:
        """Get number of debounced requests waiting on their timer."""
        return len(self._entries)

    def get_stats(self) -> "DebouncerStats":
        """Get debounce statistics."""
        self._stats.pending = len(self._entries)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Debouncer] {message}")


class DebouncerStats:
    """Statistics for request debouncing."""

    def __init__(self):
        self.scheduled: int = 0  # Distinct debounce entries created
        self.superseded: int = 0  # Calls folded into an existing entry
        self.fired: int = 0  # Timers that fired
        self.pending: int = 0  # Entries currently waiting

    @property
    def collapse_rate(self) -> float:
        """Share of calls that did not cause a dispatch of their own."""
        total = self.scheduled + self.superseded
        if total == 0:
            return 0.0
        return self.superseded / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "scheduled": self.scheduled,
            "superseded": self.superseded,
            "fired": self.fired,
            "pending": self.pending,
            "collapse_rate": f"{self.collapse_rate:.2%}",
        }
