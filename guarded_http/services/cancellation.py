"""
CancellationRegistry - Cooperative cancellation of in-flight requests.

A CancelToken travels with the request through the pipeline. Cancelling
it aborts whatever the request is currently waiting on (transport call,
backoff sleep, offline parking) and rejects it with CancellationError.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generator, Generic, TypeVar

from loguru import logger

from guarded_http.services.errors import CancellationError

T = TypeVar("T")


class CancelToken:
    """Cancellation signal shared between a caller and its request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Request canceled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise CancellationError(self.reason or "Request canceled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the token fires first.

        On cancellation the underlying task is cancelled (which aborts the
        transport call) and CancellationError is raised.
        """
        task = asyncio.ensure_future(awaitable)
        if self.is_cancelled:
            task.cancel()
            self.raise_if_cancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        raise CancellationError(self.reason or "Request canceled")


@dataclass(eq=False)
class CancellationHandle:
    """Registered cancellation handle."""

    token: CancelToken
    group: str | None = None


@dataclass
class CancelableRequest(Generic[T]):
    """A request that can be aborted by the caller."""

    request: "asyncio.Task[T]"
    handle: CancellationHandle
    _registry: "CancellationRegistry" = field(repr=False)

    def cancel(self, reason: str = "Request canceled") -> None:
        """Signal the transport to abort and drop the handle."""
        self.handle.token.cancel(reason)
        self._registry.discard(self.handle)

    def __await__(self) -> Generator[Any, None, T]:
        return self.request.__await__()


class CancellationRegistry:
    """
    Tracks cancelable requests.

    Usage:
        registry = CancellationRegistry()
        pending = registry.issue_cancelable(
            lambda token: client.get("/slow", cancel_token=token)
        )
        pending.cancel()          # or registry.cancel_all()
        await pending             # raises CancellationError
    """

    def __init__(self) -> None:
        self._handles: set[CancellationHandle] = set()

    def issue_cancelable(
        self,
        request_fn: Callable[[CancelToken], Awaitable[T]],
        group: str | None = None,
    ) -> CancelableRequest[T]:
        """Register a handle and start the request bound to its token."""
        handle = CancellationHandle(token=CancelToken(), group=group)
        self._handles.add(handle)

        task = asyncio.ensure_future(request_fn(handle.token))
        task.add_done_callback(lambda _: self.discard(handle))
        return CancelableRequest(request=task, handle=handle, _registry=self)

    def discard(self, handle: CancellationHandle) -> None:
        self._handles.discard(handle)

    def cancel_all(self, reason: str = "Canceled by user") -> int:
        """Cancel every registered request and clear the registry."""
        handles = list(self._handles)
        self._handles.clear()
        for handle in handles:
            handle.token.cancel(reason)
        if handles:
            logger.info(f"[Cancellation] {len(handles)} requests cancelled")
        return len(handles)

    def cancel_group(self, group: str, reason: str = "Canceled by user") -> int:
        """Cancel the registered requests of one group."""
        handles = [h for h in self._handles if h.group == group]
        for handle in handles:
            self._handles.discard(handle)
            handle.token.cancel(reason)
        return len(handles)

    def __len__(self) -> int:
        return len(self._handles)
