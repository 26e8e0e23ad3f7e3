import asyncio
import inspect
import json
from typing import Any, Awaitable, TypeVar

T = TypeVar("T")


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Await value if it is awaitable, otherwise return it as is."""
    if inspect.isawaitable(value):
        return await value
    return value


def canonical_params(params: dict[str, Any] | None) -> str:
    """Stable serialization of query parameters (sorted keys)."""
    return json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)


def settle_future(future: asyncio.Future[Any], task: asyncio.Future[Any]) -> None:
    """
    Copy the outcome of a finished task into a pending future.

    A future already settled elsewhere (e.g. cancelled by its caller) is
    left untouched.
    """
    if future.done():
        if not task.cancelled():
            # consume, so an outcome nobody waits for is not reported
            task.exception()
        return

    if task.cancelled():
        future.cancel()
    elif task.exception() is not None:
        future.set_exception(task.exception())
    else:
        future.set_result(task.result())
