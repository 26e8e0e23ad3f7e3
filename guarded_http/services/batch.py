"""
Batch - Waits on a group of already-issued requests together.
"""

import asyncio
from typing import Awaitable, Iterable, TypeVar

T = TypeVar("T")


async def batch(requests: Iterable[Awaitable[T]]) -> list[T]:
    """
    Wait for a set of already-issued requests.

    Results keep the input order. The first failure is raised as soon as it
    happens; the remaining requests are left running.
    """
    return list(await asyncio.gather(*requests))
