"""Bounded-concurrency batches for write phases."""

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``limit`` in flight.

    Results come back in input order. The batch settles completely before
    this returns; a worker that raises propagates after the others finish.
    """
    if limit < 1:
        raise ValueError("Concurrency limit must be at least 1")
    semaphore = asyncio.Semaphore(limit)

    async def guarded(item: T) -> R:
        async with semaphore:
            return await worker(item)

    results = await asyncio.gather(*(guarded(item) for item in items), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)
