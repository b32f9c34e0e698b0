from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar


T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T, int], Awaitable[R]],
    *,
    concurrency: int,
    on_error: Callable[[T, int, Exception], R],
) -> list[R]:
    """Run ``worker`` over ``items`` with a fixed pool of ``concurrency`` workers.

    Results are stored by input index, so output order matches input order
    whatever the completion order. An exception in one item is turned into
    a result by ``on_error`` and never cancels the other items.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    results: list[R | None] = [None] * len(items)
    indices = iter(range(len(items)))

    async def _worker() -> None:
        for index in indices:
            item = items[index]
            try:
                results[index] = await worker(item, index)
            except Exception as e:
                results[index] = on_error(item, index, e)

    pool_size = min(concurrency, len(items))
    if pool_size:
        await asyncio.gather(*(_worker() for _ in range(pool_size)))
    return results  # type: ignore[return-value]
