"""Bounded-concurrency map: a shared queue drained by a fixed number of lanes."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from .cancellation import CancellationToken, TerrainCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def bounded_map(
    items: Sequence[T],
    mapper: Callable[[T], Awaitable[R]],
    concurrency: int,
    cancel: CancellationToken | None = None,
) -> list[R | None]:
    """Apply `mapper` to every item with at most `concurrency` calls in flight.

    Results keep the order of `items`. A mapper that raises yields None for
    that item; TerrainCancelledError stops every lane and propagates.
    """
    results: list[R | None] = [None] * len(items)
    if not items:
        return results

    queue: asyncio.Queue[int] = asyncio.Queue()
    for index in range(len(items)):
        queue.put_nowait(index)

    async def lane() -> None:
        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                results[index] = await mapper(items[index])
            except TerrainCancelledError:
                raise
            except Exception as e:
                logger.warning(f"Item {index} failed: {e}")
                results[index] = None

    lanes = [asyncio.create_task(lane()) for _ in range(max(1, min(concurrency, len(items))))]
    try:
        await asyncio.gather(*lanes)
    except BaseException:
        for task in lanes:
            task.cancel()
        await asyncio.gather(*lanes, return_exceptions=True)
        raise

    return results
