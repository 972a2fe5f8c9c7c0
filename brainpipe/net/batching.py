"""
Bounded-concurrency fan-out shared by the extraction and sync clients.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


async def gather_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    batch_size: int,
    pause: float = 0.0,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    fallback: Optional[Callable[[T, BaseException], R]] = None,
) -> list[R]:
    """
    Run ``worker`` over ``items`` in fixed-size concurrent groups.

    Every item in a group is dispatched at once and the whole group is
    awaited before the next one starts. Results are returned in input
    order regardless of completion order.

    Args:
        items: Work items
        worker: Coroutine function producing one result per item
        batch_size: Items in flight per group (>= 1)
        pause: Seconds to wait between groups
        sleep: Awaitable sleep (injected in tests)
        fallback: Builds a result for an item whose worker raised.
            Without it the first exception is re-raised after its group.

    Returns:
        One result per item, same order as ``items``
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    results: list[R] = []

    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        outcomes = await asyncio.gather(
            *(worker(item) for item in batch),
            return_exceptions=True,
        )

        for item, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                if fallback is None:
                    raise outcome
                logger.error(f"Batch worker failed: {outcome}")
                results.append(fallback(item, outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)

        if pause and start + batch_size < len(items):
            await sleep(pause)

    return results
