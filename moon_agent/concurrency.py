"""
Bounded fan-out for rate-limited providers.

A fixed number of workers pull items off a queue. Each item's outcome is
wrapped in a TaskResult so one failure never takes down the batch.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional


@dataclass
class TaskResult:
    item: Any
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_bounded(
    items: Iterable,
    worker: Callable[[Any], Awaitable[Any]],
    concurrency: int = 5,
    until: Optional[Callable[[], bool]] = None,
) -> list[TaskResult]:
    """
    Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    Results come back in input order. Items never started (because ``until``
    returned True first) are left out.

    Args:
        items: Work items.
        worker: Coroutine function applied to each item.
        concurrency: Number of workers.
        until: Checked before a worker picks up its next item; once it
            returns True no new work starts. In-flight items still finish.
    """
    items = list(items)
    if not items:
        return []

    queue: asyncio.Queue = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    results: dict[int, TaskResult] = {}

    async def _drain():
        while True:
            if until is not None and until():
                return
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                results[index] = TaskResult(item=item, value=await worker(item))
            except Exception as e:
                results[index] = TaskResult(item=item, error=e)

    workers = max(1, min(concurrency, len(items)))
    await asyncio.gather(*(_drain() for _ in range(workers)))

    return [results[i] for i in sorted(results)]
