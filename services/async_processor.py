# services/async_processor.py
"""Bounded async worker pool for batch operations"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from config import LOGGER_NAME
from core.domain import BatchResult

logger = logging.getLogger(LOGGER_NAME)

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive batches of at most size elements."""
    if size <= 0:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class BatchWorkerPool:
    """
    N workers draining a queue of batches (max N batches in flight).

    Each batch is isolated: an exception or timeout is recorded on its
    BatchResult and the remaining batches keep running. Results come back in
    batch order regardless of completion order.
    """

    def __init__(self, concurrency: int = 10, timeout: Optional[float] = None):
        if concurrency <= 0:
            raise ValueError(f"Concurrency must be positive, got {concurrency}")
        self.concurrency = concurrency
        self.timeout = timeout

    async def run(
        self,
        batches: Sequence[Sequence[T]],
        worker: Callable[[Sequence[T]], Awaitable[Any]],
        label: str = "Batch"
    ) -> List[BatchResult]:
        queue: asyncio.Queue = asyncio.Queue()
        for number, batch in enumerate(batches, start=1):
            queue.put_nowait((number, batch))

        results: Dict[int, BatchResult] = {}

        async def drain() -> None:
            while True:
                try:
                    number, batch = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[number] = await self._run_one(number, batch, worker, label)

        workers = min(self.concurrency, len(batches))
        logger.info(f"{label}: {len(batches)} batches, {workers} concurrent workers")
        await asyncio.gather(*(drain() for _ in range(workers)))

        return [results[number] for number in sorted(results)]

    async def _run_one(
        self,
        number: int,
        batch: Sequence[T],
        worker: Callable[[Sequence[T]], Awaitable[Any]],
        label: str
    ) -> BatchResult:
        try:
            if self.timeout:
                value = await asyncio.wait_for(worker(batch), timeout=self.timeout)
            else:
                value = await worker(batch)
        except asyncio.TimeoutError:
            logger.error(f"{label} {number} timed out after {self.timeout}s")
            return BatchResult(number, len(batch), success=False, error="timeout")
        except Exception as e:
            logger.error(f"{label} {number} failed: {e}")
            return BatchResult(number, len(batch), success=False, error=str(e))

        logger.debug(f"{label} {number} completed ({len(batch)} items)")
        return BatchResult(number, len(batch), success=True, value=value)
