"""
Bounded parallel processing with fail-fast cancellation.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


class ParallelProcessor:
    """Runs one coroutine per item with at most num_workers in flight."""

    def __init__(self, num_workers: int = 1):
        """Initialize parallel processor with specified number of workers."""
        if num_workers <= 0:
            raise ValueError("num_workers must be positive")
        self.num_workers = num_workers
        logger.debug(f"Initialized ParallelProcessor with {self.num_workers} workers")

    async def process(self,
                      items: Sequence[T],
                      handler: Callable[[T], Awaitable[R]]) -> List[R]:
        """
        Apply handler to every item.

        Results come back in the order of items. The first exception
        cancels every task still pending or running, and only that
        exception is raised.

        Args:
            items: Work items in processing order
            handler: Coroutine function applied to each item

        Returns:
            List of handler results
        """
        if not items:
            logger.debug("No items to process, returning early")
            return []

        if self.num_workers == 1:
            return [await handler(item) for item in items]

        semaphore = asyncio.Semaphore(self.num_workers)

        async def worker(item: T) -> R:
            async with semaphore:
                return await handler(item)

        tasks = [asyncio.ensure_future(worker(item)) for item in items]
        logger.debug(f"Created {len(tasks)} tasks for {self.num_workers} workers")

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        failed = [task for task in tasks if task in done and not task.cancelled()
                  and task.exception() is not None]
        if failed:
            await self._cancel(pending)
            # Earliest item in processing order wins among concurrent failures
            raise failed[0].exception()

        return [task.result() for task in tasks]

    @staticmethod
    async def _cancel(tasks) -> None:
        for task in tasks:
            task.cancel()
        if tasks:
            # Wait for cancellation so partial artifacts are cleaned up
            await asyncio.gather(*tasks, return_exceptions=True)
