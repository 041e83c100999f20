"""
Optional background purge of expired query cache entries.
"""

import asyncio
from typing import Optional

from shared.logging import get_logger
from .query_cache import QueryCache


class ExpirySweeper:
    """Periodically calls ``QueryCache.purge_expired`` on the running loop."""

    def __init__(self, cache: QueryCache, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.logger = get_logger("ledger.cache_sweeper")
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        self.logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Cache sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.cache.purge_expired()
