"""Repeating background tasks bound to the application lifespan."""

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class RepeatingTask:
    """
    Runs a blocking `action` in a worker thread, forever, sleeping
    `next_delay()` seconds before each run. An exception inside one run
    is logged and the loop carries on with the next one.
    """

    def __init__(self, name: str, action: Callable[[], object], next_delay: Callable[[], float]):
        self.name = name
        self.action = action
        self.next_delay = next_delay
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info('Started background task %s', self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info('Stopped background task %s', self.name)

    async def run_once(self) -> object:
        return await asyncio.to_thread(self.action)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(max(0.0, self.next_delay()))
            try:
                await self.run_once()
            except Exception:
                logger.exception('Background task %s failed', self.name)
