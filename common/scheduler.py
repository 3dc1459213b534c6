"""
Periodic background task runner.

Runs a callback on a fixed cadence on the current event loop until stopped.
Drives the lifecycle flush cycle on the authoritative side.
"""

import asyncio
from typing import Any, Callable, Optional

from common.logging_config import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Invokes a callback every ``interval`` seconds.

    The callback may be a plain function or a coroutine function. Errors are
    logged and the loop keeps running.
    """

    def __init__(self, interval: float, callback: Callable[[], Any], name: str = "periodic"):
        """
        Initialize the periodic task.

        Args:
            interval: Seconds between invocations
            callback: Function (or coroutine function) to call
            name: Label used in log messages
        """
        self.interval = interval
        self.callback = callback
        self.name = name
        self.task: Optional[asyncio.Task] = None
        self.running = False

    async def start(self):
        """Start the background loop."""
        if self.running:
            logger.warning(f"Periodic task {self.name} already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._loop())
        logger.info(f"Periodic task {self.name} started [interval={self.interval}s]")

    async def stop(self):
        """Stop the background loop."""
        if not self.running:
            return

        self.running = False

        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

        logger.info(f"Periodic task {self.name} stopped")

    async def _loop(self):
        while self.running:
            await asyncio.sleep(self.interval)

            if not self.running:
                break

            try:
                result = self.callback()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error in periodic task {self.name}: {e}", exc_info=True)


async def every(interval: float, callback: Callable[[], Any], name: str = "periodic") -> PeriodicTask:
    """
    Start calling ``callback`` every ``interval`` seconds.

    Returns:
        The started PeriodicTask; call ``await task.stop()`` to cancel
    """
    task = PeriodicTask(interval, callback, name=name)
    await task.start()
    return task
