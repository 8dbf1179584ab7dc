"""
Fixed-period async timer used by the round controller.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Ticker:
    """Calls an async handler every `interval` seconds until stopped.

    Sleep is adjusted by the handler's processing time so the period does
    not drift. A failing handler is logged and the ticker keeps going.
    """

    def __init__(self, name: str, interval: float, handler: Callable[[], Awaitable[None]]):
        self.name = name
        self.interval = interval
        self.handler = handler
        self.task: Optional[asyncio.Task] = None
        self.running = False

    def start(self):
        if self.running:
            return
        self.running = True
        self.task = asyncio.create_task(self._run(), name=f"ticker:{self.name}")

    def stop(self):
        """Stop the ticker. Safe to call from inside the handler."""
        self.running = False
        if self.task and self.task is not asyncio.current_task():
            self.task.cancel()
        self.task = None

    async def _run(self):
        while self.running:
            loop_start_time = time.monotonic()
            try:
                await self.handler()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"❌ Ticker {self.name} handler error: {e}", exc_info=True)

            if not self.running:
                break

            processing_time = time.monotonic() - loop_start_time
            await asyncio.sleep(max(0.001, self.interval - processing_time))
