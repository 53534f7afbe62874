import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class ResettableTimer:
    """
    Trailing-edge timer: reset() pushes the deadline out, cancel() drops it.

    Once the deadline passes the callback runs detached from the timer,
    so a later reset() or cancel() never interrupts work already started.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], name: str = "timer"):
        self._callback = callback
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def busy(self) -> bool:
        return self.pending or bool(self._running)

    def reset(self, delay: float):
        self.cancel()
        self._task = asyncio.create_task(self._wait_then_fire(max(delay, 0.0)))

    def cancel(self):
        if self.pending:
            self._task.cancel()
        self._task = None

    async def _wait_then_fire(self, delay: float):
        await asyncio.sleep(delay)
        current = asyncio.current_task()
        if self._task is current:
            self._task = None
        self._running.add(current)
        try:
            await self._callback()
        except Exception:
            logger.exception(f"{self._name} callback failed")
        finally:
            self._running.discard(current)
