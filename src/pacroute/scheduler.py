from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from .log import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """Run ``callback`` every ``interval_s`` seconds until stopped.

    The first run happens after one interval unless ``run_immediately`` is set.
    Exceptions raised by the callback are logged and the loop keeps going.
    """

    def __init__(
        self,
        name: str,
        interval_s: float,
        callback: Callable[[], Awaitable[object]],
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self.interval_s = interval_s
        self.callback = callback
        self.run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        task, self._task = self._task, None
        try:
            await asyncio.wait_for(task, timeout=max(self.interval_s, 1.0))
        except asyncio.TimeoutError:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _wait(self) -> bool:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.interval_s)
        except asyncio.TimeoutError:
            return False
        return True

    async def _loop(self) -> None:
        if not self.run_immediately and await self._wait():
            return
        while not self._stop.is_set():
            try:
                await self.callback()
            except Exception:
                logger.exception("Periodic task %s failed", self.name)
            if await self._wait():
                return
