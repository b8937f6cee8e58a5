"""Ticker-style periodic tasks on the asyncio loop."""

import asyncio
import inspect
from contextlib import suppress
from datetime import datetime
from typing import Awaitable, Callable, Optional, Union

from core.logging_utils import get_logger
from core.models import utc_now

logger = get_logger(__name__)

Job = Callable[[], Union[None, Awaitable[None]]]


class PeriodicTask:
    """
    Runs ``func`` every ``interval`` seconds until stopped.

    The interval is slept *after* each run completes, so a slow run delays the
    next one instead of queueing extra runs. Errors are logged and the loop
    keeps going.
    """

    def __init__(self, name: str, interval: float, func: Job, initial_delay: Optional[float] = None):
        self.name = name
        self.interval = interval
        self.func = func
        self.initial_delay = interval if initial_delay is None else initial_delay
        self._task: Optional[asyncio.Task] = None
        self._running = False

        # Stats
        self.runs = 0
        self.errors = 0
        self.last_run_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=f"periodic:{self.name}")
        logger.debug("[SCHED] %s started (every %.2fs)", self.name, self.interval)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        logger.debug("[SCHED] %s stopped after %s runs", self.name, self.runs)

    async def _loop(self) -> None:
        delay = self.initial_delay
        while self._running:
            await asyncio.sleep(delay)
            if not self._running:
                break
            await self.run_once()
            delay = self.interval

    async def run_once(self) -> None:
        try:
            result = self.func()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.errors += 1
            logger.exception("[SCHED] %s error: %s", self.name, e)
        finally:
            self.runs += 1
            self.last_run_at = utc_now()
