"""PeriodicTask — a fixed-interval background tick with an overlap guard."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

TickFn = Callable[[], Awaitable[Any]]


class PeriodicTask:
    """Runs *fn* every *interval_secs* seconds on its own timer.

    The tick body runs as a separate task so the timer keeps its cadence.
    If the previous tick of the same task is still running when the timer
    fires, the new tick is skipped and logged as ``tick_skipped``.

    Usage::

        task = PeriodicTask("health_check", 300, monitor.run_check)
        await task.start()
        # ...
        await task.stop()
    """

    def __init__(
        self,
        name: str,
        interval_secs: float,
        fn: TickFn,
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self._interval = interval_secs
        self._fn = fn
        self._run_immediately = run_immediately
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._tick: asyncio.Task[None] | None = None
        self.runs = 0
        self.skipped = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def busy(self) -> bool:
        """Whether a tick body is currently executing."""
        return self._tick is not None and not self._tick.done()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("periodic_task_started", task=self.name, interval_secs=self._interval)

    async def stop(self) -> None:
        self._running = False
        for task in (self._task, self._tick):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._task = None
        self._tick = None
        logger.info("periodic_task_stopped", task=self.name)

    def trigger(self) -> bool:
        """Start one tick now unless the previous one is still running.

        Returns True if a tick was started.
        """
        if self.busy:
            self.skipped += 1
            logger.warning("tick_skipped", task=self.name, skipped=self.skipped)
            return False
        self._tick = asyncio.create_task(self._run_tick())
        return True

    async def wait_idle(self) -> None:
        """Wait for the in-flight tick, if any, to finish."""
        if self._tick is not None:
            await asyncio.gather(self._tick, return_exceptions=True)

    # ── Internal loop ───────────────────────────────────────────

    async def _run_tick(self) -> None:
        self.runs += 1
        try:
            await self._fn()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("periodic_task_error", task=self.name)

    async def _loop(self) -> None:
        if self._run_immediately:
            self.trigger()
        while self._running:
            await asyncio.sleep(self._interval)
            if self._running:
                self.trigger()
