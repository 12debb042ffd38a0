"""Heartbeat service - periodic timers that trigger evaluation passes."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

# Default timers: every minute and every five minutes. They overlap on
# purpose; the delivery ledger keeps the overlap from sending twice.
DEFAULT_INTERVALS_S = (60, 300)


class HeartbeatService:
    """
    Runs one loop per configured interval. Each tick starts ``on_tick`` as
    its own task, so a slow pass never delays the next tick and ticks from
    different timers can run at the same time.
    """

    def __init__(
        self,
        on_tick: Callable[[], Awaitable[Any]],
        intervals_s: list[int] | tuple[int, ...] = DEFAULT_INTERVALS_S,
        enabled: bool = True,
        run_on_start: bool = True,
    ):
        self.on_tick = on_tick
        self.intervals_s = list(intervals_s)
        self.enabled = enabled
        self.run_on_start = run_on_start
        self.ticks = 0
        self._running = False
        self._loops: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start one timer loop per interval."""
        if not self.enabled:
            logger.info("Heartbeat disabled")
            return

        self._running = True
        if self.run_on_start:
            self._spawn_tick("startup")
        for interval in self.intervals_s:
            self._loops.append(asyncio.create_task(self._run_loop(interval)))
        intervals = ", ".join(f"{i}s" for i in self.intervals_s)
        logger.info(f"Heartbeat started (every {intervals})")

    def stop(self) -> None:
        """Stop all timer loops and cancel in-flight passes."""
        self._running = False
        for task in self._loops:
            task.cancel()
        self._loops.clear()
        for task in list(self._inflight):
            task.cancel()

    async def wait_idle(self) -> None:
        """Wait for in-flight passes to finish."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _run_loop(self, interval_s: int) -> None:
        """Timer loop for one interval."""
        while self._running:
            try:
                await asyncio.sleep(interval_s)
                if self._running:
                    self._spawn_tick(f"{interval_s}s timer")
            except asyncio.CancelledError:
                break

    def _spawn_tick(self, source: str) -> None:
        self.ticks += 1
        logger.debug(f"Heartbeat tick ({source})")
        task = asyncio.create_task(self._tick(source))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _tick(self, source: str) -> None:
        try:
            await self.on_tick()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Heartbeat tick ({source}) failed: {e}")
