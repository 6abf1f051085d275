"""Runs the chain scanner on a fixed interval.

Ticks fire at a fixed rate. A tick that lands while the previous cycle is
still running is skipped, so cycles never overlap against the same cursor.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .scanner import ChainScanner


class SchedulerState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class ScanScheduler:
    """Owns the timer task and the in-flight scan cycle task."""

    def __init__(self, scanner: ChainScanner, logger: logging.Logger | None = None) -> None:
        self._scanner = scanner
        self._logger = logger or logging.getLogger("levels.scheduler")
        self._state = SchedulerState.STOPPED
        self._timer_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None

        self.cycles_started: int = 0
        self.ticks_skipped: int = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    async def start(self, interval_minutes: float) -> bool:
        """Run a cycle now and then every ``interval_minutes``.

        Returns False without side effects if already running or still
        stopping.
        """
        if self._state is SchedulerState.RUNNING:
            self._logger.info("Scanner already running")
            return False
        if self._state is SchedulerState.STOPPING:
            self._logger.warning("Scanner is still stopping; start ignored")
            return False
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")

        self._state = SchedulerState.RUNNING
        self._timer_task = asyncio.create_task(self._tick_loop(interval_minutes * 60))
        self._logger.info("Starting periodic scan every %s minutes...", interval_minutes)
        return True

    async def stop(self) -> None:
        """Cancel future ticks and wait for an in-flight cycle. Idempotent."""
        if self._state is SchedulerState.STOPPED:
            return
        if self._state is SchedulerState.RUNNING:
            self._state = SchedulerState.STOPPING
            if self._timer_task:
                self._timer_task.cancel()
                await asyncio.gather(self._timer_task, return_exceptions=True)
                self._timer_task = None

        # asyncio.wait does not cancel the cycle if stop() itself is cancelled
        cycle = self._cycle_task
        if cycle is not None and not cycle.done():
            self._logger.info("Waiting for in-flight scan cycle to finish")
            await asyncio.wait([cycle])

        if self._state is SchedulerState.STOPPING:
            self._cycle_task = None
            self._state = SchedulerState.STOPPED
            self._logger.info("Periodic scan stopped")

    # ══════════════════════════════════════════════════════════
    #  Internals
    # ══════════════════════════════════════════════════════════

    async def _tick_loop(self, interval_seconds: float) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            self._on_tick()
            next_tick += interval_seconds
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    def _on_tick(self) -> None:
        if self.cycle_in_progress:
            self.ticks_skipped += 1
            self._logger.warning("Previous scan cycle still running; skipping this tick")
            return
        self.cycles_started += 1
        self._cycle_task = asyncio.create_task(self._run_cycle())

    async def _run_cycle(self) -> None:
        try:
            await self._scanner.run_scan_cycle()
        except Exception:
            self._logger.exception("Scan cycle raised unexpectedly")
