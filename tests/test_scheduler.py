"""Tests for ScanScheduler."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from evo_levels.scheduler import ScanScheduler, SchedulerState

# 0.001 minutes = 60ms between ticks
FAST_INTERVAL = 0.001


def _make_scanner(gate: asyncio.Event | None = None) -> MagicMock:
    scanner = MagicMock()
    scanner.completed = 0

    async def _cycle():
        if gate is not None:
            await gate.wait()
        scanner.completed += 1

    scanner.run_scan_cycle = AsyncMock(side_effect=_cycle)
    return scanner


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("test.scheduler")


class TestStart:

    async def test_runs_cycle_immediately(self, logger):
        scanner = _make_scanner()
        scheduler = ScanScheduler(scanner, logger)
        assert await scheduler.start(10) is True
        await asyncio.sleep(0.01)
        assert scanner.run_scan_cycle.await_count == 1
        assert scheduler.is_running
        await scheduler.stop()

    async def test_start_twice_is_noop(self, logger):
        scanner = _make_scanner()
        scheduler = ScanScheduler(scanner, logger)
        await scheduler.start(10)
        assert await scheduler.start(10) is False
        await asyncio.sleep(0.01)
        assert scanner.run_scan_cycle.await_count == 1
        await scheduler.stop()

    async def test_invalid_interval(self, logger):
        scheduler = ScanScheduler(_make_scanner(), logger)
        with pytest.raises(ValueError):
            await scheduler.start(0)
        assert scheduler.state is SchedulerState.STOPPED

    async def test_repeats_on_interval(self, logger):
        scanner = _make_scanner()
        scheduler = ScanScheduler(scanner, logger)
        await scheduler.start(FAST_INTERVAL)
        await asyncio.sleep(0.2)
        await scheduler.stop()
        assert scheduler.cycles_started >= 2
        assert scanner.completed == scheduler.cycles_started

    async def test_cycle_error_does_not_kill_timer(self, logger):
        scanner = MagicMock()
        scanner.run_scan_cycle = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = ScanScheduler(scanner, logger)
        await scheduler.start(FAST_INTERVAL)
        await asyncio.sleep(0.2)
        assert scheduler.is_running
        assert scanner.run_scan_cycle.await_count >= 2
        await scheduler.stop()


class TestOverlap:

    async def test_slow_cycle_skips_ticks(self, logger):
        gate = asyncio.Event()
        scanner = _make_scanner(gate)
        scheduler = ScanScheduler(scanner, logger)
        await scheduler.start(FAST_INTERVAL)
        await asyncio.sleep(0.2)
        assert scheduler.cycle_in_progress
        assert scheduler.cycles_started == 1
        assert scheduler.ticks_skipped >= 1
        gate.set()
        await scheduler.stop()
        assert scanner.completed == 1


class TestStop:

    async def test_stop_without_start(self, logger):
        scheduler = ScanScheduler(_make_scanner(), logger)
        await scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED

    async def test_stop_idempotent(self, logger):
        scheduler = ScanScheduler(_make_scanner(), logger)
        await scheduler.start(10)
        await scheduler.stop()
        await scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED

    async def test_stop_waits_for_in_flight_cycle(self, logger):
        gate = asyncio.Event()
        scanner = _make_scanner(gate)
        scheduler = ScanScheduler(scanner, logger)
        await scheduler.start(10)
        await asyncio.sleep(0.01)
        assert scheduler.cycle_in_progress

        stop_task = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.01)
        assert not stop_task.done()
        assert scheduler.state is SchedulerState.STOPPING
        assert await scheduler.start(10) is False

        gate.set()
        await stop_task
        assert scanner.completed == 1
        assert scheduler.state is SchedulerState.STOPPED

    async def test_no_new_cycles_after_stop(self, logger):
        scanner = _make_scanner()
        scheduler = ScanScheduler(scanner, logger)
        await scheduler.start(FAST_INTERVAL)
        await asyncio.sleep(0.01)
        await scheduler.stop()
        count = scanner.run_scan_cycle.await_count
        await asyncio.sleep(0.15)
        assert scanner.run_scan_cycle.await_count == count

    async def test_restart_after_stop(self, logger):
        scanner = _make_scanner()
        scheduler = ScanScheduler(scanner, logger)
        await scheduler.start(10)
        await asyncio.sleep(0.01)
        await scheduler.stop()
        assert await scheduler.start(10) is True
        await asyncio.sleep(0.01)
        await scheduler.stop()
        assert scanner.run_scan_cycle.await_count == 2
