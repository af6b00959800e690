"""
Tests for the debounced rebuild scheduler.
Time is driven by FakeClock and the scheduler is stepped with tick().
"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from services.rebuild_scheduler import DebouncedRebuildScheduler, PeriodicSweeper, SchedulerState

COOLDOWN = 300


@pytest.fixture
def rebuild():
    return AsyncMock()


@pytest.fixture
def scheduler(rebuild, clock):
    return DebouncedRebuildScheduler(rebuild, clock, COOLDOWN)


class TestDebounce:
    @pytest.mark.asyncio
    async def test_idle_tick_does_nothing(self, scheduler, rebuild):
        assert await scheduler.tick() is False
        assert scheduler.state is SchedulerState.IDLE
        rebuild.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_burst_of_signals_coalesces_into_one_rebuild(self, scheduler, rebuild, clock):
        for _ in range(5):
            scheduler.signal()
            clock.advance(10)
        last_signal = clock.now() - 10

        assert await scheduler.tick() is False
        assert scheduler.state is SchedulerState.SCHEDULED
        assert scheduler.fire_at == last_signal + COOLDOWN

        clock.current = last_signal + COOLDOWN - 1
        assert await scheduler.tick() is False

        clock.current = last_signal + COOLDOWN
        assert await scheduler.tick() is True
        assert await scheduler.tick() is False
        assert rebuild.await_count == 1
        assert scheduler.runs == 1
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_later_signal_postpones_pending_rebuild(self, scheduler, rebuild, clock):
        scheduler.signal()
        clock.advance(COOLDOWN - 1)
        scheduler.signal()
        clock.advance(2)

        assert await scheduler.tick() is False
        rebuild.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signals_only_applied_inside_tick(self, scheduler):
        scheduler.signal()
        assert scheduler.state is SchedulerState.IDLE
        await scheduler.tick()
        assert scheduler.state is SchedulerState.SCHEDULED


class TestImmediate:
    @pytest.mark.asyncio
    async def test_first_immediate_signal_runs_now(self, scheduler, rebuild, clock):
        scheduler.signal(immediate=True)
        assert await scheduler.tick() is True
        assert scheduler.last_run_at == clock.now()
        rebuild.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_immediate_signal_respects_cooldown(self, scheduler, rebuild, clock):
        scheduler.signal(immediate=True)
        await scheduler.tick()
        first_run = clock.now()

        clock.advance(60)
        scheduler.signal(immediate=True)
        assert await scheduler.tick() is False
        assert scheduler.fire_at == first_run + COOLDOWN

        clock.current = first_run + COOLDOWN
        assert await scheduler.tick() is True
        assert rebuild.await_count == 2

    @pytest.mark.asyncio
    async def test_immediate_after_cooldown_runs_now(self, scheduler, rebuild, clock):
        scheduler.signal(immediate=True)
        await scheduler.tick()
        clock.advance(COOLDOWN + 1)
        scheduler.signal(immediate=True)
        assert await scheduler.tick() is True

    @pytest.mark.asyncio
    async def test_failing_rebuild_is_logged_and_state_resets(self, scheduler, rebuild):
        rebuild.side_effect = RuntimeError("boom")
        scheduler.signal(immediate=True)
        assert await scheduler.tick() is True
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.runs == 1


class TestSecondsUntilDue:
    def test_none_when_idle(self, scheduler):
        assert scheduler.seconds_until_due() is None

    def test_counts_down(self, scheduler, clock):
        scheduler.signal()
        clock.advance(100)
        assert scheduler.seconds_until_due() == COOLDOWN - 100


async def _run_briefly(coro_fn, seconds=0.05):
    task = asyncio.create_task(coro_fn())
    await asyncio.sleep(seconds)
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class TestBackgroundLoops:
    @pytest.mark.asyncio
    async def test_run_forever_coalesces_signals(self, rebuild, clock):
        scheduler = DebouncedRebuildScheduler(rebuild, clock, COOLDOWN, max_sleep_seconds=0.01)
        for _ in range(3):
            scheduler.signal(immediate=True)

        await _run_briefly(scheduler.run_forever)

        assert rebuild.await_count == 1
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_run_forever_waits_out_cooldown(self, rebuild, clock):
        scheduler = DebouncedRebuildScheduler(rebuild, clock, COOLDOWN, max_sleep_seconds=0.01)
        scheduler.signal(immediate=True)
        task = asyncio.create_task(scheduler.run_forever())
        try:
            await asyncio.sleep(0.03)
            scheduler.signal(immediate=True)
            await asyncio.sleep(0.03)
            assert rebuild.await_count == 1
            assert scheduler.state is SchedulerState.SCHEDULED

            clock.advance(COOLDOWN)
            await asyncio.sleep(0.03)
            assert rebuild.await_count == 2
        finally:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    @pytest.mark.asyncio
    async def test_sweeper_runs_repeatedly_and_survives_errors(self):
        sweep = AsyncMock(side_effect=RuntimeError("disk full"))
        sweeper = PeriodicSweeper(sweep, 0.005)

        await _run_briefly(sweeper.run_forever)

        assert sweep.await_count >= 2
