"""
Debounced scheduler for route cache rebuilds, plus the periodic TTL sweep.

Request handlers only call ``signal()``. Pending signals are applied by the
scheduler itself inside ``tick()``, which is the only place the
{IDLE, SCHEDULED(fire_at)} state changes.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"


class DebouncedRebuildScheduler:
    """
    Trailing-edge debounce with a cooldown.

    A normal signal at time ``s`` (re)schedules the rebuild for
    ``s + cooldown``; an immediate signal schedules it for
    ``max(s, last_run + cooldown)``. A later signal always replaces the
    pending fire time, so a burst of signals yields a single rebuild.
    """

    def __init__(
        self,
        rebuild: Callable[[], Awaitable[Any]],
        clock,
        cooldown_seconds: float,
        max_sleep_seconds: float = 60.0,
    ):
        self._rebuild = rebuild
        self._clock = clock
        self.cooldown_seconds = cooldown_seconds
        self.max_sleep_seconds = max_sleep_seconds
        self._signals: Deque[Tuple[float, bool]] = deque()
        self._state = SchedulerState.IDLE
        self._fire_at: Optional[float] = None
        self._last_run_at: Optional[float] = None
        self._wakeup: Optional[asyncio.Event] = None
        self.runs = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def fire_at(self) -> Optional[float]:
        return self._fire_at

    @property
    def last_run_at(self) -> Optional[float]:
        return self._last_run_at

    def signal(self, immediate: bool = False) -> None:
        """Ask for a rebuild. Safe to call from any request handler."""
        self._signals.append((self._clock.now(), immediate))
        if self._wakeup is not None:
            self._wakeup.set()
        logger.debug(f"[Scheduler] Route cache rebuild requested (immediate={immediate})")

    def _apply_signals(self) -> None:
        while self._signals:
            signalled_at, immediate = self._signals.popleft()
            if immediate:
                if self._last_run_at is None:
                    fire_at = signalled_at
                else:
                    fire_at = max(signalled_at, self._last_run_at + self.cooldown_seconds)
            else:
                fire_at = signalled_at + self.cooldown_seconds
            self._state = SchedulerState.SCHEDULED
            self._fire_at = fire_at
            logger.debug(f"[Scheduler] Rebuild scheduled in {fire_at - self._clock.now():.1f}s")

    def seconds_until_due(self) -> Optional[float]:
        self._apply_signals()
        if self._state is SchedulerState.IDLE:
            return None
        return max(0.0, self._fire_at - self._clock.now())

    async def tick(self) -> bool:
        """Apply pending signals and run the rebuild if it is due."""
        self._apply_signals()
        if self._state is not SchedulerState.SCHEDULED or self._clock.now() < self._fire_at:
            return False

        self._state = SchedulerState.IDLE
        self._fire_at = None
        self._last_run_at = self._clock.now()
        self.runs += 1
        logger.info("[Scheduler] Starting route polylines build")
        try:
            await self._rebuild()
        except Exception:
            logger.exception("[Scheduler] Scheduled route build failed")
        return True

    async def run_forever(self) -> None:
        self._wakeup = asyncio.Event()
        while True:
            await self.tick()
            wait = self.seconds_until_due()
            timeout = self.max_sleep_seconds if wait is None else min(wait, self.max_sleep_seconds)
            self._wakeup.clear()
            if self._signals:
                continue
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass


class PeriodicSweeper:
    """Runs ``sweep`` every ``interval_seconds``, independent of the debounce."""

    def __init__(self, sweep: Callable[[], Awaitable[Any]], interval_seconds: float):
        self._sweep = sweep
        self.interval_seconds = interval_seconds

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self._sweep()
            except Exception:
                logger.exception("[Scheduler] Route cache sweep failed")
