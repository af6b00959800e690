"""
Usage governor: daily budget for metered provider calls and hourly limits on
availability checks and login attempts.

Counters are in-memory and best-effort; losing them on restart is acceptable.
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Dict, Optional

from config import Settings
from models import RateCounter
from services.clock import utc_day

logger = logging.getLogger(__name__)

HOUR_SECONDS = 60 * 60


class WindowRateLimiter:
    """
    Per-key counter over a window that restarts once it is older than
    ``window_seconds``. Shared by availability checks and login attempts.
    """

    def __init__(self, limit: int, window_seconds: float, clock):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._counters: Dict[str, RateCounter] = {}
        self._lock = RLock()

    def _current(self, key: str, now: float) -> RateCounter:
        counter = self._counters.get(key)
        if counter is None or now - counter.window_start > self.window_seconds:
            counter = RateCounter(count=0, window_start=now)
            self._counters[key] = counter
        return counter

    def allowed(self, key: str) -> bool:
        with self._lock:
            counter = self._counters.get(key)
            if counter is None:
                return True
            if self._clock.now() - counter.window_start > self.window_seconds:
                return True
            return counter.count < self.limit

    def hit(self, key: str) -> int:
        with self._lock:
            counter = self._current(key, self._clock.now())
            counter.count += 1
            return counter.count

    def try_consume(self, key: str) -> bool:
        with self._lock:
            if not self.allowed(key):
                return False
            self.hit(key)
            return True

    def count(self, key: str) -> int:
        with self._lock:
            counter = self._counters.get(key)
            if counter is None or self._clock.now() - counter.window_start > self.window_seconds:
                return 0
            return counter.count

    def reset(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def purge_stale(self) -> int:
        now = self._clock.now()
        with self._lock:
            stale = [k for k, c in self._counters.items() if now - c.window_start > self.window_seconds]
            for key in stale:
                del self._counters[key]
            return len(stale)


class DailyQuota:
    """Counter reset at the start of every UTC calendar day."""

    def __init__(self, limit: int, clock):
        self.limit = limit
        self._clock = clock
        self._day = utc_day(clock.now())
        self._count = 0
        self._lock = RLock()

    def _roll(self) -> None:
        today = utc_day(self._clock.now())
        if today != self._day:
            self._day = today
            self._count = 0

    def try_consume(self) -> bool:
        with self._lock:
            self._roll()
            if self._count >= self.limit:
                return False
            self._count += 1
            return True

    @property
    def used(self) -> int:
        with self._lock:
            self._roll()
            return self._count

    @property
    def day(self) -> str:
        with self._lock:
            self._roll()
            return self._day


class UsageGovernor:
    """Every gate the service consults before doing expensive or abusable work."""

    def __init__(self, settings: Settings, clock):
        self.provider_quota = DailyQuota(settings.google_daily_limit, clock)
        self.client_limiter = WindowRateLimiter(settings.availability_limit_per_hour, HOUR_SECONDS, clock)
        self.contact_limiter = WindowRateLimiter(
            settings.availability_limit_per_contact_per_hour, HOUR_SECONDS, clock
        )
        self.login_limiter = WindowRateLimiter(settings.login_max_attempts, settings.login_window_seconds, clock)

    def try_consume_provider_call(self) -> bool:
        return self.provider_quota.try_consume()

    def proximity_check_allowed(self, client_id: str, contact_id: Optional[str] = None) -> bool:
        """Advisory check, does not count anything."""
        if not self.client_limiter.allowed(client_id):
            logger.info(f"[Governor] Client {client_id} over hourly availability limit")
            return False
        if contact_id and not self.contact_limiter.allowed(contact_id):
            logger.info("[Governor] Contact over hourly availability limit")
            return False
        return True

    def record_proximity_check(self, client_id: str, contact_id: Optional[str] = None) -> None:
        """Count a validated availability check against both limits."""
        self.client_limiter.hit(client_id)
        if contact_id:
            self.contact_limiter.hit(contact_id)

    def try_consume_proximity_check(self, client_id: str, contact_id: Optional[str] = None) -> bool:
        if not self.proximity_check_allowed(client_id, contact_id):
            return False
        self.record_proximity_check(client_id, contact_id)
        return True

    def try_consume_login_attempt(self, client_id: str) -> bool:
        return self.login_limiter.try_consume(client_id)

    def purge_stale(self) -> int:
        return (
            self.client_limiter.purge_stale()
            + self.contact_limiter.purge_stale()
            + self.login_limiter.purge_stale()
        )

    def get_stats(self) -> Dict[str, object]:
        return {
            "provider_calls_today": self.provider_quota.used,
            "provider_daily_limit": self.provider_quota.limit,
            "day": self.provider_quota.day,
        }
