"""
Tests for the usage governor: hourly limits, daily quota and login attempts.
"""
import pytest

from conftest import FakeClock
from services.usage_governor import HOUR_SECONDS, DailyQuota, UsageGovernor, WindowRateLimiter

# 2023-11-14 23:00:00 UTC
LATE_EVENING = 1_700_002_800.0


class TestWindowRateLimiter:
    def test_cap_boundary(self, clock):
        limiter = WindowRateLimiter(3, HOUR_SECONDS, clock)
        assert [limiter.try_consume("10.0.0.1") for _ in range(4)] == [True, True, True, False]
        assert limiter.count("10.0.0.1") == 3

    def test_keys_are_independent(self, clock):
        limiter = WindowRateLimiter(1, HOUR_SECONDS, clock)
        assert limiter.try_consume("a")
        assert limiter.try_consume("b")
        assert not limiter.try_consume("a")

    def test_window_still_closed_at_exactly_one_hour(self, clock):
        limiter = WindowRateLimiter(1, HOUR_SECONDS, clock)
        limiter.try_consume("a")
        clock.advance(HOUR_SECONDS)
        assert not limiter.allowed("a")

    def test_window_resets_after_one_hour(self, clock):
        limiter = WindowRateLimiter(1, HOUR_SECONDS, clock)
        limiter.try_consume("a")
        clock.advance(HOUR_SECONDS + 1)
        assert limiter.count("a") == 0
        assert limiter.try_consume("a")
        assert limiter.count("a") == 1

    def test_purge_stale(self, clock):
        limiter = WindowRateLimiter(5, HOUR_SECONDS, clock)
        limiter.hit("old")
        clock.advance(HOUR_SECONDS + 1)
        limiter.hit("new")
        assert limiter.purge_stale() == 1
        assert limiter.count("new") == 1

    def test_reset(self, clock):
        limiter = WindowRateLimiter(1, HOUR_SECONDS, clock)
        limiter.hit("a")
        limiter.reset("a")
        assert limiter.allowed("a")


class TestDailyQuota:
    def test_limit_enforced(self, clock):
        quota = DailyQuota(2, clock)
        assert [quota.try_consume() for _ in range(3)] == [True, True, False]
        assert quota.used == 2

    def test_resets_at_utc_midnight(self):
        clock = FakeClock(LATE_EVENING)
        quota = DailyQuota(1, clock)
        assert quota.try_consume()
        assert not quota.try_consume()
        assert quota.day == "2023-11-14"

        clock.advance(HOUR_SECONDS)
        assert quota.day == "2023-11-15"
        assert quota.used == 0
        assert quota.try_consume()


class TestUsageGovernor:
    def test_availability_limit_per_client(self, settings, clock):
        governor = UsageGovernor(settings, clock)
        for _ in range(settings.availability_limit_per_hour):
            assert governor.try_consume_proximity_check("10.0.0.1")
        assert not governor.try_consume_proximity_check("10.0.0.1")
        assert governor.try_consume_proximity_check("10.0.0.2")

    def test_availability_limit_per_contact_across_clients(self, settings, clock):
        governor = UsageGovernor(settings, clock)
        contact = "student@example.com"
        for i in range(settings.availability_limit_per_contact_per_hour):
            assert governor.try_consume_proximity_check(f"10.0.0.{i}", contact)
        assert not governor.try_consume_proximity_check("10.0.0.99", contact)

    def test_allowed_check_does_not_count(self, settings, clock):
        governor = UsageGovernor(settings, clock)
        for _ in range(10):
            assert governor.proximity_check_allowed("10.0.0.1")
        assert governor.client_limiter.count("10.0.0.1") == 0

    def test_login_attempts(self, settings, clock):
        governor = UsageGovernor(settings, clock)
        assert governor.try_consume_login_attempt("10.0.0.1")
        assert governor.try_consume_login_attempt("10.0.0.1")
        assert not governor.try_consume_login_attempt("10.0.0.1")
        clock.advance(settings.login_window_seconds + 1)
        assert governor.try_consume_login_attempt("10.0.0.1")

    def test_provider_budget_and_stats(self, settings, clock):
        governor = UsageGovernor(settings, clock)
        for _ in range(settings.google_daily_limit):
            assert governor.try_consume_provider_call()
        assert not governor.try_consume_provider_call()
        stats = governor.get_stats()
        assert stats["provider_calls_today"] == settings.google_daily_limit
        assert stats["provider_daily_limit"] == settings.google_daily_limit

    def test_purge_stale_covers_all_limiters(self, settings, clock):
        governor = UsageGovernor(settings, clock)
        governor.record_proximity_check("10.0.0.1", "a@b.co")
        governor.try_consume_login_attempt("10.0.0.1")
        clock.advance(HOUR_SECONDS + 1)
        assert governor.purge_stale() == 3
