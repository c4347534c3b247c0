"""
Unit tests for the global and per-user rate limiter.
Tests window membership, tier ordering, daily resets and rollback accounting.
"""

import pytest
from datetime import datetime

from core.rate_limiter import RateLimiter
from utils.clock import DAY, HOUR, MINUTE, in_window, seconds_until_expiry


def acquire(limiter: RateLimiter, user_id: int) -> bool:
    """Check both scopes and record when allowed, like the /ask flow does."""
    if not limiter.check_global().allowed or not limiter.check_user(user_id).allowed:
        return False
    limiter.record(user_id)
    return True


class TestClockHelpers:
    def test_window_membership_is_strict(self):
        assert in_window([100.0], MINUTE, 159.999) == [100.0]
        assert in_window([100.0], MINUTE, 160.0) == []

    def test_seconds_until_expiry_rounds_up(self):
        assert seconds_until_expiry(100.0, MINUTE, 130.5) == 30
        assert seconds_until_expiry(100.0, MINUTE, 170.0) == 0


class TestRateLimiter:
    """Test suite for quota checking and enforcement logic."""

    @pytest.fixture
    def limiter(self, clock):
        return RateLimiter(clock=clock)

    def test_defaults(self, limiter):
        assert limiter.global_per_minute == 12
        assert limiter.global_per_day == 180
        assert limiter.user_per_minute == 5
        assert limiter.user_per_hour == 20
        assert limiter.user_per_day == 50

    def test_user_minute_limit_and_recovery(self, limiter, clock):
        """Five requests in a minute pass, the sixth waits for the window to slide."""
        start = clock()
        for _ in range(5):
            assert acquire(limiter, 1) is True
            clock.advance(1)

        result = limiter.check_user(1)
        assert result.allowed is False
        assert result.scope == "user"
        assert result.window == "minute"
        assert result.retry_after == 55
        assert "Wait 55 seconds" in result.reason

        clock.now = start + MINUTE
        assert acquire(limiter, 1) is True

    def test_request_exactly_one_window_old_is_expired(self, limiter, clock):
        limiter.record(1)
        clock.advance(MINUTE - 0.001)
        assert limiter.usage(1).minute == 1
        clock.advance(0.001)
        assert limiter.usage(1).minute == 0
        assert limiter.usage(1).hourly == 1

    def test_hour_limit_checked_before_minute_limit(self, clock):
        limiter = RateLimiter(user_per_minute=1, user_per_hour=3, clock=clock)
        for _ in range(3):
            assert acquire(limiter, 1) is True
            clock.advance(2 * MINUTE)

        result = limiter.check_user(1)
        assert result.allowed is False
        assert result.window == "hour"
        assert "hourly limit (3 requests/hour)" in result.reason
        # Oldest request was 6 minutes ago
        assert result.retry_after == HOUR - 6 * MINUTE
        assert "54 minutes" in result.reason

    def test_daily_limit_reports_reset_time(self, clock):
        limiter = RateLimiter(user_per_day=2, clock=clock)
        created = clock()
        for _ in range(2):
            assert acquire(limiter, 1) is True
            clock.advance(HOUR)

        result = limiter.check_user(1)
        assert result.allowed is False
        assert result.window == "day"
        assert result.reset_at == datetime.fromtimestamp(created + DAY)
        assert "daily limit (2 requests/day)" in result.reason

    def test_daily_counter_resets_after_a_day(self, clock):
        limiter = RateLimiter(user_per_day=1, global_per_day=1, clock=clock)
        assert acquire(limiter, 1) is True
        assert acquire(limiter, 1) is False

        clock.advance(DAY)
        assert acquire(limiter, 1) is True
        assert limiter.user_state(1).daily_count == 1
        assert limiter.global_state.daily_count == 1

    def test_global_minute_limit_spans_users(self, clock):
        limiter = RateLimiter(global_per_minute=2, clock=clock)
        assert acquire(limiter, 1) is True
        clock.advance(10)
        assert acquire(limiter, 2) is True

        result = limiter.check_global()
        assert result.allowed is False
        assert result.scope == "global"
        assert result.retry_after == 50
        assert limiter.check_user(3).allowed is True

    def test_global_daily_limit(self, clock):
        limiter = RateLimiter(global_per_day=1, clock=clock)
        assert acquire(limiter, 1) is True

        result = limiter.check_global()
        assert result.allowed is False
        assert result.window == "day"
        assert "Global daily limit reached" in result.reason

    def test_checks_are_read_only(self, limiter, clock):
        for _ in range(5):
            limiter.record(1)
        before = (list(limiter.user_state(1).request_timestamps), limiter.user_state(1).daily_count)

        outcomes = {(limiter.check_global().allowed, limiter.check_user(1).allowed) for _ in range(10)}

        assert outcomes == {(True, False)}
        assert (list(limiter.user_state(1).request_timestamps), limiter.user_state(1).daily_count) == before
        assert limiter.global_state.daily_count == 5

    def test_rollback_restores_previous_state(self, limiter, clock):
        """A failed downstream call leaves no trace in either scope."""
        limiter.record(1)
        clock.advance(5)
        global_before = (list(limiter.global_state.request_timestamps), limiter.global_state.daily_count)
        user_before = (list(limiter.user_state(1).request_timestamps), limiter.user_state(1).daily_count)

        assert acquire(limiter, 1) is True
        limiter.rollback(1)

        assert (list(limiter.global_state.request_timestamps), limiter.global_state.daily_count) == global_before
        assert (list(limiter.user_state(1).request_timestamps), limiter.user_state(1).daily_count) == user_before

    def test_daily_count_is_records_minus_rollbacks(self, limiter):
        for _ in range(3):
            limiter.record(7)
        limiter.rollback(7)

        assert limiter.user_state(7).daily_count == 2
        assert limiter.global_state.daily_count == 2

    def test_rollback_keeps_overlapping_request_from_other_user(self, limiter, clock):
        first = limiter.record(1)
        clock.advance(10)
        second = limiter.record(2)

        limiter.rollback(1, first)

        assert limiter.global_state.request_timestamps == [second]
        assert limiter.global_state.daily_count == 1
        assert limiter.user_state(1).request_timestamps == []
        assert limiter.user_state(2).request_timestamps == [second]

    def test_rollback_without_record_is_noop(self, limiter):
        limiter.record(1)
        limiter.rollback(2)

        assert limiter.user_state(2) is None
        assert limiter.global_state.daily_count == 1

    def test_rollback_never_goes_negative(self, limiter, clock):
        limiter.record(1)
        clock.advance(DAY)
        limiter.check_user(1)
        limiter.rollback(1)

        assert limiter.user_state(1).daily_count == 0
        assert limiter.global_state.daily_count == 0

    def test_usage_snapshot(self, limiter, clock):
        assert limiter.usage(1) is None
        limiter.record(1)
        clock.advance(2 * MINUTE)
        limiter.record(1)
        limiter.record(2)

        usage = limiter.usage(1)
        assert usage.daily == 2
        assert usage.hourly == 2
        assert usage.minute == 1
        assert usage.global_daily == 3
