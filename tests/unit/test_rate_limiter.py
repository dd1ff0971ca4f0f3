"""
Unit tests for the sliding-window rate limiter.

Tests run against a fake clock and a recording timer so waits are
deterministic and instantaneous.
"""
import asyncio
import time

import pytest

from data_poller.core import (
    FakeTimeProvider,
    InterruptibleTimer,
    RateLimiter,
    RateLimiterConfig,
)
from data_poller.core.telemetry import TelemetryDecision
from tests.fakes import RecordingTimer


@pytest.fixture
def fake_time():
    """Fixture providing fake time provider."""
    return FakeTimeProvider(initial_time=1000.0)


@pytest.fixture
def timer(fake_time):
    """Fixture providing a timer that advances the fake clock."""
    return RecordingTimer(fake_time)


@pytest.fixture
def rate_limiter(timer, fake_time):
    """Fixture providing a limiter allowing 2 requests per 5 seconds."""
    return RateLimiter(
        RateLimiterConfig(limit=2, interval=5.0),
        timer=timer,
        time_provider=fake_time,
        poller_name="test",
    )


class TestDisabledLimiter:
    """Test limiter without configuration."""

    @pytest.mark.asyncio
    async def test_acquire_is_noop(self, timer, fake_time):
        """Test acquire never waits or records without config."""
        limiter = RateLimiter(None, timer=timer, time_provider=fake_time)

        for _ in range(50):
            assert await limiter.acquire() == 0.0

        assert not limiter.enabled
        assert limiter.history == []
        assert timer.sleep_history == []


class TestSlidingWindow:
    """Test the sliding window algorithm."""

    @pytest.mark.asyncio
    async def test_under_limit_no_wait(self, rate_limiter, timer):
        """Test requests up to the limit pass immediately."""
        assert await rate_limiter.acquire() == 0.0
        assert await rate_limiter.acquire() == 0.0

        assert timer.sleep_history == []
        assert rate_limiter.history == [1000.0, 1000.0]

    @pytest.mark.asyncio
    async def test_over_limit_waits_full_window(self, rate_limiter, timer):
        """Test a burst beyond the limit waits until the oldest request ages out."""
        await rate_limiter.acquire()
        await rate_limiter.acquire()
        waited = await rate_limiter.acquire()

        assert waited == pytest.approx(5.0)
        assert timer.sleep_history == [pytest.approx(5.0)]

    @pytest.mark.asyncio
    async def test_wait_is_only_until_oldest_ages_out(
        self, rate_limiter, timer, fake_time
    ):
        """Test the limiter wakes as early as the window allows."""
        await rate_limiter.acquire()          # t=1000
        fake_time.advance(3.0)
        await rate_limiter.acquire()          # t=1003
        fake_time.advance(1.0)
        waited = await rate_limiter.acquire()  # t=1004

        # 1000 + 5 - 1004
        assert waited == pytest.approx(1.0)
        assert timer.sleep_history == [pytest.approx(1.0)]

    @pytest.mark.asyncio
    async def test_throttled_request_recorded_at_release_time(self, rate_limiter):
        """Test a request that waited counts from when it was let through."""
        for _ in range(3):
            await rate_limiter.acquire()

        # 1000.0 entries aged out at 1005.0, the release time
        assert rate_limiter.history == [1005.0]
        assert await rate_limiter.acquire() == 0.0
        assert rate_limiter.history == [1005.0, 1005.0]

    @pytest.mark.asyncio
    async def test_old_entries_are_pruned(self, rate_limiter, timer, fake_time):
        """Test entries older than the window are dropped on acquire."""
        await rate_limiter.acquire()
        await rate_limiter.acquire()
        fake_time.advance(5.0)

        assert await rate_limiter.acquire() == 0.0
        assert rate_limiter.history == [1005.0]
        assert timer.sleep_history == []

    @pytest.mark.asyncio
    async def test_never_more_than_limit_in_window(self, rate_limiter, fake_time):
        """Test no trailing window holds more than `limit` released requests."""
        released = []
        for _ in range(10):
            await rate_limiter.acquire()
            released.append(fake_time.now())

        for i, start in enumerate(released):
            in_window = [t for t in released[i:] if t < start + 5.0]
            assert len(in_window) <= 2

    @pytest.mark.asyncio
    async def test_reset_clears_history(self, rate_limiter, timer):
        """Test reset forgets recorded requests."""
        await rate_limiter.acquire()
        await rate_limiter.acquire()
        rate_limiter.reset()

        assert rate_limiter.history == []
        assert await rate_limiter.acquire() == 0.0
        assert timer.sleep_history == []


class TestInterruption:
    """Test waits go through the shared interruptible timer."""

    @pytest.mark.asyncio
    async def test_wake_does_not_release_early(self):
        """Test waking the timer mid-wait leaves the request throttled."""
        timer = InterruptibleTimer()
        limiter = RateLimiter(RateLimiterConfig(limit=1, interval=0.3), timer=timer)

        await limiter.acquire()
        started = time.monotonic()
        task = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0.05)

        timer.wake()
        await asyncio.sleep(0.05)
        assert not task.done()

        waited = await asyncio.wait_for(task, timeout=1.0)
        assert time.monotonic() - started >= 0.25
        assert waited >= 0.25
        assert len(limiter.history) == 1

    @pytest.mark.asyncio
    async def test_wake_recheck_with_fake_clock(self, fake_time):
        """Test an early wake re-checks the window and waits out the remainder."""
        woken = []

        class EarlyTimer(InterruptibleTimer):
            async def sleep(self, seconds):
                woken.append(seconds)
                # first sleep is cut short after 2 of its 5 seconds
                fake_time.advance(2.0 if len(woken) == 1 else seconds)
                return len(woken) == 1

        limiter = RateLimiter(
            RateLimiterConfig(limit=2, interval=5.0),
            timer=EarlyTimer(),
            time_provider=fake_time,
        )

        await limiter.acquire()
        await limiter.acquire()
        waited = await limiter.acquire()

        assert woken == [pytest.approx(5.0), pytest.approx(3.0)]
        assert waited == pytest.approx(5.0)
        assert limiter.history == [1005.0]

    @pytest.mark.asyncio
    async def test_reset_abandons_wait(self):
        """Test reset() ends a long rate-limit wait without recording the request."""
        timer = InterruptibleTimer()
        limiter = RateLimiter(RateLimiterConfig(limit=1, interval=30.0), timer=timer)

        await limiter.acquire()
        task = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0.01)
        limiter.reset()

        waited = await asyncio.wait_for(task, timeout=1.0)
        assert waited < 1.0
        assert limiter.history == []

class TestStatsAndTelemetry:
    """Test statistics and telemetry emission."""

    @pytest.mark.asyncio
    async def test_stats_track_throttling(self, rate_limiter):
        """Test throttled requests and wait time are counted."""
        for _ in range(3):
            await rate_limiter.acquire()

        stats = rate_limiter.get_stats()
        assert stats.requests_total == 3
        assert stats.requests_throttled == 1
        assert stats.total_wait_time == pytest.approx(5.0)

        rate_limiter.reset_stats()
        assert rate_limiter.get_stats().to_dict() == {
            "requests_total": 0,
            "requests_throttled": 0,
            "total_wait_time": 0.0,
        }

    @pytest.mark.asyncio
    async def test_events_recorded(self, rate_limiter, telemetry_recorder):
        """Test allow and throttle events reach the recorder."""
        for _ in range(3):
            await rate_limiter.acquire("https://api.example.com/items")

        decisions = [event.decision for event in telemetry_recorder.get_events()]
        assert decisions == [
            TelemetryDecision.ALLOW.value,
            TelemetryDecision.ALLOW.value,
            TelemetryDecision.THROTTLE.value,
        ]
        throttle = telemetry_recorder.get_events()[-1]
        assert throttle.endpoint == "https://api.example.com/items"
        assert throttle.poller == "test"
        assert throttle.sleep_s == pytest.approx(5.0)
