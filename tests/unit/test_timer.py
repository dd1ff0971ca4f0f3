"""
Unit tests for the clocks and the interruptible timer.
"""
import asyncio
import time

import pytest

from data_poller.core.timer import (
    FakeTimeProvider,
    InterruptibleTimer,
    SystemTimeProvider,
)


class TestTimeProviders:
    """Test clock implementations."""

    def test_fake_time_advance_and_set(self):
        """Test fake clock only moves when told to."""
        clock = FakeTimeProvider(initial_time=50.0)

        assert clock.now() == 50.0
        clock.advance(2.5)
        assert clock.now() == 52.5
        clock.set(10.0)
        assert clock.now() == 10.0

    def test_system_time_is_monotonic(self):
        """Test system clock never goes backwards."""
        clock = SystemTimeProvider()
        first = clock.now()
        second = clock.now()

        assert second >= first


class TestInterruptibleTimer:
    """Test sleep and wake behaviour."""

    @pytest.mark.asyncio
    async def test_sleep_runs_to_completion(self):
        """Test an uninterrupted sleep lasts its full duration."""
        timer = InterruptibleTimer()

        started = time.monotonic()
        woken = await timer.sleep(0.05)
        elapsed = time.monotonic() - started

        assert woken is False
        assert elapsed >= 0.04
        assert not timer.is_sleeping

    @pytest.mark.asyncio
    async def test_wake_interrupts_sleep(self):
        """Test wake() releases a long sleep immediately."""
        timer = InterruptibleTimer()
        task = asyncio.create_task(timer.sleep(10.0))
        await asyncio.sleep(0.01)

        assert timer.is_sleeping
        started = time.monotonic()
        timer.wake()
        woken = await asyncio.wait_for(task, timeout=1.0)

        assert woken is True
        assert time.monotonic() - started < 0.5
        assert not timer.is_sleeping

    @pytest.mark.asyncio
    async def test_wake_without_sleeper_is_noop(self):
        """Test wake() with nothing pending does not pre-empt the next sleep."""
        timer = InterruptibleTimer()
        timer.wake()

        woken = await timer.sleep(0.02)

        assert woken is False

    @pytest.mark.asyncio
    async def test_non_positive_sleep_returns_immediately(self):
        """Test zero and negative delays only yield."""
        timer = InterruptibleTimer()

        assert await timer.sleep(0) is False
        assert await timer.sleep(-1.0) is False
        assert not timer.is_sleeping

    @pytest.mark.asyncio
    async def test_timer_reusable_after_wake(self):
        """Test a woken timer can sleep again normally."""
        timer = InterruptibleTimer()
        task = asyncio.create_task(timer.sleep(10.0))
        await asyncio.sleep(0.01)
        timer.wake()
        await task

        started = time.monotonic()
        woken = await timer.sleep(0.03)

        assert woken is False
        assert time.monotonic() - started >= 0.02
