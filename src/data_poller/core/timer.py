"""
Clocks and the interruptible sleep used by the polling loop.

The poller never calls ``time`` directly: every component reads the current
time through a ``TimeProvider`` so tests can substitute a fake clock, and every
wait goes through an ``InterruptibleTimer`` so ``add_source()`` and ``stop()``
can cut the current wait short.
"""
import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class TimeProvider(ABC):
    """Protocol for providing time values, allows injection of fake time in tests."""

    @abstractmethod
    def now(self) -> float:
        """Return current time in seconds."""
        pass


class SystemTimeProvider(TimeProvider):
    """Real time provider using the monotonic system clock."""

    def now(self) -> float:
        return time.monotonic()


class FakeTimeProvider(TimeProvider):
    """Fake time provider for deterministic tests."""

    def __init__(self, initial_time: float = 1000.0):
        self._current_time = initial_time
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._current_time

    def advance(self, seconds: float) -> None:
        """Advance time by given seconds."""
        with self._lock:
            self._current_time += seconds

    def set(self, time: float) -> None:
        """Set absolute time."""
        with self._lock:
            self._current_time = time


class InterruptibleTimer:
    """
    Cancellable delay primitive.

    At most one sleep is tracked at a time. A call to ``wake()`` releases the
    pending sleep immediately; with nothing pending it does nothing.
    """

    def __init__(self):
        self._wake_event: Optional[asyncio.Event] = None

    @property
    def is_sleeping(self) -> bool:
        """True while a sleep is pending."""
        return self._wake_event is not None

    async def sleep(self, seconds: float) -> bool:
        """
        Suspend the caller for ``seconds`` unless woken earlier.

        Args:
            seconds: Delay in seconds. Non-positive values only yield to the loop.

        Returns:
            True if the sleep was interrupted by ``wake()``, False if it ran out.
        """
        if seconds <= 0:
            await asyncio.sleep(0)
            return False

        event = asyncio.Event()
        self._wake_event = event
        try:
            await asyncio.wait_for(event.wait(), timeout=seconds)
            logger.debug(f"Sleep of {seconds:.3f}s interrupted")
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            if self._wake_event is event:
                self._wake_event = None

    def wake(self) -> None:
        """Wake the pending sleep, if any."""
        if self._wake_event is not None:
            self._wake_event.set()
