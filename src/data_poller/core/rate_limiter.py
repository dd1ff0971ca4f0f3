"""
Sliding-window rate limiter shared by every source of a poller.

The limiter keeps the timestamps of recent requests and allows at most
``limit`` of them in any trailing ``interval``-second span. When the window is
full it waits only until the oldest request ages out, using the poller's
interruptible timer so a stop request ends the wait immediately.
"""
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from .config import RateLimiterConfig
from .telemetry import TelemetryDecision, create_event, get_recorder
from .timer import InterruptibleTimer, SystemTimeProvider, TimeProvider

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterStats:
    """Statistics for rate limiter telemetry."""

    requests_total: int = 0
    requests_throttled: int = 0
    total_wait_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "requests_total": self.requests_total,
            "requests_throttled": self.requests_throttled,
            "total_wait_time": self.total_wait_time,
        }


class RateLimiter:
    """
    Sliding-window request limiter.

    With no configuration every ``acquire()`` returns immediately.
    """

    def __init__(
        self,
        config: Optional[RateLimiterConfig] = None,
        timer: Optional[InterruptibleTimer] = None,
        time_provider: Optional[TimeProvider] = None,
        poller_name: str = "",
    ):
        """
        Initialize rate limiter.

        Args:
            config: Window size and request limit, or None to disable limiting
            timer: Timer used for waits (shared with the poller loop)
            time_provider: Optional time provider (defaults to system time)
            poller_name: Name reported in telemetry events
        """
        self.config = config
        self.timer = timer or InterruptibleTimer()
        self.time_provider = time_provider or SystemTimeProvider()
        self.poller_name = poller_name

        self._history: Deque[float] = deque()
        self._generation = 0

        self._stats = RateLimiterStats()
        self._stats_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.config is not None

    @property
    def history(self) -> List[float]:
        """Timestamps currently inside the window (oldest first)."""
        return list(self._history)

    def _prune(self, now: float) -> None:
        window_start = now - self.config.interval
        while self._history and self._history[0] <= window_start:
            self._history.popleft()

    async def acquire(self, endpoint: str = "") -> float:
        """
        Wait until another request may leave the system.

        A throttled request is recorded at the time it is let through. Waking
        the timer does not release it early; the window is re-checked until
        the oldest request has aged out. ``reset()`` abandons the wait.

        Args:
            endpoint: URL about to be requested, for telemetry only

        Returns:
            Seconds waited (0.0 when the request was allowed immediately)
        """
        if self.config is None:
            return 0.0

        now = self.time_provider.now()
        self._prune(now)

        wait_time = 0.0
        if len(self._history) >= self.config.limit:
            wait_time = max(0.0, self._history[0] + self.config.interval - now)

        with self._stats_lock:
            self._stats.requests_total += 1
            if wait_time > 0:
                self._stats.requests_throttled += 1
                self._stats.total_wait_time += wait_time

        decision = TelemetryDecision.THROTTLE if wait_time > 0 else TelemetryDecision.ALLOW
        get_recorder().record(
            create_event(
                decision=decision,
                endpoint=endpoint,
                poller=self.poller_name,
                sleep_s=wait_time,
            )
        )

        if wait_time <= 0:
            self._history.append(now)
            return 0.0

        logger.warning(
            f"Rate limit of {self.config.limit} requests per "
            f"{self.config.interval:g}s reached, waiting {wait_time:.3f}s"
        )

        generation = self._generation
        while wait_time > 0:
            await self.timer.sleep(wait_time)
            if self._generation != generation:
                logger.debug("Rate limit wait abandoned by reset")
                return self.time_provider.now() - now

            current = self.time_provider.now()
            self._prune(current)
            wait_time = 0.0
            if len(self._history) >= self.config.limit:
                wait_time = self._history[0] + self.config.interval - current

        released_at = self.time_provider.now()
        self._history.append(released_at)
        return released_at - now

    def reset(self) -> None:
        """Forget all recorded requests and abandon any pending wait."""
        self._history.clear()
        self._generation += 1
        self.timer.wake()

    def get_stats(self) -> RateLimiterStats:
        """Get current statistics."""
        with self._stats_lock:
            return RateLimiterStats(
                requests_total=self._stats.requests_total,
                requests_throttled=self._stats.requests_throttled,
                total_wait_time=self._stats.total_wait_time,
            )

    def reset_stats(self) -> None:
        """Reset statistics."""
        with self._stats_lock:
            self._stats = RateLimiterStats()
