"""Test doubles shared by the unit and e2e suites."""
import asyncio
from collections import deque
from typing import Deque, List, Optional, Union

from data_poller.core.timer import FakeTimeProvider, InterruptibleTimer
from data_poller.core.transport import RequestSpec, Transport, TransportResponse


class RecordingTimer(InterruptibleTimer):
    """Timer that never really waits: it records the delay and advances a fake clock."""

    def __init__(self, time_provider: Optional[FakeTimeProvider] = None):
        super().__init__()
        self.time_provider = time_provider
        self.sleep_history: List[float] = []

    async def sleep(self, seconds: float) -> bool:
        self.sleep_history.append(seconds)
        if self.time_provider is not None and seconds > 0:
            self.time_provider.advance(seconds)
        await asyncio.sleep(0)
        return False


class FakeTransport(Transport):
    """
    In-memory transport.

    Queued items are served in order; an exception instance is raised instead
    of returned. Once the queue is empty the default response is served.
    """

    def __init__(
        self,
        default_response: Optional[TransportResponse] = None,
        delay: float = 0.0,
    ):
        self.default_response = default_response or TransportResponse(
            status=200, reason="OK", data={"status": "ok"}
        )
        self.delay = delay
        self.requests: List[RequestSpec] = []
        self.timeouts: List[float] = []
        self.closed = False
        self._queue: Deque[Union[TransportResponse, Exception]] = deque()

    def enqueue(self, *items: Union[TransportResponse, Exception]) -> None:
        self._queue.extend(items)

    async def request(self, spec: RequestSpec, timeout: float) -> TransportResponse:
        self.requests.append(spec)
        self.timeouts.append(timeout)
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        item = self._queue.popleft() if self._queue else self.default_response
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    @property
    def request_count(self) -> int:
        return len(self.requests)
