"""
Polling loop that schedules sources against a shared rate limiter.

Each cycle visits every source in insertion order, fetches the ones that are
due, reports the results, then sleeps only as long as the soonest source
requires. The sleep is interruptible: adding a source or stopping the poller
takes effect without waiting out the current delay.
"""

import inspect
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from .config import PollerConfig, PollingConfig, SourceConfig
from .exceptions import DuplicateSourceError, PollerAlreadyRunningError
from .rate_limiter import RateLimiter
from .source import FetchResult, Source
from .telemetry import TelemetryDecision, create_event, get_recorder
from .timer import InterruptibleTimer, SystemTimeProvider, TimeProvider
from .transport import Transport

logger = logging.getLogger(__name__)

MaybeAwaitable = Union[None, Awaitable[None]]


@dataclass
class PollerHandlers:
    """
    Callbacks the poller reports to.

    Any handler may be a plain function or a coroutine function. Only the
    result handlers are required.
    """
    on_fetch_success: Callable[[FetchResult], MaybeAwaitable]
    on_fetch_error: Callable[[FetchResult], MaybeAwaitable]
    on_poller_started: Optional[Callable[[], MaybeAwaitable]] = None
    on_poller_stopped: Optional[Callable[[], MaybeAwaitable]] = None
    on_fetch_cycle_start: Optional[Callable[[int], MaybeAwaitable]] = None
    on_fetch_cycle_end: Optional[Callable[[int, float], MaybeAwaitable]] = None


class DataPoller:
    """
    Scheduler for a set of independently configured sources.

    ``start()`` runs until every source reports completion, ``stop()`` is
    called, or ``max_polling_cycles`` cycles have run. Calling ``start()``
    on a running poller is an error.
    """

    def __init__(
        self,
        config: Optional[PollerConfig],
        handlers: PollerHandlers,
        sources: Optional[Iterable[Source]] = None,
        *,
        transport: Optional[Transport] = None,
        timer: Optional[InterruptibleTimer] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        """
        Initialize poller.

        Args:
            config: Loop settings; defaults apply when None
            handlers: Result and lifecycle callbacks
            sources: Sources to start with, fetched in the given order. A
                source that created its own transport has it closed when
                start() returns
            transport: Transport for sources added via add_source(); an
                AiohttpTransport owned (and closed) by the poller by default
            timer: Interruptible timer for inter-cycle and rate-limit waits
            time_provider: Clock shared with sources and the rate limiter
        """
        self.config = config or PollerConfig()
        self.handlers = handlers
        self.time_provider = time_provider or SystemTimeProvider()
        self.timer = timer or InterruptibleTimer()

        self._owns_transport = transport is None
        if transport is None:
            from data_poller.transports.aiohttp_transport import AiohttpTransport
            transport = AiohttpTransport()
        self.transport = transport

        self._rate_limiter = RateLimiter(
            self.config.rate_limiter,
            timer=self.timer,
            time_provider=self.time_provider,
            poller_name=self.config.name,
        )

        self._sources: list[Source] = []
        self._completed: set[str] = set()
        self._running = False
        self._stopped = True
        self._stop_notified = False
        self._cycle_count = 0

        for source in sources or ():
            self._register(source)

    @classmethod
    def from_config(
        cls, config: PollingConfig, handlers: PollerHandlers, **kwargs: Any
    ) -> "DataPoller":
        """Build a poller and its initial sources from a loaded PollingConfig."""
        poller = cls(config.poller, handlers, **kwargs)
        for source_config in config.sources:
            poller.add_source(source_config)
        return poller

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def sources(self) -> tuple[Source, ...]:
        return tuple(self._sources)

    @property
    def completed_ids(self) -> frozenset[str]:
        return frozenset(self._completed)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    def get_source(self, source_id: str) -> Optional[Source]:
        for source in self._sources:
            if source.id == source_id:
                return source
        return None

    def _register(self, source: Source) -> None:
        if self.get_source(source.id) is not None:
            raise DuplicateSourceError(f"Source {source.id} is already registered")
        self._sources.append(source)

    def add_source(self, config: Union[SourceConfig, Mapping[str, Any]]) -> str:
        """
        Add a source and wake the loop so it is considered right away.

        Args:
            config: Source configuration or a mapping accepted by SourceConfig.from_dict

        Returns:
            The id of the new source

        Raises:
            DuplicateSourceError: If a source with the same id is already registered
        """
        source = Source(
            config,
            transport=self.transport,
            time_provider=self.time_provider,
            poller_name=self.name,
        )
        self._register(source)
        logger.debug(f"Poller {self.name} added source {source.id} ({source.config.url})")

        self.timer.wake()
        return source.id

    async def start(self) -> None:
        """
        Run polling cycles until a termination condition is met.

        Raises:
            PollerAlreadyRunningError: If the poller is already running
        """
        if self._running:
            raise PollerAlreadyRunningError(f"Poller {self.name} is already running")

        self._running = True
        self._stopped = False
        self._stop_notified = False
        self._cycle_count = 0

        logger.info(f"Poller {self.name} started with {len(self._sources)} sources")
        await self._notify(self.handlers.on_poller_started)

        try:
            while len(self._completed) < len(self._sources):
                if self._stopped:
                    break
                if self._cycle_cap_reached(self._cycle_count):
                    logger.info(
                        f"Poller {self.name} reached {self.config.max_polling_cycles} cycles"
                    )
                    break

                await self._run_cycle()
        finally:
            self._running = False
            if self._owns_transport:
                await self.transport.close()
            for source in self._sources:
                await source.close()

        logger.info(f"Poller {self.name} stopped after {self._cycle_count} cycles")
        if not self._stop_notified:
            self._stop_notified = True
            await self._notify(self.handlers.on_poller_stopped)

    async def stop(self) -> None:
        """
        Ask the loop to stop.

        Any pending sleep ends immediately; a fetch already in flight is
        allowed to finish. The completed set and rate-limiter history are
        cleared.
        """
        self._stopped = True
        self._completed.clear()
        self._rate_limiter.reset()
        self.timer.wake()

        logger.info(f"Poller {self.name} stop requested")
        self._stop_notified = True
        await self._notify(self.handlers.on_poller_stopped)

    async def _run_cycle(self) -> None:
        started_at = self.time_provider.now()
        cycle_index = self._cycle_count + 1
        logger.debug(f"Poller {self.name} cycle {cycle_index} started")
        await self._notify(self.handlers.on_fetch_cycle_start, cycle_index)

        for source in self._sources:
            if self._stopped:
                break
            if source.id in self._completed or not source.should_fetch():
                continue

            await self._rate_limiter.acquire(source.config.url)
            if self._stopped:
                break

            await self._fetch_source(source)

        # No point sleeping when the loop is about to exit
        if not self._stopped and not self._cycle_cap_reached(cycle_index):
            await self.timer.sleep(self._next_fetch_delay())
        self._cycle_count += 1

        duration_ms = (self.time_provider.now() - started_at) * 1000
        logger.debug(
            f"Poller {self.name} cycle {self._cycle_count} ended in {duration_ms:.1f}ms"
        )
        await self._notify(self.handlers.on_fetch_cycle_end, self._cycle_count, duration_ms)

    async def _fetch_source(self, source: Source) -> None:
        try:
            result = await source.fetch()
        except Exception as e:
            logger.exception(f"Unexpected fault while fetching source {source.id}")
            result = FetchResult.failure(source, str(e) or e.__class__.__name__)
            get_recorder().record(
                create_event(
                    decision=TelemetryDecision.FETCH_FAULT,
                    endpoint=source.config.url,
                    poller=self.name,
                    source_id=source.id,
                    iteration=source.current_iteration,
                    error=result.error,
                )
            )

        if result.ok:
            await self._notify(self.handlers.on_fetch_success, result)
        else:
            await self._notify(self.handlers.on_fetch_error, result)

        if source.is_completed and not self._stopped:
            self._completed.add(source.id)

    def _cycle_cap_reached(self, cycle_count: int) -> bool:
        max_cycles = self.config.max_polling_cycles
        return bool(max_cycles) and cycle_count >= max_cycles

    def _next_fetch_delay(self) -> float:
        """Seconds until the soonest incomplete source is due."""
        if any(source.is_fetching for source in self._sources):
            return self.config.polling_cycle_cooloff

        now = self.time_provider.now()
        min_delay = math.inf

        for source in self._sources:
            if source.id in self._completed:
                continue

            if source.last_fetch_at is None:
                return 0.0

            time_until_next_fetch = source.interval - (now - source.last_fetch_at)
            min_delay = min(min_delay, time_until_next_fetch)

        if min_delay == math.inf:
            # Nothing left to poll; let the loop re-check and exit
            return 0.0

        return max(0.0, min_delay)

    async def _notify(self, handler: Optional[Callable[..., Any]], *args: Any) -> None:
        if handler is None:
            return
        try:
            outcome = handler(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            name = getattr(handler, "__name__", repr(handler))
            logger.exception(f"Poller {self.name} handler {name} raised")
