"""
Polled source: per-endpoint configuration plus fetch and pagination state.

A source moves between three states::

    IDLE -> FETCHING -> IDLE
                     -> COMPLETED   (terminal)

Pagination state lives here rather than on the poller because it depends
only on the source's own iteration count and query parameter history.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from .config import SourceConfig
from .exceptions import StatusValidationError, TransportError
from .telemetry import TelemetryDecision, create_event, get_recorder
from .timer import SystemTimeProvider, TimeProvider
from .transport import RequestSpec, Transport, TransportResponse

logger = logging.getLogger(__name__)


class FetchStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"


class SourceState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COMPLETED = "completed"


@dataclass
class FetchResult:
    """
    Outcome of one fetch attempt, handed to the poller's callbacks.

    Attributes:
        source_id: Identity of the source that was fetched
        data: Response payload (single item or list); None on error
        status: SUCCESS or ERROR
        headers: Request headers of the source, echoed back
        query_params: Query parameters used for the attempt
        error: Error message; None on success
        timestamp: UTC time the attempt finished
        duration: Duration of the attempt in milliseconds
        metadata: Source metadata, echoed back
    """
    source_id: str
    data: Any
    status: FetchStatus
    headers: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration: float = 0.0
    metadata: Optional[dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.SUCCESS

    @classmethod
    def failure(cls, source: "Source", message: str) -> "FetchResult":
        """Error result for an attempt that never produced one of its own."""
        return cls(
            source_id=source.id,
            data=None,
            status=FetchStatus.ERROR,
            headers=dict(source.config.headers),
            query_params=dict(source.query_params),
            error=message,
            duration=0.0,
            metadata=source.metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.source_id,
            "data": self.data,
            "status": self.status.value,
            "headers": self.headers,
            "query_params": self.query_params,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
            "duration": self.duration,
            "metadata": self.metadata,
        }


class Source:
    """
    A single independently scheduled remote endpoint.

    The poller guarantees at most one in-flight ``fetch()`` per source by
    visiting sources sequentially; the source itself does no locking.
    """

    def __init__(
        self,
        config: SourceConfig | Mapping[str, Any],
        transport: Optional[Transport] = None,
        time_provider: Optional[TimeProvider] = None,
        poller_name: str = "",
    ):
        """
        Initialize source.

        Args:
            config: Source configuration (or a mapping accepted by SourceConfig.from_dict)
            transport: Transport used for requests; defaults to an AiohttpTransport
                owned by the source and released by close()
            time_provider: Clock for interval bookkeeping
            poller_name: Name reported in telemetry events
        """
        if not isinstance(config, SourceConfig):
            config = SourceConfig.from_dict(config)

        self._owns_transport = transport is None
        if transport is None:
            from data_poller.transports.aiohttp_transport import AiohttpTransport
            transport = AiohttpTransport()

        self._id = config.id or str(uuid.uuid4())
        self.config = config
        self.transport = transport
        self.time_provider = time_provider or SystemTimeProvider()
        self.poller_name = poller_name

        self.query_params: dict[str, Any] = dict(config.query_params)
        self.metadata: dict[str, Any] = config.metadata
        self.is_fetching = False
        self.last_fetch_at: Optional[float] = None
        self.current_iteration = 0
        self.is_completed = False

    @property
    def id(self) -> str:
        return self._id

    @property
    def interval(self) -> float:
        return self.config.interval

    @property
    def state(self) -> SourceState:
        if self.is_completed:
            return SourceState.COMPLETED
        if self.is_fetching:
            return SourceState.FETCHING
        return SourceState.IDLE

    def __repr__(self) -> str:
        return (
            f"Source(id={self.id!r}, url={self.config.url!r}, "
            f"state={self.state.value}, iteration={self.current_iteration})"
        )

    async def close(self) -> None:
        """Close the transport if the source created it; a shared one is left alone."""
        if self._owns_transport:
            await self.transport.close()

    def should_fetch(self) -> bool:
        """Whether the source is due for another fetch."""
        if self.is_fetching:
            return False

        if self.last_fetch_at is None:
            return True

        if self.time_provider.now() - self.last_fetch_at < self.interval:
            return False

        return True

    def request_spec(self) -> RequestSpec:
        """Request the next attempt would send with the current query parameters."""
        return RequestSpec(
            url=self.config.url,
            method=self.config.method,
            headers=dict(self.config.headers),
            query_params=dict(self.query_params),
            body=self.config.body,
        )

    def _validate_response(self, response: TransportResponse) -> None:
        if response.status in self.config.validate_statuses:
            return

        message = None
        if isinstance(response.data, Mapping):
            message = response.data.get("error")
        if not message:
            message = (
                f"Failed to fetch {self.config.url}: "
                f"{response.status} {response.reason}".rstrip()
            )
        raise StatusValidationError(str(message), response.status)

    async def fetch(self) -> FetchResult:
        """
        Perform one fetch attempt.

        Transport faults and rejected statuses become error results. Any
        other exception (a failing pagination hook, for instance) propagates
        to the caller after the bookkeeping below has run.

        Returns:
            FetchResult for this attempt
        """
        start = self.time_provider.now()
        self.is_fetching = True
        status_code: Optional[int] = None

        try:
            if self.config.pagination_params_updater is not None:
                self.query_params = self.config.pagination_params_updater(
                    self.current_iteration, self.query_params
                )

            spec = self.request_spec()
            logger.debug(
                f"Fetching source {self.id} ({spec.method} {spec.url}), "
                f"iteration {self.current_iteration}"
            )

            try:
                response = await self.transport.request(spec, self.config.timeout)
                status_code = response.status
                self._validate_response(response)
            except (TransportError, StatusValidationError) as e:
                logger.warning(f"Fetch of source {self.id} failed: {e}")
                result = FetchResult(
                    source_id=self.id,
                    data=None,
                    status=FetchStatus.ERROR,
                    headers=spec.headers,
                    query_params=spec.query_params,
                    error=str(e),
                    duration=(self.time_provider.now() - start) * 1000,
                    metadata=self.metadata,
                )
            else:
                result = FetchResult(
                    source_id=self.id,
                    data=response.data,
                    status=FetchStatus.SUCCESS,
                    headers=spec.headers,
                    query_params=spec.query_params,
                    duration=(self.time_provider.now() - start) * 1000,
                    metadata=self.metadata,
                )
        finally:
            self.is_fetching = False
            self.last_fetch_at = self.time_provider.now()
            self.current_iteration += 1

            if self.config.pagination_completion_checker is not None:
                self.is_completed = bool(
                    self.config.pagination_completion_checker(
                        self.current_iteration, self.query_params
                    )
                )
                if self.is_completed:
                    logger.info(
                        f"Source {self.id} completed after {self.current_iteration} iterations"
                    )

        get_recorder().record(
            create_event(
                decision=(
                    TelemetryDecision.FETCH_SUCCESS if result.ok
                    else TelemetryDecision.FETCH_ERROR
                ),
                endpoint=self.config.url,
                poller=self.poller_name,
                source_id=self.id,
                status=status_code,
                elapsed_ms=result.duration,
                iteration=self.current_iteration,
                error=result.error,
            )
        )
        return result
