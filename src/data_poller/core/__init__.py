"""Core scheduling, rate limiting and fetch state for the poller."""

from data_poller.core.config import (
    PollerConfig,
    PollingConfig,
    RateLimiterConfig,
    SourceConfig,
    load_config,
    validate_config,
    validate_poller_config,
    validate_source_config,
)
from data_poller.core.exceptions import (
    ConfigValidationError,
    DuplicateSourceError,
    PollerAlreadyRunningError,
    PollerError,
    StatusValidationError,
    TransportError,
)
from data_poller.core.poller import DataPoller, PollerHandlers
from data_poller.core.rate_limiter import RateLimiter, RateLimiterStats
from data_poller.core.source import FetchResult, FetchStatus, Source, SourceState
from data_poller.core.timer import (
    FakeTimeProvider,
    InterruptibleTimer,
    SystemTimeProvider,
    TimeProvider,
)
from data_poller.core.transport import RequestSpec, Transport, TransportResponse

__all__ = [
    # poller
    "DataPoller",
    "PollerHandlers",
    # source
    "FetchResult",
    "FetchStatus",
    "Source",
    "SourceState",
    # transport
    "RequestSpec",
    "Transport",
    "TransportResponse",
    # config
    "PollerConfig",
    "PollingConfig",
    "RateLimiterConfig",
    "SourceConfig",
    "load_config",
    "validate_config",
    "validate_poller_config",
    "validate_source_config",
    # rate_limiter
    "RateLimiter",
    "RateLimiterStats",
    # timer
    "FakeTimeProvider",
    "InterruptibleTimer",
    "SystemTimeProvider",
    "TimeProvider",
    # exceptions
    "ConfigValidationError",
    "DuplicateSourceError",
    "PollerAlreadyRunningError",
    "PollerError",
    "StatusValidationError",
    "TransportError",
]
