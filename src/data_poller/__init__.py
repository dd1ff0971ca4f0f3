"""Interval-based polling of remote sources behind a shared rate limit."""

from data_poller.core import (
    ConfigValidationError,
    DataPoller,
    DuplicateSourceError,
    FetchResult,
    FetchStatus,
    PollerAlreadyRunningError,
    PollerConfig,
    PollerError,
    PollerHandlers,
    PollingConfig,
    RateLimiter,
    RateLimiterConfig,
    RequestSpec,
    Source,
    SourceConfig,
    SourceState,
    StatusValidationError,
    Transport,
    TransportError,
    TransportResponse,
    load_config,
)
from data_poller.transports import AiohttpTransport

__version__ = "0.1.0"

__all__ = [
    "AiohttpTransport",
    "ConfigValidationError",
    "DataPoller",
    "DuplicateSourceError",
    "FetchResult",
    "FetchStatus",
    "PollerAlreadyRunningError",
    "PollerConfig",
    "PollerError",
    "PollerHandlers",
    "PollingConfig",
    "RateLimiter",
    "RateLimiterConfig",
    "RequestSpec",
    "Source",
    "SourceConfig",
    "SourceState",
    "StatusValidationError",
    "Transport",
    "TransportError",
    "TransportResponse",
    "load_config",
]
