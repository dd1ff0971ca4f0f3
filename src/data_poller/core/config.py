"""
Configuration module for pollers and their sources.

This module provides configuration loading and validation for the polling
loop, the shared rate limiter and each polled endpoint. Durations are in
seconds.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from .exceptions import ConfigValidationError, DuplicateSourceError

DEFAULT_POLLING_CYCLE_COOLOFF = 3.0
DEFAULT_TIMEOUT = 30.0
DEFAULT_INTERVAL = 15 * 60.0
DEFAULT_VALIDATE_STATUSES = (200,)
SUPPORTED_METHODS = ("GET", "POST")

# (iteration, params) -> params
PaginationParamsUpdater = Callable[[int, dict[str, Any]], dict[str, Any]]
# (iteration, params) -> completed?
PaginationCompletionChecker = Callable[[int, dict[str, Any]], bool]


@dataclass
class RateLimiterConfig:
    """Sliding-window limit shared by every source of a poller."""

    limit: int
    interval: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RateLimiterConfig":
        """Create RateLimiterConfig from dictionary."""
        try:
            return cls(limit=data["limit"], interval=data["interval"])
        except KeyError as e:
            raise ConfigValidationError(f"rate_limiter is missing {e.args[0]!r}") from e

    def to_dict(self) -> dict[str, Any]:
        return {"limit": self.limit, "interval": self.interval}


@dataclass
class SourceConfig:
    """
    Configuration for a single polled endpoint.

    Attributes:
        url: Endpoint to request
        method: HTTP method, GET or POST
        headers: Request headers, echoed back on every result
        body: Request body (mappings/lists are sent as JSON)
        query_params: Initial query string parameters
        timeout: Per-request timeout in seconds
        validate_statuses: Status codes treated as success
        interval: Minimum seconds between two fetches of this source
        metadata: Opaque data echoed back on every result
        id: Source identity; generated when omitted
        pagination_params_updater: Derives the next query params from
            ``(iteration, previous_params)``
        pagination_completion_checker: Decides from ``(iteration, params)``
            whether the source is exhausted
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    query_params: dict[str, Any] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    validate_statuses: list[int] = field(default_factory=lambda: list(DEFAULT_VALIDATE_STATUSES))
    interval: float = DEFAULT_INTERVAL
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    pagination_params_updater: PaginationParamsUpdater | None = None
    pagination_completion_checker: PaginationCompletionChecker | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SourceConfig":
        """Create SourceConfig from dictionary."""
        if "url" not in data:
            raise ConfigValidationError("Source must have a url")

        return cls(
            url=data["url"],
            method=str(data.get("method", "GET")).upper(),
            headers=dict(data.get("headers") or {}),
            body=data.get("body"),
            query_params=dict(data.get("query_params") or {}),
            timeout=data.get("timeout", DEFAULT_TIMEOUT),
            validate_statuses=list(data.get("validate_statuses") or DEFAULT_VALIDATE_STATUSES),
            interval=data.get("interval", DEFAULT_INTERVAL),
            metadata=dict(data.get("metadata") or {}),
            id=data.get("id"),
            pagination_params_updater=data.get("pagination_params_updater"),
            pagination_completion_checker=data.get("pagination_completion_checker"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary; pagination hooks are not serializable and are left out."""
        return {
            "id": self.id,
            "url": self.url,
            "method": self.method,
            "headers": dict(self.headers),
            "body": self.body,
            "query_params": dict(self.query_params),
            "timeout": self.timeout,
            "validate_statuses": list(self.validate_statuses),
            "interval": self.interval,
            "metadata": dict(self.metadata),
        }


@dataclass
class PollerConfig:
    """Configuration for the polling loop itself."""

    name: str = "data-poller"
    polling_cycle_cooloff: float = DEFAULT_POLLING_CYCLE_COOLOFF
    max_polling_cycles: int | None = None
    rate_limiter: RateLimiterConfig | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PollerConfig":
        """Create PollerConfig from dictionary."""
        rate_limiter_data = data.get("rate_limiter")
        rate_limiter = (
            RateLimiterConfig.from_dict(rate_limiter_data) if rate_limiter_data else None
        )

        return cls(
            name=data.get("name", "data-poller"),
            polling_cycle_cooloff=data.get(
                "polling_cycle_cooloff", DEFAULT_POLLING_CYCLE_COOLOFF
            ),
            max_polling_cycles=data.get("max_polling_cycles"),
            rate_limiter=rate_limiter,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "polling_cycle_cooloff": self.polling_cycle_cooloff,
            "max_polling_cycles": self.max_polling_cycles,
            "rate_limiter": self.rate_limiter.to_dict() if self.rate_limiter else None,
        }


@dataclass
class PollingConfig:
    """Top-level configuration: poller settings plus the sources it starts with."""

    poller: PollerConfig = field(default_factory=PollerConfig)
    sources: list[SourceConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PollingConfig":
        """Create PollingConfig from dictionary."""
        poller = PollerConfig.from_dict(data.get("poller") or {})
        sources = [SourceConfig.from_dict(source) for source in data.get("sources") or []]
        return cls(poller=poller, sources=sources)

    def get_source_config(self, source_id: str) -> SourceConfig | None:
        """Get configuration for a specific source id."""
        for source in self.sources:
            if source.id == source_id:
                return source
        return None


def load_config(config_path: str | Path | None = None) -> PollingConfig:
    """
    Load poller configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        PollingConfig with poller settings and sources

    Raises:
        yaml.YAMLError: If config file is invalid YAML
        ConfigValidationError: If config validation fails
    """
    if config_path is None:
        config_path = Path(__file__).parents[3] / "config" / "poller.yml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        # Return default empty config if file doesn't exist
        return PollingConfig()

    with open(config_path, "r") as f:
        data = yaml.safe_load(f)

    if not data:
        return PollingConfig()

    if not isinstance(data, Mapping):
        raise ConfigValidationError(f"{config_path} must contain a mapping at the top level")

    config = PollingConfig.from_dict(data)
    validate_config(config)
    return config


def validate_rate_limiter_config(config: RateLimiterConfig) -> None:
    """
    Validate rate limiter configuration.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not isinstance(config.limit, int) or config.limit <= 0:
        raise ConfigValidationError("rate_limiter limit must be a positive integer")

    if config.interval <= 0:
        raise ConfigValidationError("rate_limiter interval must be positive")


def validate_poller_config(config: PollerConfig) -> None:
    """
    Validate poller configuration.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if config.polling_cycle_cooloff < 0:
        raise ConfigValidationError(
            f"Poller {config.name} polling_cycle_cooloff must not be negative"
        )

    if config.max_polling_cycles is not None and config.max_polling_cycles <= 0:
        raise ConfigValidationError(
            f"Poller {config.name} max_polling_cycles must be positive"
        )

    if config.rate_limiter is not None:
        validate_rate_limiter_config(config.rate_limiter)


def validate_source_config(config: SourceConfig) -> None:
    """
    Validate a single source configuration.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    label = config.id or config.url

    if not config.url:
        raise ConfigValidationError("Source must have a url")

    if config.method not in SUPPORTED_METHODS:
        raise ConfigValidationError(
            f"Source {label} method must be one of {', '.join(SUPPORTED_METHODS)}, "
            f"got {config.method}"
        )

    if config.timeout <= 0:
        raise ConfigValidationError(f"Source {label} timeout must be positive")

    if config.interval < 0:
        raise ConfigValidationError(f"Source {label} interval must not be negative")

    if not config.validate_statuses:
        raise ConfigValidationError(f"Source {label} validate_statuses must not be empty")

    for hook_name in ("pagination_params_updater", "pagination_completion_checker"):
        hook = getattr(config, hook_name)
        if hook is not None and not callable(hook):
            raise ConfigValidationError(f"Source {label} {hook_name} must be callable")


def validate_config(config: PollingConfig) -> None:
    """
    Validate configuration.

    Args:
        config: Configuration to validate

    Raises:
        ConfigValidationError: If configuration is invalid
        DuplicateSourceError: If two sources share an id
    """
    validate_poller_config(config.poller)

    seen_ids: set[str] = set()
    for source in config.sources:
        validate_source_config(source)
        if source.id is not None:
            if source.id in seen_ids:
                raise DuplicateSourceError(f"Duplicate source id {source.id}")
            seen_ids.add(source.id)
