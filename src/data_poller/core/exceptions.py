"""Exception types raised by the poller and its collaborators."""


class PollerError(RuntimeError):
    """Base class for runtime errors raised while polling."""


class TransportError(PollerError):
    """Raised when a request could not be transported (network, DNS, timeout)."""


class StatusValidationError(PollerError):
    """Raised when a response arrives with a status code the source does not accept."""

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


class PollerAlreadyRunningError(PollerError):
    """Raised when start() is called on a poller that is already running."""


class ConfigValidationError(ValueError):
    """Raised when poller or source configuration is invalid."""


class DuplicateSourceError(ConfigValidationError):
    """Raised when a source id is already registered with the poller."""
