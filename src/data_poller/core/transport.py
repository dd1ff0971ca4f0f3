"""
Transport interface and supporting types.

This module defines the abstraction the poller uses to put a request on the
wire. A source builds a ``RequestSpec``; a ``Transport`` performs it and hands
back a ``TransportResponse`` or raises ``TransportError``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class RequestSpec:
    """
    Specification for an HTTP request.

    Attributes:
        url: Full URL to request
        method: HTTP method (GET or POST)
        headers: HTTP headers as key-value pairs
        query_params: Query string parameters
        body: Optional request body for POST requests
    """
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, Any] = field(default_factory=dict)
    body: Any = None


@dataclass
class TransportResponse:
    """
    A response as delivered by a transport.

    Attributes:
        status: HTTP status code
        reason: HTTP reason phrase (e.g. "Not Found")
        headers: Response headers
        data: Decoded body; a mapping or list for JSON, text otherwise, None if empty
    """
    status: int
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None


class Transport(ABC):
    """
    Abstract base class for HTTP transports.

    Implementations must raise ``TransportError`` for anything that prevents a
    response from arriving. Non-2xx responses are not errors at this level;
    status validation belongs to the source.
    """

    @abstractmethod
    async def request(self, spec: RequestSpec, timeout: float) -> TransportResponse:
        """
        Perform the request described by ``spec``.

        Args:
            spec: Request to perform
            timeout: Total timeout in seconds

        Returns:
            The transported response

        Raises:
            TransportError: On network, DNS or timeout failures
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the transport."""
        return None

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
