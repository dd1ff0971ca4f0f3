"""
aiohttp-backed transport.

The default transport used by ``DataPoller`` when none is injected.
"""

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from data_poller.core.exceptions import TransportError
from data_poller.core.transport import RequestSpec, Transport, TransportResponse

logger = logging.getLogger(__name__)


class AiohttpTransport(Transport):
    """
    Transport that performs requests with an ``aiohttp.ClientSession``.

    A session passed in by the caller is used as-is and left open on
    ``close()``; otherwise one is created on first use and owned by the
    transport.
    """

    def __init__(self, session: Optional[ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    @staticmethod
    def _body_kwargs(body: Any) -> dict[str, Any]:
        if body is None:
            return {}
        if isinstance(body, (str, bytes, bytearray)):
            return {"data": body}
        return {"json": body}

    @staticmethod
    def _decode(text: str) -> Any:
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    @staticmethod
    def _query_params(params: Mapping[str, Any]) -> dict[str, str]:
        # aiohttp refuses non-string values such as bools and None
        encoded = {}
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            encoded[key] = str(value)
        return encoded

    async def request(self, spec: RequestSpec, timeout: float) -> TransportResponse:
        """
        Perform the request and decode the body.

        Raises:
            TransportError: On connection errors and timeouts
        """
        session = await self._get_session()

        try:
            async with session.request(
                spec.method,
                spec.url,
                headers=spec.headers,
                params=self._query_params(spec.query_params),
                timeout=ClientTimeout(total=timeout),
                **self._body_kwargs(spec.body),
            ) as response:
                text = await response.text()
                logger.debug(f"{spec.method} {spec.url} -> {response.status}")
                return TransportResponse(
                    status=response.status,
                    reason=response.reason or "",
                    headers=dict(response.headers),
                    data=self._decode(text),
                )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Request to {spec.url} timed out after {timeout:g}s"
            ) from e
        except ClientError as e:
            raise TransportError(f"Request to {spec.url} failed: {e}") from e

    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None
