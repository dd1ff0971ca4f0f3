"""Concrete transports for the poller."""

from data_poller.transports.aiohttp_transport import AiohttpTransport

__all__ = ["AiohttpTransport"]
