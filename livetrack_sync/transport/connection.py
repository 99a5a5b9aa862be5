"""
Broker connection adapters.

The transport client talks to the broker through two small interfaces so the
broker stays interchangeable: a ``Connector`` opens physical connections and a
``BrokerConnection`` moves text frames over one of them. The aiohttp WebSocket
implementation is the default; tests and alternative brokers plug in their
own.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import aiohttp

from ..exceptions import TransportError

logger = logging.getLogger(__name__)


class BrokerConnection(ABC):
    """One open, bidirectional frame stream to the broker."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Send one text frame.

        Raises:
            TransportError: If the frame could not be written
        """

    @abstractmethod
    def frames(self) -> AsyncIterator[str | bytes]:
        """Yield inbound frames until the connection closes.

        Iteration ends normally when the peer closes the connection and
        raises TransportError when the stream fails.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Must not raise."""

    @property
    def close_code(self) -> int | None:
        """Close code reported by the peer, if any."""
        return None


class Connector(ABC):
    """Factory for broker connections."""

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Human-readable address used in logs and errors."""

    @abstractmethod
    async def connect(self) -> BrokerConnection:
        """Open a new connection.

        Raises:
            TransportError: If the broker is unreachable or refuses
        """

    async def close(self) -> None:
        """Release resources shared between connections."""


class AiohttpConnection(BrokerConnection):
    """WebSocket connection backed by aiohttp."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse, endpoint: str):
        self._ws = ws
        self._endpoint = endpoint

    @property
    def close_code(self) -> int | None:
        return self._ws.close_code

    async def send(self, text: str) -> None:
        if self._ws.closed:
            raise TransportError(self._endpoint, reason="connection is closed")
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, OSError, RuntimeError) as e:
            raise TransportError(self._endpoint, cause=e) from e

    async def frames(self) -> AsyncIterator[str | bytes]:
        # aiohttp ends iteration on CLOSE, CLOSING and CLOSED messages.
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(self._endpoint, cause=self._ws.exception())

    async def close(self) -> None:
        if self._ws.closed:
            return
        try:
            await self._ws.close()
        except (aiohttp.ClientError, OSError, RuntimeError) as e:
            logger.debug(f"Ignoring error while closing WebSocket: {e}")


class AiohttpConnector(Connector):
    """Opens WebSocket connections to a broker URL.

    Example:
        >>> connector = AiohttpConnector("wss://broker.example.com/ws", heartbeat=20)
        >>> client = TransportClient(connector)
    """

    def __init__(
        self,
        url: str,
        heartbeat: float | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        """Initialize the connector.

        Args:
            url: ws:// or wss:// URL of the broker
            heartbeat: Ping interval in seconds, None to disable
            connect_timeout: Seconds to wait for the handshake
        """
        self.url = url
        self.heartbeat = heartbeat
        self.connect_timeout = connect_timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def endpoint(self) -> str:
        return self.url

    async def connect(self) -> BrokerConnection:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

        try:
            ws = await asyncio.wait_for(
                self._session.ws_connect(self.url, heartbeat=self.heartbeat),
                timeout=self.connect_timeout,
            )
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            raise TransportError(self.url, cause=e) from e

        return AiohttpConnection(ws, self.url)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
