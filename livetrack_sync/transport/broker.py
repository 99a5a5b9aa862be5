"""
Minimal relay broker.

An aiohttp application with a single WebSocket route that relays every text
frame a client sends to every other connected client. It stores nothing and
does not interpret frames, so any broker with the same fan-out behaviour can
replace it without changes to the clients.

Run it standalone with::

    python -m livetrack_sync.transport.broker --port 8765
"""

from __future__ import annotations

import argparse
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from aiohttp import WSMsgType, web

from ..logging_utils import configure_structured_logging

logger = logging.getLogger(__name__)


@dataclass
class RelayClient:
    """A connected broker client."""

    client_id: str
    ws: web.WebSocketResponse
    remote: str | None = None
    connected_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    frames_relayed: int = 0


class BrokerHub:
    """Fan-out hub shared by all WebSocket connections of one app.

    Example:
        >>> hub = BrokerHub()
        >>> app = create_broker_app(hub=hub)
        >>> web.run_app(app, port=8765)
    """

    def __init__(self, echo: bool = False, heartbeat: float | None = None) -> None:
        """Initialize the hub.

        Args:
            echo: Also send each frame back to its sender
            heartbeat: WebSocket ping interval in seconds, None to disable
        """
        self.echo = echo
        self.heartbeat = heartbeat
        self._clients: dict[str, RelayClient] = {}

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        """WebSocket endpoint: register, relay until close, unregister."""
        ws = web.WebSocketResponse(heartbeat=self.heartbeat)
        await ws.prepare(request)

        client = RelayClient(client_id=uuid.uuid4().hex, ws=ws, remote=request.remote)
        self._clients[client.client_id] = client
        logger.info(f"Client connected: {client.client_id} ({client.remote})")

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    client.frames_relayed += 1
                    await self.broadcast(msg.data, sender_id=client.client_id)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"Client {client.client_id} error: {ws.exception()}")
        finally:
            self._clients.pop(client.client_id, None)
            logger.info(
                f"Client disconnected: {client.client_id} "
                f"(relayed {client.frames_relayed} frame(s))"
            )

        return ws

    async def broadcast(self, text: str, sender_id: str | None = None) -> int:
        """Send a frame to every client except the sender.

        Returns:
            Number of clients the frame was written to
        """
        delivered = 0
        for client_id, client in list(self._clients.items()):
            if client_id == sender_id and not self.echo:
                continue
            if client.ws.closed:
                continue
            try:
                await client.ws.send_str(text)
                delivered += 1
            except (ConnectionError, RuntimeError) as e:
                logger.debug(f"Dropping frame for {client_id}: {e}")
        return delivered

    async def close_all(self) -> None:
        """Close every client connection (used on app shutdown)."""
        for client in list(self._clients.values()):
            await client.ws.close(code=1001, message=b"Server shutdown")
        self._clients.clear()


HUB_KEY = web.AppKey("livetrack_hub", BrokerHub)


def create_broker_app(path: str = "/ws", hub: BrokerHub | None = None) -> web.Application:
    """Create the aiohttp application serving the relay on ``path``."""
    hub = hub or BrokerHub()
    app = web.Application()
    app[HUB_KEY] = hub
    app.router.add_get(path, hub.handle)

    async def _on_shutdown(app: web.Application) -> None:
        await app[HUB_KEY].close_all()

    app.on_shutdown.append(_on_shutdown)
    return app


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the live tracking relay broker")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--path", default="/ws")
    parser.add_argument("--heartbeat", type=float, default=None)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    configure_structured_logging(args.log_level)
    app = create_broker_app(args.path, BrokerHub(heartbeat=args.heartbeat))
    web.run_app(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
