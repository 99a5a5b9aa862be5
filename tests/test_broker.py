"""Tests for the relay broker and the aiohttp transport against it."""

import asyncio
import json

import aiohttp
import pytest
from aiohttp.test_utils import TestServer

from livetrack_sync.controller import TrackingController
from livetrack_sync.exceptions import TransportError
from livetrack_sync.transport.backoff import ReconnectBackoff
from livetrack_sync.transport.broker import HUB_KEY, BrokerHub, create_broker_app
from livetrack_sync.transport.client import TransportClient
from livetrack_sync.transport.connection import AiohttpConnector

from conftest import wait_until


class RecordingHub(BrokerHub):
    """Hub that remembers every frame it relayed."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.relayed: list[str] = []

    async def broadcast(self, text: str, sender_id: str | None = None) -> int:
        self.relayed.append(text)
        return await super().broadcast(text, sender_id)


@pytest.fixture
async def hub():
    return BrokerHub()


@pytest.fixture
async def server(hub):
    server = TestServer(create_broker_app(hub=hub))
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
async def session():
    session = aiohttp.ClientSession()
    yield session
    await session.close()


def ws_url(server: TestServer) -> str:
    return str(server.make_url("/ws"))


class TestBrokerHub:
    """Tests for the fan-out hub."""

    def test_app_exposes_hub(self, hub):
        app = create_broker_app(hub=hub)

        assert app[HUB_KEY] is hub

    @pytest.mark.asyncio
    async def test_relays_to_other_clients_only(self, server, session, hub):
        """The sender does not receive its own frame."""
        sender = await session.ws_connect(ws_url(server))
        receiver = await session.ws_connect(ws_url(server))
        await wait_until(lambda: hub.client_count == 2)

        await sender.send_str('{"event": "panic", "data": {"participantId": "p1"}}')
        msg = await receiver.receive(timeout=1.0)

        assert json.loads(msg.data) == {"event": "panic", "data": {"participantId": "p1"}}
        with pytest.raises(asyncio.TimeoutError):
            await sender.receive(timeout=0.05)

        await sender.close()
        await receiver.close()

    @pytest.mark.asyncio
    async def test_echo_mode(self, session):
        hub = BrokerHub(echo=True)
        server = TestServer(create_broker_app(hub=hub))
        await server.start_server()
        try:
            ws = await session.ws_connect(ws_url(server))
            await ws.send_str("hello")
            msg = await ws.receive(timeout=1.0)

            assert msg.data == "hello"
            await ws.close()
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_relays_frames_verbatim(self, server, session, hub):
        """The broker does not interpret frames, even malformed ones."""
        sender = await session.ws_connect(ws_url(server))
        receiver = await session.ws_connect(ws_url(server))
        await wait_until(lambda: hub.client_count == 2)

        await sender.send_str("not json")
        msg = await receiver.receive(timeout=1.0)

        assert msg.data == "not json"
        await sender.close()
        await receiver.close()

    @pytest.mark.asyncio
    async def test_unregisters_on_disconnect(self, server, session, hub):
        ws = await session.ws_connect(ws_url(server))
        await wait_until(lambda: hub.client_count == 1)

        await ws.close()

        await wait_until(lambda: hub.client_count == 0)

    @pytest.mark.asyncio
    async def test_broadcast_returns_delivery_count(self, server, session, hub):
        clients = [await session.ws_connect(ws_url(server)) for _ in range(3)]
        await wait_until(lambda: hub.client_count == 3)

        assert await hub.broadcast("x") == 3

        for ws in clients:
            await ws.close()


class TestAiohttpConnector:
    """Tests for the aiohttp connection adapter."""

    @pytest.mark.asyncio
    async def test_refused_connection_raises_transport_error(self, unused_tcp_port):
        connector = AiohttpConnector(f"ws://127.0.0.1:{unused_tcp_port}/ws", connect_timeout=1.0)
        try:
            with pytest.raises(TransportError) as exc_info:
                await connector.connect()

            assert exc_info.value.endpoint.endswith("/ws")
        finally:
            await connector.close()

    @pytest.mark.asyncio
    async def test_send_and_receive(self, server, hub):
        first = AiohttpConnector(ws_url(server))
        second = AiohttpConnector(ws_url(server))
        try:
            a = await first.connect()
            b = await second.connect()
            await wait_until(lambda: hub.client_count == 2)

            await a.send("frame-1")
            frames = b.frames()
            assert await asyncio.wait_for(frames.__anext__(), timeout=1.0) == "frame-1"

            await a.close()
            await b.close()
            await b.close()
        finally:
            await first.close()
            await second.close()

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self, server):
        connector = AiohttpConnector(ws_url(server))
        try:
            connection = await connector.connect()
            await connection.close()

            with pytest.raises(TransportError):
                await connection.send("late")
        finally:
            await connector.close()


class TestEndToEnd:
    """Two controllers synchronizing through a real broker."""

    @pytest.mark.asyncio
    async def test_admin_sees_participant_and_panic(self, server, hub):
        admin_transport = TransportClient(AiohttpConnector(ws_url(server)))
        device_transport = TransportClient(AiohttpConnector(ws_url(server)))
        admin = TrackingController(admin_transport)
        device = TrackingController(device_transport)
        try:
            await admin.attach()
            await device.attach()
            assert await admin_transport.wait_until_connected(timeout=2.0)
            assert await device_transport.wait_until_connected(timeout=2.0)
            await wait_until(lambda: hub.client_count == 2)

            event = admin.add_event("City Marathon", active=True)
            await wait_until(lambda: device.active_event == event, timeout=2.0)

            participant = device.register_participant("Ana", "17", event.id)
            await wait_until(lambda: admin.participants_of_active_event, timeout=2.0)
            assert admin.participants_of_active_event[0].id == participant.id

            device.trigger_panic()
            await wait_until(lambda: admin.panicking_participants, timeout=2.0)

            admin.cancel_panic(participant.id)
            await wait_until(lambda: not device.current_participant.is_panicking, timeout=2.0)
        finally:
            await admin.close()
            await device.close()
            await admin_transport.close()
            await device_transport.close()

    @pytest.mark.asyncio
    async def test_reconnects_after_broker_restart(self, unused_tcp_port):
        """Frames emitted while the broker is down are delivered after it returns."""
        server = TestServer(create_broker_app(hub=BrokerHub()), port=unused_tcp_port)
        await server.start_server()

        url = str(server.make_url("/ws"))
        sender = TransportClient(
            AiohttpConnector(url, connect_timeout=1.0),
            backoff=ReconnectBackoff(initial=0.05, maximum=0.2),
        )
        try:
            await sender.connect()
            assert await sender.wait_until_connected(timeout=2.0)

            await server.close()
            await wait_until(lambda: not sender.is_connected, timeout=2.0)
            sender.emit("panic", {"participantId": "p1"})
            assert sender.pending_count == 1

            hub = RecordingHub()
            server = TestServer(create_broker_app(hub=hub), port=unused_tcp_port)
            await server.start_server()

            await wait_until(lambda: hub.relayed, timeout=3.0)

            assert json.loads(hub.relayed[0])["event"] == "panic"
            assert sender.pending_count == 0
        finally:
            await sender.close()
            await server.close()
