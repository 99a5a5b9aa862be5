"""
Shared test configuration and fixtures.

Provides in-memory stand-ins for the broker connection, the location sensor
and the presenter so transport, sampler and controller tests run without a
network or real timers.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from livetrack_sync.exceptions import SensorError, TransportError
from livetrack_sync.models import Event, Location, Participant
from livetrack_sync.transport.connection import BrokerConnection, Connector

_CLOSE = object()


class FakeConnection(BrokerConnection):
    """Broker connection backed by an asyncio queue."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.fail_sends = False
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, text: str) -> None:
        if self.closed:
            raise TransportError("fake://broker", reason="connection is closed")
        if self.fail_sends:
            raise TransportError("fake://broker", reason="send failed")
        self.sent.append(text)

    async def frames(self) -> AsyncIterator[str | bytes]:
        while True:
            item = await self._incoming.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(_CLOSE)

    # Test controls

    def feed(self, raw: str | bytes) -> None:
        """Deliver an inbound frame."""
        self._incoming.put_nowait(raw)

    def drop(self) -> None:
        """Simulate the broker closing the connection."""
        self._incoming.put_nowait(_CLOSE)

    def fail(self, reason: str = "connection reset") -> None:
        """Simulate an abrupt stream failure."""
        self._incoming.put_nowait(TransportError("fake://broker", reason=reason))


class FakeConnector(Connector):
    """Connector whose next ``fail_next`` attempts are refused."""

    def __init__(self, fail_next: int = 0) -> None:
        self.fail_next = fail_next
        self.attempts = 0
        self.connections: list[FakeConnection] = []
        self.closed = False

    @property
    def endpoint(self) -> str:
        return "fake://broker"

    async def connect(self) -> FakeConnection:
        self.attempts += 1
        if self.fail_next > 0:
            self.fail_next -= 1
            raise TransportError(self.endpoint, reason="connection refused")
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    async def close(self) -> None:
        self.closed = True

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]


class RecordingSleep:
    """Replacement for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class RecordingEmitter:
    """Minimal transport that records emitted events."""

    def __init__(self) -> None:
        self.emitted: list[tuple[str, Any]] = []

    def emit(self, event: str, data: Any) -> None:
        self.emitted.append((event, data))


class ScriptedSensor:
    """Location sensor returning queued results; a SensorError is raised."""

    def __init__(self, results: list[Location | SensorError] | None = None) -> None:
        self.results = list(results or [])
        self.default = Location(lat=40.4168, lng=-3.7038)
        self.calls = 0

    async def get_current_location(self) -> Location:
        self.calls += 1
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, SensorError):
            raise result
        return result


class BlockingSensor:
    """Location sensor that waits until ``release`` is called."""

    def __init__(self, location: Location | None = None) -> None:
        self.location = location or Location(lat=1.0, lng=2.0)
        self.started = asyncio.Event()
        self._release = asyncio.Event()

    def release(self) -> None:
        self._release.set()

    async def get_current_location(self) -> Location:
        self.started.set()
        await self._release.wait()
        return self.location


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``predicate`` on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def connector():
    """A connector that accepts every attempt."""
    return FakeConnector()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def participant():
    return Participant(id="p1", name="Ana", number="17", event_id="e1")


@pytest.fixture
def marathon():
    return Event(id="e1", name="City Marathon", active=True)
