"""
Reconnecting transport client.

Turns a flaky broker connection into a named-event bus:

- ``on``/``off`` register handlers per event name
- ``emit`` never fails: frames are queued while disconnected and flushed in
  FIFO order once a connection is (re-)established
- connection failures and abrupt closes drive an exponential backoff that
  retries forever
- malformed inbound frames are discarded; a failing handler does not stop
  delivery to other handlers or later frames
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from ..config import TrackingConfig
from ..exceptions import MalformedFrameError, TransportError
from ..logging_utils import TrackingLoggerAdapter
from ..protocol import decode_frame, encode_frame
from .backoff import ReconnectBackoff
from .connection import AiohttpConnector, BrokerConnection, Connector

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None] | Callable[[Any], Awaitable[None]]
SleepFunc = Callable[[float], Awaitable[None]]


class ConnectionState(Enum):
    """Lifecycle of the transport client."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class TransportClient:
    """Named-event client for the tracking broker.

    All methods must be called from the event loop that runs the client.
    The listener registry and outbound queue are only touched from that
    loop, so no locking is needed.

    Example:
        >>> client = TransportClient.from_config(TrackingConfig.from_environment())
        >>> client.on("panic", lambda data: print("PANIC", data))
        >>> await client.connect()
        >>> client.emit("cancel-panic", {"participantId": "p-1"})
        >>> await client.close()
    """

    def __init__(
        self,
        connector: Connector,
        backoff: ReconnectBackoff | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            connector: Opens connections to the broker
            backoff: Reconnect delay schedule (default: 1s doubling to 30s)
            sleep: Coroutine used to wait between reconnect attempts
        """
        self._connector = connector
        self._backoff = backoff or ReconnectBackoff()
        self._sleep = sleep
        self._log = TrackingLoggerAdapter(logger, {"broker_url": connector.endpoint})

        self._listeners: dict[str, list[EventHandler]] = {}
        self._queue: deque[str] = deque()
        self._wakeup = asyncio.Event()
        self._connected = asyncio.Event()

        self._state = ConnectionState.DISCONNECTED
        self._connection: BrokerConnection | None = None
        self._task: asyncio.Task[None] | None = None

        # Callbacks
        self.on_connected: Callable[[], None] | None = None
        self.on_disconnected: Callable[[], None] | None = None

    @classmethod
    def from_config(cls, config: TrackingConfig) -> TransportClient:
        """Build a client that connects to ``config.broker_url`` over aiohttp."""
        return cls(
            AiohttpConnector(config.broker_url, heartbeat=config.heartbeat),
            backoff=ReconnectBackoff(
                initial=config.initial_backoff,
                maximum=config.max_backoff,
                multiplier=config.backoff_multiplier,
            ),
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def pending_count(self) -> int:
        """Number of frames waiting to be sent."""
        return len(self._queue)

    @property
    def backoff(self) -> ReconnectBackoff:
        return self._backoff

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Start connecting in the background.

        No-op if a connection is already open or being established. Returns
        without waiting for the connection; use ``wait_until_connected``.
        """
        if self._task is not None and not self._task.done():
            return

        self._task = asyncio.create_task(self._connection_loop(), name="livetrack:transport")
        self._log.info("Transport client started")

    async def wait_until_connected(self, timeout: float | None = None) -> bool:
        """Wait for an open connection. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self) -> None:
        """Stop the client, close the connection and stop reconnecting."""
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._connector.close()
        self._state = ConnectionState.CLOSED
        self._connected.clear()
        self._log.info("Transport client closed")

    # ------------------------------------------------------------------
    # Event bus
    # ------------------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        """Register a handler for an event name.

        Handlers run in registration order. Coroutine handlers are awaited.
        """
        self._listeners.setdefault(event, []).append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        """Unregister every registration of ``handler`` (compared with ``==``)."""
        handlers = self._listeners.get(event)
        if not handlers:
            return
        remaining = [h for h in handlers if h != handler]
        if remaining:
            self._listeners[event] = remaining
        else:
            del self._listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, data: Any) -> None:
        """Send an event to the broker, queueing it while disconnected.

        Never raises for transport conditions. Frames are delivered in emit
        order; frames queued during an outage go out before anything emitted
        after the reconnect.
        """
        self._queue.append(encode_frame(event, data))
        if not self.is_connected:
            self._log.debug(f"Connection not ready. Queued event {event!r}")
        self._wakeup.set()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def _connection_loop(self) -> None:
        """Connect, serve, and reconnect with backoff until cancelled."""
        while True:
            self._state = ConnectionState.CONNECTING
            self._log.info("Attempting to connect to broker")
            try:
                connection = await self._connector.connect()
            except TransportError as e:
                self._log.warning(f"Connection attempt failed: {e}")
                await self._wait_before_retry()
                continue
            except Exception:
                self._log.exception("Unexpected error while connecting to broker")
                await self._wait_before_retry()
                continue

            self._backoff.reset()
            self._connection = connection
            self._state = ConnectionState.CONNECTED
            self._connected.set()
            self._log.info(f"Connection established, flushing {len(self._queue)} queued frame(s)")
            self._notify(self.on_connected)

            try:
                await self._serve(connection)
                self._log.info(f"Connection closed by broker (code={connection.close_code})")
            except TransportError as e:
                self._log.warning(f"Connection lost: {e}")
            except Exception:
                self._log.exception("Unexpected error on broker connection")
            finally:
                self._connection = None
                self._connected.clear()
                self._state = ConnectionState.DISCONNECTED
                await connection.close()
                self._notify(self.on_disconnected)

            await self._wait_before_retry()

    async def _wait_before_retry(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        delay = self._backoff.next_delay()
        self._log.info(f"Will attempt to reconnect in {delay:g} seconds")
        await self._sleep(delay)

    async def _serve(self, connection: BrokerConnection) -> None:
        """Run reader and writer until either ends; re-raise its failure."""
        reader = asyncio.create_task(self._read_frames(connection))
        writer = asyncio.create_task(self._write_frames(connection))
        try:
            done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (reader, writer):
                task.cancel()
            await asyncio.gather(reader, writer, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _write_frames(self, connection: BrokerConnection) -> None:
        while True:
            while self._queue:
                # Only drop the frame once the send succeeded so a failed send
                # is retried first on the next connection.
                await connection.send(self._queue[0])
                self._queue.popleft()
            self._wakeup.clear()
            await self._wakeup.wait()

    async def _read_frames(self, connection: BrokerConnection) -> None:
        async for raw in connection.frames():
            await self._dispatch(raw)

    async def _dispatch(self, raw: str | bytes) -> None:
        """Deliver one inbound frame to its handlers."""
        try:
            frame = decode_frame(raw)
        except MalformedFrameError as e:
            self._log.debug(f"Discarding frame: {e.reason}")
            return

        # Copy so handlers may call on()/off() while being dispatched.
        handlers = list(self._listeners.get(frame.event, ()))
        if not handlers:
            return

        self._log.debug(f"Received event {frame.event!r} for {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                result = handler(frame.data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._log.exception(f"Handler error for event {frame.event!r}")

    def _notify(self, callback: Callable[[], None] | None) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception:
            self._log.exception("Connection state callback failed")
