"""
Periodic location sampling for a tracked participant.

The sampler is either idle or bound to one participant. While bound it asks
the location sensor for a sample right away and then once per interval, and
publishes each sample as a ``location-update`` event. A failed read is
reported through ``on_status`` and the next read still happens on schedule.
Rebinding or stopping cancels the pending read, and no sample is published
for a binding that has ended.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from .exceptions import SensorError
from .id_utils import now_ms
from .models import Location
from .protocol import LocationUpdated, encode_domain_event

logger = logging.getLogger(__name__)


class SamplerStatus(Enum):
    """Tracking status shown to the participant."""

    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ERROR = "error"


class LocationSensor(Protocol):
    """Source of location samples (e.g. a GPS receiver)."""

    async def get_current_location(self) -> Location:
        """Return the current position.

        Raises:
            SensorError: If no position is available
        """
        ...


class EventEmitter(Protocol):
    def emit(self, event: str, data: Any) -> None: ...


StatusCallback = Callable[[SamplerStatus, str | None], None]
SampleCallback = Callable[[LocationUpdated], None]


class LocationSampler:
    """Publishes location samples for the bound participant."""

    def __init__(
        self,
        transport: EventEmitter,
        sensor: LocationSensor,
        interval: float = 10.0,
        sensor_timeout: float = 10.0,
        clock: Callable[[], int] = now_ms,
        on_status: StatusCallback | None = None,
        on_sample: SampleCallback | None = None,
    ) -> None:
        """Initialize the sampler.

        Args:
            transport: Where location-update events are emitted
            sensor: Location source
            interval: Seconds between sample requests
            sensor_timeout: Seconds to wait for one read before reporting an error
            clock: Returns the sample timestamp in epoch milliseconds
            on_status: Called with every status change
            on_sample: Called with every published sample, after it was emitted
        """
        self._transport = transport
        self._sensor = sensor
        self.interval = interval
        self.sensor_timeout = sensor_timeout
        self._clock = clock
        self.on_status = on_status
        self.on_sample = on_sample

        self._participant_id: str | None = None
        self._task: asyncio.Task[None] | None = None
        # Bumped on every start/stop; a read that finishes for an older
        # generation is discarded.
        self._generation = 0

        self.status = SamplerStatus.IDLE
        self.status_message: str | None = None
        self.samples_sent = 0

    @property
    def participant_id(self) -> str | None:
        return self._participant_id

    @property
    def is_sampling(self) -> bool:
        return self._participant_id is not None

    def start(self, participant_id: str) -> None:
        """Bind to a participant, cancelling any previous binding."""
        self.stop()
        self._participant_id = participant_id
        self._generation += 1
        self._set_status(SamplerStatus.CONNECTING, "Acquiring initial location")
        self._task = asyncio.create_task(
            self._run(participant_id, self._generation),
            name=f"livetrack:sampler:{participant_id}",
        )
        logger.info(f"Location sampling started for {participant_id}")

    def stop(self) -> None:
        """Cancel sampling. Safe to call when idle."""
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None

        if self._participant_id is not None:
            logger.info(f"Location sampling stopped for {self._participant_id}")
            self._participant_id = None
            self._set_status(SamplerStatus.IDLE, None)

    async def _run(self, participant_id: str, generation: int) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            await self._sample_once(participant_id, generation)
            # Fixed-rate schedule: a slow read does not push later reads back.
            next_tick += self.interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def _sample_once(self, participant_id: str, generation: int) -> None:
        try:
            location = await asyncio.wait_for(
                self._sensor.get_current_location(), timeout=self.sensor_timeout
            )
        except SensorError as e:
            logger.warning(f"Location sensor error: {e.message}")
            self._set_status(SamplerStatus.ERROR, f"GPS error: {e.message}")
            return
        except asyncio.TimeoutError:
            logger.warning(f"Location sensor timed out after {self.sensor_timeout}s")
            self._set_status(SamplerStatus.ERROR, "GPS error: timed out waiting for location")
            return
        except Exception as e:
            logger.exception("Location sensor failed")
            self._set_status(SamplerStatus.ERROR, f"GPS error: {e}")
            return

        if generation != self._generation:
            return

        update = LocationUpdated(
            participant_id=participant_id,
            location=location,
            timestamp=self._clock(),
        )
        self._transport.emit(*encode_domain_event(update))
        self.samples_sent += 1
        if self.on_sample is not None:
            try:
                self.on_sample(update)
            except Exception:
                logger.exception("Sample callback failed")
        self._set_status(SamplerStatus.ACTIVE, None)

    def _set_status(self, status: SamplerStatus, message: str | None) -> None:
        self.status = status
        self.status_message = message
        if self.on_status is None:
            return
        try:
            self.on_status(status, message)
        except Exception:
            logger.exception("Sampler status callback failed")
