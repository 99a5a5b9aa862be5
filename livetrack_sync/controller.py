"""
Application controller.

Connects the transport, the reducer, the location sampler and a presenter:

- inbound domain events are decoded, reduced into the local state and the
  presenter re-renders
- user intents (register, stop tracking, add/update/delete event, panic,
  cancel panic) are emitted as domain events and applied locally through the
  same reducer; the broker echo, if any, is then a duplicate and a no-op
- the sampler's own location samples are applied locally as well, so a panic
  raised on this device carries its last known location
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from .exceptions import MalformedFrameError
from .id_utils import new_event_id, new_participant_id
from .models import Event, Participant
from .protocol import (
    EVENT_NAMES,
    DomainEvent,
    EventAdded,
    EventDeleted,
    EventUpdated,
    PanicCancelled,
    PanicRaised,
    ParticipantLeft,
    ParticipantRegistered,
    decode_domain_event,
    encode_domain_event,
)
from .reducer import (
    TrackingState,
    active_event,
    find_participant,
    panicking_participants,
    participants_of_active_event,
    reduce,
)
from .sampler import LocationSampler, SamplerStatus
from .transport.client import TransportClient

logger = logging.getLogger(__name__)


class Presenter(Protocol):
    """Presentation collaborator (admin dashboard or participant screen)."""

    def render(self, state: TrackingState) -> None: ...

    def show_tracking_status(self, status: SamplerStatus, message: str | None) -> None: ...


class TrackingController:
    """Keeps the local tracking state in sync and publishes user intents.

    Example:
        >>> transport = TransportClient.from_config(config)
        >>> controller = TrackingController(transport, presenter=dashboard)
        >>> await controller.attach()
        >>> controller.add_event("City Marathon", active=True)
    """

    def __init__(
        self,
        transport: TransportClient,
        presenter: Presenter | None = None,
        sampler: LocationSampler | None = None,
    ) -> None:
        self._transport = transport
        self._presenter = presenter
        self._sampler = sampler
        self._state = TrackingState()
        self._current_participant_id: str | None = None
        self._attached = False
        self._handlers: dict[str, Callable[[Any], None]] = {
            name: self._make_handler(name) for name in EVENT_NAMES
        }

        if sampler is not None:
            if sampler.on_status is None:
                sampler.on_status = self._on_sampler_status
            # The broker does not echo our own samples back.
            if sampler.on_sample is None:
                sampler.on_sample = self._apply

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def attach(self) -> None:
        """Subscribe to all domain events and start the transport."""
        if not self._attached:
            for name, handler in self._handlers.items():
                self._transport.on(name, handler)
            self._attached = True
        await self._transport.connect()

    async def close(self) -> None:
        """Unsubscribe and stop sampling. The transport is left running."""
        if self._sampler is not None:
            self._sampler.stop()
        if self._attached:
            for name, handler in self._handlers.items():
                self._transport.off(name, handler)
            self._attached = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def active_event(self) -> Event | None:
        return active_event(self._state)

    @property
    def current_participant_id(self) -> str | None:
        return self._current_participant_id

    @property
    def current_participant(self) -> Participant | None:
        return find_participant(self._state, self._current_participant_id)

    @property
    def participants_of_active_event(self) -> list[Participant]:
        return participants_of_active_event(self._state)

    @property
    def panicking_participants(self) -> list[Participant]:
        return panicking_participants(self._state)

    # ------------------------------------------------------------------
    # User intents
    # ------------------------------------------------------------------

    def register_participant(self, name: str, number: str, event_id: str) -> Participant:
        """Register this device's participant and start sampling its location."""
        participant = Participant(
            id=new_participant_id(),
            name=name,
            number=number,
            event_id=event_id,
        )
        self._publish(ParticipantRegistered(participant))
        self._current_participant_id = participant.id
        if self._sampler is not None:
            self._sampler.start(participant.id)
        return participant

    def stop_tracking(self, participant_id: str | None = None) -> None:
        """Announce that a participant left; defaults to the current one."""
        participant_id = participant_id or self._current_participant_id
        if participant_id is None:
            return
        self._publish(ParticipantLeft(participant_id))
        if participant_id == self._current_participant_id:
            self._current_participant_id = None
            if self._sampler is not None:
                self._sampler.stop()

    def add_event(self, name: str, active: bool = False) -> Event:
        event = Event(id=new_event_id(), name=name, active=active)
        self._publish(EventAdded(event))
        return event

    def update_event(self, event: Event) -> None:
        self._publish(EventUpdated(event))

    def delete_event(self, event_id: str) -> None:
        self._publish(EventDeleted(event_id))

    def trigger_panic(self, participant_id: str | None = None) -> None:
        """Raise a panic alert carrying the participant's last known location."""
        participant_id = participant_id or self._current_participant_id
        if participant_id is None:
            return
        participant = find_participant(self._state, participant_id)
        location = participant.location if participant is not None else None
        self._publish(PanicRaised(participant_id, location))

    def cancel_panic(self, participant_id: str) -> None:
        self._publish(PanicCancelled(participant_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _make_handler(self, name: str) -> Callable[[Any], None]:
        def handler(data: Any) -> None:
            self._apply_remote(name, data)

        return handler

    def _apply_remote(self, name: str, data: Any) -> None:
        try:
            event = decode_domain_event(name, data)
        except MalformedFrameError as e:
            logger.debug(f"Dropping {name!r} payload: {e.reason}")
            return
        self._apply(event)

    def _publish(self, event: DomainEvent) -> None:
        self._transport.emit(*encode_domain_event(event))
        self._apply(event)

    def _apply(self, event: DomainEvent) -> None:
        new_state = reduce(self._state, event)
        if new_state is self._state:
            return
        self._state = new_state
        if self._presenter is None:
            return
        try:
            self._presenter.render(new_state)
        except Exception:
            logger.exception("Presenter failed to render state")

    def _on_sampler_status(self, status: SamplerStatus, message: str | None) -> None:
        if self._presenter is None:
            return
        try:
            self._presenter.show_tracking_status(status, message)
        except Exception:
            logger.exception("Presenter failed to show tracking status")
