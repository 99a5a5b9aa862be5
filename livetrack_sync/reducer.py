"""
Reducer folding domain events into the local tracking state.

Every client rebuilds the same two aggregates (events and participants) from
whatever domain events it observes. The broker gives no delivery guarantees:
events may be duplicated, re-ordered, or refer to entities this client never
saw. Each transform is therefore a pure function that is idempotent under
replay and treats unknown references as no-ops.

Invariants:
- At most one event is active. Adding or updating an event with
  ``active=True`` deactivates every other event in the same step.
- Participant and event IDs are unique within their aggregate.
- Insertion order is preserved.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from .models import Event, Participant, ParticipantStatus
from .protocol import (
    DomainEvent,
    EventAdded,
    EventDeleted,
    EventUpdated,
    LocationUpdated,
    PanicCancelled,
    PanicRaised,
    ParticipantLeft,
    ParticipantRegistered,
    decode_domain_event,
)


@dataclass(frozen=True)
class TrackingState:
    """Immutable snapshot of both aggregates."""

    events: tuple[Event, ...] = ()
    participants: tuple[Participant, ...] = ()


def _deactivate_all(events: tuple[Event, ...], except_id: str | None = None) -> tuple[Event, ...]:
    return tuple(
        replace(e, active=False) if e.active and e.id != except_id else e for e in events
    )


def _update_participant(
    state: TrackingState,
    participant_id: str,
    update: Callable[[Participant], Participant],
) -> TrackingState:
    """Apply ``update`` to one participant; unknown IDs leave state untouched."""
    changed = False
    participants = []
    for p in state.participants:
        if p.id == participant_id:
            new_p = update(p)
            changed = changed or new_p != p
            participants.append(new_p)
        else:
            participants.append(p)
    if not changed:
        return state
    return replace(state, participants=tuple(participants))


# ---------------------------------------------------------------------------
# Participant transforms
# ---------------------------------------------------------------------------


def _participant_registered(state: TrackingState, event: ParticipantRegistered) -> TrackingState:
    incoming = event.participant
    if any(p.id == incoming.id for p in state.participants):
        return state
    participant = replace(incoming, status=ParticipantStatus.TRACKING)
    return replace(state, participants=state.participants + (participant,))


def _participant_left(state: TrackingState, event: ParticipantLeft) -> TrackingState:
    remaining = tuple(p for p in state.participants if p.id != event.participant_id)
    if len(remaining) == len(state.participants):
        return state
    return replace(state, participants=remaining)


def _location_updated(state: TrackingState, event: LocationUpdated) -> TrackingState:
    def update(p: Participant) -> Participant:
        # A sample older than the one already applied arrived out of order.
        if p.last_update is not None and event.timestamp < p.last_update:
            return p
        return replace(p, location=event.location, last_update=event.timestamp)

    return _update_participant(state, event.participant_id, update)


def _panic_raised(state: TrackingState, event: PanicRaised) -> TrackingState:
    def update(p: Participant) -> Participant:
        return replace(
            p,
            status=ParticipantStatus.PANIC,
            location=event.location if event.location is not None else p.location,
        )

    return _update_participant(state, event.participant_id, update)


def _panic_cancelled(state: TrackingState, event: PanicCancelled) -> TrackingState:
    return _update_participant(
        state,
        event.participant_id,
        lambda p: replace(p, status=ParticipantStatus.TRACKING),
    )


# ---------------------------------------------------------------------------
# Event transforms
# ---------------------------------------------------------------------------


def _event_added(state: TrackingState, event: EventAdded) -> TrackingState:
    incoming = event.event
    # Duplicates are dropped before the exclusivity pass so that a replayed
    # add cannot deactivate an event activated after it.
    if any(e.id == incoming.id for e in state.events):
        return state
    events = _deactivate_all(state.events) if incoming.active else state.events
    return replace(state, events=events + (incoming,))


def _event_updated(state: TrackingState, event: EventUpdated) -> TrackingState:
    incoming = event.event
    events = _deactivate_all(state.events, except_id=incoming.id) if incoming.active else state.events

    if any(e.id == incoming.id for e in events):
        events = tuple(incoming if e.id == incoming.id else e for e in events)
    else:
        # Update overtook its add; upsert so the later add becomes a duplicate.
        events = events + (incoming,)

    if events == state.events:
        return state
    return replace(state, events=events)


def _event_deleted(state: TrackingState, event: EventDeleted) -> TrackingState:
    remaining = tuple(e for e in state.events if e.id != event.event_id)
    if len(remaining) == len(state.events):
        return state
    return replace(state, events=remaining)


_REDUCERS: dict[type, Callable[[TrackingState, Any], TrackingState]] = {
    ParticipantRegistered: _participant_registered,
    ParticipantLeft: _participant_left,
    LocationUpdated: _location_updated,
    PanicRaised: _panic_raised,
    PanicCancelled: _panic_cancelled,
    EventAdded: _event_added,
    EventUpdated: _event_updated,
    EventDeleted: _event_deleted,
}


def reduce(state: TrackingState, event: DomainEvent) -> TrackingState:
    """Return the state after applying one domain event.

    Raises:
        TypeError: If ``event`` is not one of the domain event payload types
    """
    try:
        reducer = _REDUCERS[type(event)]
    except KeyError:
        raise TypeError(f"No reducer for {type(event).__name__}") from None
    return reducer(state, event)


def reduce_all(state: TrackingState, events: list[DomainEvent]) -> TrackingState:
    """Fold a sequence of domain events into ``state``."""
    for event in events:
        state = reduce(state, event)
    return state


def apply_frame(state: TrackingState, name: str, data: Any) -> TrackingState:
    """Decode a wire event and apply it.

    Raises:
        MalformedFrameError: If the event name or payload is not valid
    """
    return reduce(state, decode_domain_event(name, data))


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def active_event(state: TrackingState) -> Event | None:
    """The active event, or None if no event is running."""
    for event in state.events:
        if event.active:
            return event
    return None


def find_participant(state: TrackingState, participant_id: str | None) -> Participant | None:
    if participant_id is None:
        return None
    for p in state.participants:
        if p.id == participant_id:
            return p
    return None


def participants_of_active_event(state: TrackingState) -> list[Participant]:
    """Participants registered for the active event (empty if none is active)."""
    current = active_event(state)
    if current is None:
        return []
    return [p for p in state.participants if p.event_id == current.id]


def panicking_participants(state: TrackingState) -> list[Participant]:
    """Participants of the active event who raised a panic alert."""
    return [p for p in participants_of_active_event(state) if p.is_panicking]
