"""
Wire protocol for the tracking broker.

Every frame is a UTF-8 JSON text message of the form::

    {"event": "<name>", "data": <json value>}

There is no envelope versioning. The broker may carry unrelated traffic, so
decoding is strict and callers discard anything that raises
MalformedFrameError.

The eight domain events form a closed union (``DomainEvent``). Each payload
type knows its wire name and how to convert itself to and from JSON data.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union

from .exceptions import MalformedFrameError
from .models import Event, Location, Participant, _require_mapping, _require_number, _require_str


class DomainEventType(Enum):
    """Names of the domain events carried over the broker."""

    PARTICIPANT_REGISTERED = "participant-registered"
    PARTICIPANT_LEFT = "participant-left"
    LOCATION_UPDATE = "location-update"
    PANIC = "panic"
    CANCEL_PANIC = "cancel-panic"
    EVENT_ADDED = "event-added"
    EVENT_UPDATED = "event-updated"
    EVENT_DELETED = "event-deleted"


@dataclass(frozen=True)
class Frame:
    """A decoded envelope. ``data`` is still raw JSON."""

    event: str
    data: Any


def encode_frame(event: str, data: Any) -> str:
    """Serialize an envelope to a JSON text frame."""
    return json.dumps({"event": event, "data": data}, ensure_ascii=False)


def decode_frame(raw: str | bytes) -> Frame:
    """Parse a text frame into an envelope.

    Raises:
        MalformedFrameError: If the frame is not JSON, not an object, or
            lacks a string ``event`` and a ``data`` key
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedFrameError("frame is not valid UTF-8") from None

    try:
        message = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedFrameError(f"invalid JSON ({e.msg})", raw) from None

    if not isinstance(message, dict):
        raise MalformedFrameError("frame is not a JSON object", raw)

    event = message.get("event")
    if not isinstance(event, str) or not event:
        raise MalformedFrameError("frame has no event name", raw)
    if "data" not in message:
        raise MalformedFrameError("frame has no data", raw)

    return Frame(event=event, data=message["data"])


# ---------------------------------------------------------------------------
# Domain event payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParticipantRegistered:
    event_type: ClassVar[DomainEventType] = DomainEventType.PARTICIPANT_REGISTERED

    participant: Participant

    def to_dict(self) -> dict[str, Any]:
        return self.participant.to_dict()

    @classmethod
    def from_dict(cls, data: Any) -> ParticipantRegistered:
        return cls(participant=Participant.from_dict(data))


@dataclass(frozen=True)
class ParticipantLeft:
    event_type: ClassVar[DomainEventType] = DomainEventType.PARTICIPANT_LEFT

    participant_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"participantId": self.participant_id}

    @classmethod
    def from_dict(cls, data: Any) -> ParticipantLeft:
        data = _require_mapping(data, "participant-left")
        return cls(participant_id=_require_str(data, "participantId", "participant-left"))


@dataclass(frozen=True)
class LocationUpdated:
    """A location sample. ``timestamp`` is epoch milliseconds."""

    event_type: ClassVar[DomainEventType] = DomainEventType.LOCATION_UPDATE

    participant_id: str
    location: Location
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "participantId": self.participant_id,
            "location": self.location.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Any) -> LocationUpdated:
        data = _require_mapping(data, "location-update")
        return cls(
            participant_id=_require_str(data, "participantId", "location-update"),
            location=Location.from_dict(data.get("location")),
            timestamp=int(_require_number(data, "timestamp", "location-update")),
        )


@dataclass(frozen=True)
class PanicRaised:
    event_type: ClassVar[DomainEventType] = DomainEventType.PANIC

    participant_id: str
    location: Location | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"participantId": self.participant_id}
        if self.location is not None:
            result["location"] = self.location.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Any) -> PanicRaised:
        data = _require_mapping(data, "panic")
        location = None
        if data.get("location") is not None:
            location = Location.from_dict(data["location"])
        return cls(
            participant_id=_require_str(data, "participantId", "panic"),
            location=location,
        )


@dataclass(frozen=True)
class PanicCancelled:
    event_type: ClassVar[DomainEventType] = DomainEventType.CANCEL_PANIC

    participant_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"participantId": self.participant_id}

    @classmethod
    def from_dict(cls, data: Any) -> PanicCancelled:
        data = _require_mapping(data, "cancel-panic")
        return cls(participant_id=_require_str(data, "participantId", "cancel-panic"))


@dataclass(frozen=True)
class EventAdded:
    event_type: ClassVar[DomainEventType] = DomainEventType.EVENT_ADDED

    event: Event

    def to_dict(self) -> dict[str, Any]:
        return self.event.to_dict()

    @classmethod
    def from_dict(cls, data: Any) -> EventAdded:
        return cls(event=Event.from_dict(data))


@dataclass(frozen=True)
class EventUpdated:
    event_type: ClassVar[DomainEventType] = DomainEventType.EVENT_UPDATED

    event: Event

    def to_dict(self) -> dict[str, Any]:
        return self.event.to_dict()

    @classmethod
    def from_dict(cls, data: Any) -> EventUpdated:
        return cls(event=Event.from_dict(data))


@dataclass(frozen=True)
class EventDeleted:
    event_type: ClassVar[DomainEventType] = DomainEventType.EVENT_DELETED

    event_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"eventId": self.event_id}

    @classmethod
    def from_dict(cls, data: Any) -> EventDeleted:
        data = _require_mapping(data, "event-deleted")
        return cls(event_id=_require_str(data, "eventId", "event-deleted"))


DomainEvent = Union[
    ParticipantRegistered,
    ParticipantLeft,
    LocationUpdated,
    PanicRaised,
    PanicCancelled,
    EventAdded,
    EventUpdated,
    EventDeleted,
]

PAYLOAD_TYPES: dict[DomainEventType, type] = {
    cls.event_type: cls
    for cls in (
        ParticipantRegistered,
        ParticipantLeft,
        LocationUpdated,
        PanicRaised,
        PanicCancelled,
        EventAdded,
        EventUpdated,
        EventDeleted,
    )
}

EVENT_NAMES: tuple[str, ...] = tuple(t.value for t in DomainEventType)


def decode_domain_event(name: str, data: Any) -> DomainEvent:
    """Build a typed domain event from a wire name and its JSON data.

    Raises:
        MalformedFrameError: If the name is not a domain event or the data
            does not match its payload shape
    """
    try:
        event_type = DomainEventType(name)
    except ValueError:
        raise MalformedFrameError(f"unknown domain event {name!r}") from None
    return PAYLOAD_TYPES[event_type].from_dict(data)


def encode_domain_event(event: DomainEvent) -> tuple[str, dict[str, Any]]:
    """Return the wire name and JSON data for a domain event."""
    return event.event_type.value, event.to_dict()
