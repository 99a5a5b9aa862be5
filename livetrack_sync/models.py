"""
Entity types shared by every tracking client.

Entities are immutable; the reducer produces new instances with
``dataclasses.replace`` instead of mutating them. Wire payloads use
camelCase keys (``eventId``, ``lastUpdate``) while attributes are snake_case.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import MalformedFrameError


def _require_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedFrameError(f"{what} must be a JSON object, got {type(data).__name__}")
    return data


def _require_str(data: dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedFrameError(f"{what}.{key} must be a non-empty string")
    return value


def _coerce_str(data: dict[str, Any], key: str, what: str) -> str:
    """Accept strings or numbers (bib numbers are often typed as digits)."""
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise MalformedFrameError(f"{what}.{key} must be a string")
    return str(value)


def _require_number(data: dict[str, Any], key: str, what: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedFrameError(f"{what}.{key} must be a number")
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        raise MalformedFrameError(f"{what}.{key} must be a finite number")
    return number


class ParticipantStatus(Enum):
    """Tracking status of a participant.

    FINISHED is never stored: a participant who stops tracking is removed
    from the roster instead.
    """

    TRACKING = "tracking"
    PANIC = "panic"
    FINISHED = "finished"


@dataclass(frozen=True)
class Location:
    """A WGS84 coordinate."""

    lat: float
    lng: float

    def to_dict(self) -> dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: Any) -> Location:
        data = _require_mapping(data, "location")
        return cls(
            lat=_require_number(data, "lat", "location"),
            lng=_require_number(data, "lng", "location"),
        )


@dataclass(frozen=True)
class Event:
    """A competition that participants register for.

    Attributes:
        id: Opaque identifier assigned by the creating client
        name: Display name
        active: Whether this is the event currently running; at most one
            event in a roster is active
    """

    id: str
    name: str
    active: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "active": self.active}

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        data = _require_mapping(data, "event")
        active = data.get("active", False)
        if not isinstance(active, bool):
            raise MalformedFrameError("event.active must be a boolean")
        return cls(
            id=_require_str(data, "id", "event"),
            name=_coerce_str(data, "name", "event"),
            active=active,
        )


@dataclass(frozen=True)
class Participant:
    """A registered participant and their last known position.

    Attributes:
        id: Opaque identifier assigned by the registering device
        name: Display name
        number: Bib number, kept as text
        event_id: ID of the event the participant registered for
        location: Last known location, if any sample arrived yet
        status: TRACKING or PANIC
        last_update: Epoch milliseconds of the last location sample
    """

    id: str
    name: str
    number: str
    event_id: str
    location: Location | None = None
    status: ParticipantStatus = ParticipantStatus.TRACKING
    last_update: int | None = None

    @property
    def is_panicking(self) -> bool:
        return self.status is ParticipantStatus.PANIC

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "number": self.number,
            "eventId": self.event_id,
            "status": self.status.value,
        }
        if self.location is not None:
            result["location"] = self.location.to_dict()
        if self.last_update is not None:
            result["lastUpdate"] = self.last_update
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Participant:
        """Deserialize from the wire shape."""
        data = _require_mapping(data, "participant")

        location = None
        if data.get("location") is not None:
            location = Location.from_dict(data["location"])

        status_str = data.get("status", ParticipantStatus.TRACKING.value)
        try:
            status = ParticipantStatus(status_str)
        except ValueError:
            raise MalformedFrameError(f"participant.status {status_str!r} is not valid") from None

        last_update = None
        if data.get("lastUpdate") is not None:
            last_update = int(_require_number(data, "lastUpdate", "participant"))

        return cls(
            id=_require_str(data, "id", "participant"),
            name=_coerce_str(data, "name", "participant"),
            number=_coerce_str(data, "number", "participant"),
            event_id=_require_str(data, "eventId", "participant"),
            location=location,
            status=status,
            last_update=last_update,
        )
