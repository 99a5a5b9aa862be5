"""
Live Tracking Sync

Real-time synchronization engine for live event tracking: an admin console
and participant devices share event rosters, participant locations and panic
alerts over a publish/subscribe broker.

Provides:
- A reconnecting WebSocket transport client with an outbound queue
- A pure, idempotent reducer for the events and participants aggregates
- A periodic location sampler
- An application controller wiring them to a presenter
- A minimal relay broker

Usage:

    >>> from livetrack_sync import TrackingConfig, TrackingController, TransportClient
    >>> config = TrackingConfig.from_environment()
    >>> transport = TransportClient.from_config(config)
    >>> controller = TrackingController(transport, presenter=my_dashboard)
    >>> await controller.attach()
    >>> controller.add_event("City Marathon", active=True)
"""

from .config import TrackingConfig
from .controller import Presenter, TrackingController

# Exceptions
from .exceptions import (
    ConfigurationError,
    LiveTrackError,
    MalformedFrameError,
    SensorError,
    TransportError,
)
from .logging_utils import configure_structured_logging

# Data model and protocol
from .models import Event, Location, Participant, ParticipantStatus
from .protocol import (
    DomainEvent,
    DomainEventType,
    EventAdded,
    EventDeleted,
    EventUpdated,
    LocationUpdated,
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
    apply_frame,
    panicking_participants,
    participants_of_active_event,
    reduce,
)
from .sampler import LocationSampler, LocationSensor, SamplerStatus
from .transport import (
    AiohttpConnector,
    BrokerHub,
    ConnectionState,
    ReconnectBackoff,
    TransportClient,
    create_broker_app,
)

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "TrackingConfig",
    "configure_structured_logging",
    # Exceptions
    "ConfigurationError",
    "LiveTrackError",
    "MalformedFrameError",
    "SensorError",
    "TransportError",
    # Model
    "Event",
    "Location",
    "Participant",
    "ParticipantStatus",
    # Protocol
    "DomainEvent",
    "DomainEventType",
    "EventAdded",
    "EventDeleted",
    "EventUpdated",
    "LocationUpdated",
    "PanicCancelled",
    "PanicRaised",
    "ParticipantLeft",
    "ParticipantRegistered",
    "decode_domain_event",
    "encode_domain_event",
    # Reducer
    "TrackingState",
    "active_event",
    "apply_frame",
    "panicking_participants",
    "participants_of_active_event",
    "reduce",
    # Components
    "AiohttpConnector",
    "BrokerHub",
    "ConnectionState",
    "LocationSampler",
    "LocationSensor",
    "Presenter",
    "ReconnectBackoff",
    "SamplerStatus",
    "TrackingController",
    "TransportClient",
    "create_broker_app",
]
