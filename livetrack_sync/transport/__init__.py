"""
Broker transport.

Provides the reconnecting named-event client, its backoff policy, the
connection adapters it runs on, and a minimal relay broker.
"""

from .backoff import ReconnectBackoff
from .broker import BrokerHub, create_broker_app
from .client import ConnectionState, TransportClient
from .connection import AiohttpConnection, AiohttpConnector, BrokerConnection, Connector

__all__ = [
    "AiohttpConnection",
    "AiohttpConnector",
    "BrokerConnection",
    "BrokerHub",
    "ConnectionState",
    "Connector",
    "ReconnectBackoff",
    "TransportClient",
    "create_broker_app",
]
