"""Streaming transport: STOMP over websocket with reconnection.

Public API:
    StreamConnection    - One managed session with topic subscriptions
    ConnectionState     - IDLE / CONNECTING / CONNECTED / CLOSED
    ReconnectionPolicy  - Exponential backoff with an attempt ceiling
    Frame               - Decoded STOMP frame handed to subscription handlers
"""

from .connection import ConnectionState, StreamConnection
from .errors import (
    FrameError,
    HeartbeatTimeout,
    ReconnectExhaustedError,
    StompProtocolError,
    TransportError,
)
from .frames import Frame
from .policy import ReconnectionPolicy

__all__ = [
    "StreamConnection",
    "ConnectionState",
    "ReconnectionPolicy",
    "Frame",
    "TransportError",
    "FrameError",
    "HeartbeatTimeout",
    "ReconnectExhaustedError",
    "StompProtocolError",
]
