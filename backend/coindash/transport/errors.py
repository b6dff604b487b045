"""Exceptions raised by the streaming transport."""

from __future__ import annotations


class TransportError(Exception):
    """Base class for streaming transport failures."""


class FrameError(TransportError):
    """A message that does not decode as a STOMP frame."""


class StompProtocolError(TransportError):
    """The broker sent an ERROR frame or an unexpected handshake reply."""


class HeartbeatTimeout(TransportError):
    """Nothing was received within the negotiated heartbeat window."""


class ReconnectExhaustedError(TransportError):
    """Terminal: the reconnection policy's attempt ceiling was reached."""

    def __init__(self, attempts: int, cause: BaseException | None = None) -> None:
        super().__init__(f"gave up after {attempts} reconnection attempts: {cause}")
        self.attempts = attempts
        self.cause = cause
