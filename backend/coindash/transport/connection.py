"""Resilient STOMP-over-websocket connection with topic multiplexing."""

from __future__ import annotations

import asyncio
import enum
import itertools
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlsplit

import websockets

from ..auth.credentials import CredentialStore
from .errors import (
    FrameError,
    HeartbeatTimeout,
    ReconnectExhaustedError,
    StompProtocolError,
    TransportError,
)
from .frames import HEARTBEAT, Frame, decode_frame, encode_frame, negotiate_heartbeat, parse_heartbeat
from .policy import ReconnectionPolicy

logger = logging.getLogger(__name__)

# A connection is declared dead after this many silent incoming heartbeat intervals.
HEARTBEAT_GRACE = 2.0
HANDSHAKE_TIMEOUT = 10.0

MessageHandler = Callable[[Frame], None]
Connector = Callable[..., Awaitable[Any]]


class ConnectionState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def _noop() -> None:
    return None


class StreamConnection:
    """One physical streaming session to the broker, reconnecting on failure.

    State machine:
        IDLE -> CONNECTING -> CONNECTED
        CONNECTED -> CLOSED on abnormal close, heartbeat timeout or ERROR frame
        CLOSED -> CONNECTING after ReconnectionPolicy.delay(attempt)
        CLOSED stays CLOSED once max_attempts is exhausted (on_error fires once)
        any -> IDLE on disconnect(), which is terminal for this instance

    Subscriptions belong to a session: they are released when the session
    ends and must be re-established from `on_ready`. Outbound frames go
    through a single writer task, which also emits heartbeats when idle.
    """

    def __init__(
        self,
        url: str,
        credentials: CredentialStore | None = None,
        policy: ReconnectionPolicy | None = None,
        *,
        heartbeat_ms: int = 4000,
        connector: Connector | None = None,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self._url = url
        self._host = urlsplit(url).hostname or "/"
        self._credentials = credentials
        self._policy = policy or ReconnectionPolicy()
        self._heartbeat_ms = heartbeat_ms
        self._connector = connector or websockets.connect
        self._handshake_timeout = handshake_timeout
        self._sleep = sleep or asyncio.sleep

        self._state = ConnectionState.IDLE
        self._attempts = 0
        self._disposed = False
        self._task: asyncio.Task | None = None
        self._ws: Any = None
        self._outbox: asyncio.Queue[str] | None = None
        self._subscriptions: dict[str, tuple[str, MessageHandler]] = {}
        self._sub_ids = itertools.count(1)

        self._on_ready: Callable[[], None] | None = None
        self._on_error: Callable[[BaseException], None] | None = None
        self._on_closed: Callable[[], None] | None = None

    # --- Public API ---

    def connect(
        self,
        on_ready: Callable[[], None],
        on_error: Callable[[BaseException], None] | None = None,
        on_closed: Callable[[], None] | None = None,
    ) -> None:
        """Start the connection in the background.

        No-op while connecting, connected, or waiting to reconnect. After the
        attempt ceiling was hit, calling it again starts over from attempt 0.
        `on_ready` fires once per established session, `on_closed` when an
        established session ends, `on_error` once with ReconnectExhaustedError.
        """
        if self._disposed:
            raise RuntimeError("StreamConnection was disconnected; create a new instance")
        if self._task is not None and not self._task.done():
            return
        self._on_ready = on_ready
        self._on_error = on_error
        self._on_closed = on_closed
        self._attempts = 0
        self._task = asyncio.create_task(self._run(), name="stream-connection")

    def subscribe(self, topic: str, handler: MessageHandler) -> Callable[[], None]:
        """Invoke `handler` for every MESSAGE on `topic`. Returns an unsubscriber.

        Does not queue: when not connected this logs an error and returns a
        no-op unsubscriber.
        """
        outbox = self._outbox
        if self._state is not ConnectionState.CONNECTED or outbox is None:
            logger.error("Cannot subscribe to %s: stream not connected", topic)
            return _noop

        sub_id = f"sub-{next(self._sub_ids)}"
        self._subscriptions[sub_id] = (topic, handler)
        outbox.put_nowait(encode_frame(Frame("SUBSCRIBE", {"id": sub_id, "destination": topic})))
        logger.info("Subscribed to %s (%s)", topic, sub_id)

        def unsubscribe() -> None:
            if self._subscriptions.pop(sub_id, None) is None:
                return  # Already released, or from an earlier session
            if self._outbox is outbox:
                outbox.put_nowait(encode_frame(Frame("UNSUBSCRIBE", {"id": sub_id})))
            logger.info("Unsubscribed from %s (%s)", topic, sub_id)

        return unsubscribe

    def send(self, destination: str, payload: Any) -> None:
        """Fire-and-forget publish of a JSON-encoded payload."""
        outbox = self._outbox
        if self._state is not ConnectionState.CONNECTED or outbox is None:
            logger.error("Cannot send to %s: stream not connected", destination)
            return
        body = json.dumps(payload)
        headers = {
            "destination": destination,
            "content-type": "application/json",
            "content-length": str(len(body.encode("utf-8"))),
        }
        outbox.put_nowait(encode_frame(Frame("SEND", headers, body)))

    async def disconnect(self) -> None:
        """Close cleanly and release everything. The instance cannot be reused."""
        self._disposed = True
        was_connected = self._state is ConnectionState.CONNECTED
        ws = self._ws
        if ws is not None and was_connected:
            try:
                await ws.send(encode_frame(Frame("DISCONNECT", {"receipt": "disconnect"})))
            except (websockets.ConnectionClosed, OSError) as e:
                logger.debug("DISCONNECT frame not delivered: %s", e)

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._subscriptions.clear()
        self._state = ConnectionState.IDLE
        if was_connected:
            self._notify(self._on_closed)
        logger.info("Stream disconnected from %s", self._url)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def attempts(self) -> int:
        """Consecutive failed attempts since the last established session."""
        return self._attempts

    @property
    def url(self) -> str:
        return self._url

    # --- Internal ---

    async def _run(self) -> None:
        """Session loop: connect, serve until failure, back off, repeat."""
        while True:
            try:
                await self._session()
            except asyncio.CancelledError:
                raise
            except Exception as e:  # noqa: BLE001 - every failure is a reconnect trigger
                failure: BaseException = e
            else:
                failure = TransportError("stream ended unexpectedly")

            if self._disposed:
                return

            was_connected = self._state is ConnectionState.CONNECTED
            self._state = ConnectionState.CLOSED
            self._subscriptions.clear()
            if was_connected:
                logger.warning("Stream connection lost: %s", failure)
                self._notify(self._on_closed)
            else:
                logger.warning("Stream connection attempt failed: %s", failure)

            if not self._policy.allows(self._attempts):
                logger.error(
                    "Giving up on %s after %d reconnection attempts",
                    self._url,
                    self._attempts,
                )
                self._notify(self._on_error, ReconnectExhaustedError(self._attempts, failure))
                return

            delay_ms = self._policy.delay(self._attempts)
            self._attempts += 1
            logger.info(
                "Reconnecting in %dms (attempt %d/%d)",
                delay_ms,
                self._attempts,
                self._policy.max_attempts,
            )
            await self._sleep(delay_ms / 1000)

    async def _session(self) -> None:
        """Run one session. Only returns by raising."""
        self._state = ConnectionState.CONNECTING
        ws = await self._connector(self._url, ping_interval=None)
        self._ws = ws
        try:
            await ws.send(encode_frame(self._connect_frame()))
            outgoing_ms, incoming_ms = await self._handshake(ws)

            outbox: asyncio.Queue[str] = asyncio.Queue()
            self._outbox = outbox
            self._state = ConnectionState.CONNECTED
            self._attempts = 0
            logger.info(
                "Stream connected to %s (heartbeat out=%dms in=%dms)",
                self._url,
                outgoing_ms,
                incoming_ms,
            )

            reader = asyncio.create_task(self._read_loop(ws, incoming_ms), name="stream-reader")
            writer = asyncio.create_task(self._write_loop(ws, outbox, outgoing_ms), name="stream-writer")
            try:
                self._notify(self._on_ready)
                done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (reader, writer):
                    task.cancel()
                await asyncio.gather(reader, writer, return_exceptions=True)
            for task in done:
                task.result()
            raise TransportError("stream loop exited")
        finally:
            self._ws = None
            self._outbox = None
            await ws.close()

    async def _handshake(self, ws: Any) -> tuple[int, int]:
        try:
            reply = await asyncio.wait_for(self._next_frame(ws), self._handshake_timeout)
        except asyncio.TimeoutError:
            raise StompProtocolError("no CONNECTED frame within handshake timeout") from None
        if reply.command == "ERROR":
            raise StompProtocolError(f"connect rejected: {self._error_text(reply)}")
        if reply.command != "CONNECTED":
            raise StompProtocolError(f"expected CONNECTED, got {reply.command}")
        server_heartbeat = parse_heartbeat(reply.headers.get("heart-beat"))
        return negotiate_heartbeat((self._heartbeat_ms, self._heartbeat_ms), server_heartbeat)

    async def _next_frame(self, ws: Any) -> Frame:
        while True:
            frame = decode_frame(await ws.recv())
            if frame is not None:
                return frame

    async def _read_loop(self, ws: Any, incoming_ms: int) -> None:
        timeout = incoming_ms * HEARTBEAT_GRACE / 1000 if incoming_ms else None
        while True:
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout)
            except asyncio.TimeoutError:
                raise HeartbeatTimeout(f"nothing received for {timeout:.1f}s") from None

            try:
                frame = decode_frame(raw)
            except FrameError as e:
                logger.warning("Dropping undecodable frame: %s", e)
                continue

            if frame is None:
                continue  # Heartbeat
            if frame.command == "MESSAGE":
                self._dispatch(frame)
            elif frame.command == "ERROR":
                raise StompProtocolError(self._error_text(frame))
            else:
                logger.debug("Ignoring %s frame", frame.command)

    async def _write_loop(self, ws: Any, outbox: asyncio.Queue[str], outgoing_ms: int) -> None:
        interval = outgoing_ms / 1000 if outgoing_ms else None
        while True:
            try:
                data = await asyncio.wait_for(outbox.get(), interval)
            except asyncio.TimeoutError:
                data = HEARTBEAT
            await ws.send(data)

    def _dispatch(self, frame: Frame) -> None:
        entry = self._subscriptions.get(frame.subscription or "")
        if entry is None:
            logger.debug("MESSAGE for unknown subscription %s", frame.subscription)
            return
        topic, handler = entry
        try:
            handler(frame)
        except Exception:
            logger.exception("Handler for %s failed", topic)

    def _connect_frame(self) -> Frame:
        headers = {
            "accept-version": "1.2,1.1",
            "host": self._host,
            "heart-beat": f"{self._heartbeat_ms},{self._heartbeat_ms}",
        }
        token = self._credentials.access_token if self._credentials else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return Frame("CONNECT", headers)

    @staticmethod
    def _error_text(frame: Frame) -> str:
        message = frame.headers.get("message", "")
        return f"{message} {frame.body}".strip() or "ERROR frame"

    def _notify(self, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Stream callback %s failed", getattr(callback, "__name__", callback))
