"""Fixtures for transport tests: an in-memory STOMP broker.

`FakeBroker.connect` stands in for `websockets.connect` and hands out
`FakeSocket`s that answer CONNECT with CONNECTED (or ERROR when rejecting).
"""

import asyncio

import pytest

from coindash.transport.frames import Frame, decode_frame


class FakeSocket:
    """Scriptable websocket: the test pushes inbound frames, outbound ones are recorded."""

    def __init__(self, server_heartbeat: str = "0,0", reject: str | None = None) -> None:
        self.sent: list[str] = []
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self._server_heartbeat = server_heartbeat
        self._reject = reject

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(data)
        if data.startswith("CONNECT\n"):
            if self._reject:
                self.push(f"ERROR\nmessage:{self._reject}\n\n\x00")
            else:
                self.push(f"CONNECTED\nversion:1.2\nheart-beat:{self._server_heartbeat}\n\n\x00")

    async def recv(self) -> str:
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True

    # --- Test helpers ---

    def push(self, raw: str) -> None:
        self.inbox.put_nowait(raw)

    def message(self, subscription: str, body: str, destination: str = "/topic/coins/all") -> None:
        self.push(
            f"MESSAGE\ndestination:{destination}\nsubscription:{subscription}\n"
            f"message-id:m-{self.inbox.qsize()}\n\n{body}\x00"
        )

    def drop(self) -> None:
        self.inbox.put_nowait(ConnectionError("connection dropped"))

    def frames(self, command: str | None = None) -> list[Frame]:
        decoded = [decode_frame(raw) for raw in self.sent]
        return [f for f in decoded if f is not None and (command is None or f.command == command)]

    @property
    def heartbeats_sent(self) -> int:
        return sum(1 for raw in self.sent if raw == "\n")


class FakeBroker:
    """Connector replacement that records calls and can refuse connections."""

    def __init__(self) -> None:
        self.sockets: list[FakeSocket] = []
        self.calls = 0
        self.refuse = False
        self.socket_options: dict = {}

    async def connect(self, url: str, **kwargs) -> FakeSocket:
        self.calls += 1
        if self.refuse:
            raise OSError("connection refused")
        sock = FakeSocket(**self.socket_options)
        self.sockets.append(sock)
        return sock

    @property
    def latest(self) -> FakeSocket:
        return self.sockets[-1]


@pytest.fixture
def broker():
    return FakeBroker()
