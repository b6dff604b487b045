"""Fixtures for market tests: a scriptable stream connection and snapshot source."""

import asyncio
import json

import pytest

from coindash.transport.frames import Frame


class FakeConnection:
    """Stands in for StreamConnection. Tests drive its callbacks directly."""

    def __init__(self) -> None:
        self.on_ready = None
        self.on_error = None
        self.on_closed = None
        self.connect_calls = 0
        self.disconnected = False
        self.subscriptions: list[str] = []
        self.handler = None
        self.unsubscribed: list[str] = []

    def connect(self, on_ready, on_error=None, on_closed=None) -> None:
        self.connect_calls += 1
        self.on_ready, self.on_error, self.on_closed = on_ready, on_error, on_closed

    def subscribe(self, topic, handler):
        self.subscriptions.append(topic)
        self.handler = handler

        def unsubscribe():
            self.unsubscribed.append(topic)
            self.handler = None

        return unsubscribe

    async def disconnect(self) -> None:
        self.disconnected = True

    # --- Test helpers ---

    def ready(self) -> None:
        self.on_ready()

    def close(self) -> None:
        self.handler = None
        self.on_closed()

    def fail(self, error: BaseException) -> None:
        self.on_error(error)

    def deliver(self, body) -> None:
        if not isinstance(body, str):
            body = json.dumps(body)
        self.handler(Frame("MESSAGE", {"destination": "/topic/coins/all", "subscription": "sub-1"}, body))


class FakeSnapshot:
    """Returns (or raises) queued results; can be held open with `gate`."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def fetch(self):
        self.calls += 1
        result = self.results.pop(0) if self.results else []
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def snapshot():
    return FakeSnapshot()


@pytest.fixture
def make_snapshot():
    """Build a FakeSnapshot answering with the given results in order."""
    return FakeSnapshot
