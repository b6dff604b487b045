"""Pytest configuration and fixtures."""

import asyncio

import pytest


@pytest.fixture
def eventually():
    """Poll a predicate until it holds, failing the test after `timeout` seconds."""

    async def wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError(f"condition not met within {timeout}s")
            await asyncio.sleep(0.005)

    return wait
