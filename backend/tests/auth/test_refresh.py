"""Tests for RefreshCoordinator single-flight behavior."""

import asyncio
import json

import httpx
import pytest

from coindash.auth.credentials import CredentialStore, Credentials
from coindash.auth.errors import RefreshError
from coindash.auth.refresh import RefreshCoordinator


def _refresh_backend(calls, *, status=200, body=None, delay=0.01):
    """Mock /api/auth/refresh handler that counts calls."""

    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/auth/refresh"
        calls.append(json.loads(request.content))
        await asyncio.sleep(delay)  # Keep the refresh in flight long enough to overlap
        payload = body if body is not None else {"data": {"accessToken": f"new-access-{len(calls)}"}}
        return httpx.Response(status, json=payload)

    return handler


@pytest.mark.asyncio
class TestRefreshCoordinator:
    """Unit tests for RefreshCoordinator."""

    async def test_concurrent_callers_share_one_refresh(self, store, make_client):
        """N concurrent refreshes issue exactly one request and see the same token."""
        calls = []
        coordinator = RefreshCoordinator(make_client(_refresh_backend(calls)), store)

        tokens = await asyncio.gather(*(coordinator.refresh() for _ in range(5)))

        assert len(calls) == 1
        assert tokens == ["new-access-1"] * 5
        assert store.access_token == "new-access-1"
        assert coordinator.refresh_count == 1

    async def test_refresh_sends_stored_refresh_token(self, store, make_client):
        """The POST body carries the stored refresh token."""
        calls = []
        coordinator = RefreshCoordinator(make_client(_refresh_backend(calls)), store)
        await coordinator.refresh()
        assert calls == [{"refreshToken": "refresh-1"}]

    async def test_inflight_cleared_after_completion(self, store, make_client):
        """A later refresh starts a new request instead of replaying the old result."""
        calls = []
        coordinator = RefreshCoordinator(make_client(_refresh_backend(calls)), store)

        first = await coordinator.refresh()
        assert not coordinator.in_flight
        second = await coordinator.refresh()

        assert len(calls) == 2
        assert (first, second) == ("new-access-1", "new-access-2")

    async def test_concurrent_failure_shared_and_invalidates_once(self, store, make_client, invalidations):
        """All callers see the same failure; credentials wiped; one signal."""
        calls = []
        coordinator = RefreshCoordinator(
            make_client(_refresh_backend(calls, status=401, body={"error": "expired"})),
            store,
            on_session_invalid=invalidations.append,
        )

        results = await asyncio.gather(*(coordinator.refresh() for _ in range(4)), return_exceptions=True)

        assert len(calls) == 1
        assert all(isinstance(r, RefreshError) for r in results)
        assert len({id(r) for r in results}) == 1  # The very same exception object
        assert store.get() is None
        assert len(invalidations) == 1
        assert not coordinator.in_flight

    async def test_keeps_refresh_token_when_not_rotated(self, store, make_client):
        """Without a new refresh token in the response the old one is kept."""
        coordinator = RefreshCoordinator(make_client(_refresh_backend([])), store)
        await coordinator.refresh()
        assert store.get() == Credentials("new-access-1", "refresh-1")

    async def test_rotated_refresh_token_is_stored(self, store, make_client):
        """A rotated refresh token replaces the old one."""
        body = {"data": {"accessToken": "a2", "refreshToken": "refresh-2"}}
        coordinator = RefreshCoordinator(make_client(_refresh_backend([], body=body)), store)
        await coordinator.refresh()
        assert store.get() == Credentials("a2", "refresh-2")

    async def test_bare_response_body_accepted(self, store, make_client):
        """A response without the data envelope also works."""
        coordinator = RefreshCoordinator(make_client(_refresh_backend([], body={"accessToken": "a3"})), store)
        assert await coordinator.refresh() == "a3"

    async def test_response_without_access_token_fails(self, store, make_client, invalidations):
        """A 200 without an access token is a refresh failure."""
        coordinator = RefreshCoordinator(
            make_client(_refresh_backend([], body={"data": {}})),
            store,
            on_session_invalid=invalidations.append,
        )
        with pytest.raises(RefreshError):
            await coordinator.refresh()
        assert store.get() is None
        assert len(invalidations) == 1

    async def test_missing_refresh_token_fails_without_request(self, store, make_client):
        """No refresh token means no request at all."""
        calls = []
        store.replace(Credentials("old-access", None))
        coordinator = RefreshCoordinator(make_client(_refresh_backend(calls)), store)

        with pytest.raises(RefreshError, match="no refresh token"):
            await coordinator.refresh()
        assert calls == []

    async def test_network_error_is_refresh_error(self, store, make_client):
        """Transport failures during refresh surface as RefreshError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        coordinator = RefreshCoordinator(make_client(handler), store)
        with pytest.raises(RefreshError, match="refresh request failed"):
            await coordinator.refresh()

    async def test_cancelled_caller_does_not_cancel_shared_refresh(self, store, make_client):
        """Cancelling one waiter leaves the refresh running for the others."""
        calls = []
        coordinator = RefreshCoordinator(make_client(_refresh_backend(calls, delay=0.05)), store)

        doomed = asyncio.create_task(coordinator.refresh())
        survivor = asyncio.create_task(coordinator.refresh())
        await asyncio.sleep(0.01)
        doomed.cancel()

        assert await survivor == "new-access-1"
        assert len(calls) == 1

    async def test_invalidate_is_idempotent(self, store, make_client, invalidations):
        """Only the invalidation that actually clears credentials signals."""
        coordinator = RefreshCoordinator(
            make_client(_refresh_backend([])),
            store,
            on_session_invalid=invalidations.append,
        )
        assert coordinator.invalidate("first") is True
        assert coordinator.invalidate("second") is False
        assert invalidations == ["first"]

    async def test_invalidate_signals_once_with_empty_store(self, make_client, invalidations):
        """With no credentials held, the first invalidation still signals and later ones do not."""
        coordinator = RefreshCoordinator(
            make_client(_refresh_backend([])),
            CredentialStore(),
            on_session_invalid=invalidations.append,
        )
        assert coordinator.invalidate("first") is True
        assert coordinator.invalidate("second") is False
        assert invalidations == ["first"]

    async def test_invalidate_signals_again_after_new_login(self, store, make_client, invalidations):
        """A login after an invalidation makes the next failure signal again."""
        coordinator = RefreshCoordinator(
            make_client(_refresh_backend([])),
            store,
            on_session_invalid=invalidations.append,
        )
        coordinator.invalidate("first")
        store.replace(Credentials("a2", "r2"))
        coordinator.invalidate("second")
        assert invalidations == ["first", "second"]
