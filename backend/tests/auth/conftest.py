"""Fixtures for authentication tests: a mock backend behind httpx.MockTransport."""

import httpx
import pytest

from coindash.auth.credentials import CredentialStore, Credentials
from coindash.auth.refresh import RefreshCoordinator
from coindash.auth.requester import AuthenticatedRequester

BASE_URL = "http://backend.test"


@pytest.fixture
def store():
    """A store holding an expired-looking access token and a valid refresh token."""
    store = CredentialStore()
    store.replace(Credentials(access_token="old-access", refresh_token="refresh-1"))
    return store


@pytest.fixture
def invalidations():
    """Collects session-invalid signals."""
    return []


@pytest.fixture
def make_client():
    """Build an AsyncClient whose requests are answered by `handler`."""

    def make(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)

    return make


@pytest.fixture
def make_requester(store, invalidations, make_client):
    """Wire coordinator + requester around a mock backend handler."""

    def make(handler):
        client = make_client(handler)
        coordinator = RefreshCoordinator(client, store, on_session_invalid=invalidations.append)
        return AuthenticatedRequester(client, store, coordinator), coordinator

    return make
