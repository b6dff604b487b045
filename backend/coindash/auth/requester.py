"""Authenticated request wrapper with one refresh-and-retry on 401."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .credentials import CredentialStore
from .errors import AuthenticationError, RefreshError
from .refresh import RefreshCoordinator

logger = logging.getLogger(__name__)


class AuthenticatedRequester:
    """Sends requests with the current bearer token.

    Per call: attempt with the stored token; on 401, refresh through the
    coordinator and retry once with the new token; a second 401 invalidates
    the session and raises AuthenticationError. There is never a third
    attempt. Anything other than a 401 (5xx, network errors) reaches the
    caller untouched.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: CredentialStore,
        coordinator: RefreshCoordinator,
    ) -> None:
        self._client = client
        self._store = store
        self._coordinator = coordinator

    async def call(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request, handling authorization failures as described above."""
        response = await self._send(method, url, self._store.access_token, kwargs)
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return response

        logger.warning("%s %s returned 401; refreshing access token", method, url)
        try:
            token = await self._coordinator.refresh()
        except RefreshError as e:
            # The coordinator has already invalidated the session.
            raise AuthenticationError(f"{method} {url}: {e}") from e

        response = await self._send(method, url, token, kwargs)
        if response.status_code == httpx.codes.UNAUTHORIZED:
            self._coordinator.invalidate(f"{method} {url} still unauthorized after refresh")
            raise AuthenticationError(f"{method} {url}: unauthorized after token refresh")
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.call("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.call("POST", url, **kwargs)

    async def _send(
        self,
        method: str,
        url: str,
        token: str | None,
        kwargs: dict[str, Any],
    ) -> httpx.Response:
        headers = dict(kwargs.get("headers") or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self._client.request(method, url, **{**kwargs, "headers": headers})
