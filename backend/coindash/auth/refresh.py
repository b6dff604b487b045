"""Single-flight access token refresh."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from .credentials import CredentialStore, Credentials
from .errors import RefreshError

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_PATH = "/api/auth/refresh"


class RefreshCoordinator:
    """Refreshes the access token, with at most one refresh in flight.

    Any number of callers that hit a 401 at the same time share one refresh
    request and all observe its outcome: the same new token, or the same
    RefreshError. The shared task is dropped as soon as it finishes, so the
    next 401 starts a fresh refresh rather than replaying an old result.

    A failed refresh is terminal for the session: the credential store is
    wiped and `on_session_invalid` fires once.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: CredentialStore,
        refresh_path: str = DEFAULT_REFRESH_PATH,
        on_session_invalid: Callable[[str], None] | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._refresh_path = refresh_path
        self.on_session_invalid = on_session_invalid
        self._inflight: asyncio.Task[str] | None = None
        self._refresh_count = 0
        self._signalled = False  # Session-invalid sent for the current (empty) store

    async def refresh(self) -> str:
        """Return a fresh access token, joining an in-flight refresh if there is one.

        Raises RefreshError if the refresh fails. A caller being cancelled does
        not cancel the refresh the other callers are waiting on.
        """
        if self._inflight is None:
            self._inflight = asyncio.create_task(self._run_refresh(), name="token-refresh")
        return await asyncio.shield(self._inflight)

    def invalidate(self, reason: str) -> bool:
        """Wipe the credentials and signal session loss.

        Fires when credentials were held, or when the store was already empty
        and no signal has gone out since. A burst of concurrent failures
        therefore produces a single notification, with or without a login.
        """
        if not self._store.clear() and self._signalled:
            return False
        self._signalled = True
        logger.error("Session invalidated: %s", reason)
        if self.on_session_invalid is not None:
            try:
                self.on_session_invalid(reason)
            except Exception:
                logger.exception("Session-invalid callback failed")
        return True

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    @property
    def refresh_count(self) -> int:
        """Number of successful refreshes performed by this coordinator."""
        return self._refresh_count

    # --- Internal ---

    async def _run_refresh(self) -> str:
        try:
            return await self._request_new_token()
        except RefreshError as e:
            self.invalidate(f"token refresh failed: {e}")
            raise
        finally:
            self._inflight = None

    async def _request_new_token(self) -> str:
        refresh_token = self._store.refresh_token
        if not refresh_token:
            raise RefreshError("no refresh token available")

        try:
            response = await self._client.post(
                self._refresh_path,
                json={"refreshToken": refresh_token},
            )
        except httpx.HTTPError as e:
            raise RefreshError(f"refresh request failed: {e}") from e

        if not response.is_success:
            raise RefreshError(f"refresh rejected with HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise RefreshError("refresh response is not JSON") from e

        # The backend wraps payloads as {"data": {...}}; accept a bare object too.
        data = body.get("data", body) if isinstance(body, dict) else None
        access_token = data.get("accessToken") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise RefreshError("refresh response carries no access token")

        # Keep the old refresh token unless the server rotated it.
        new_refresh = data.get("refreshToken") or refresh_token
        self._store.replace(Credentials(access_token=access_token, refresh_token=new_refresh))
        self._refresh_count += 1
        logger.info("Access token refreshed")
        return access_token
