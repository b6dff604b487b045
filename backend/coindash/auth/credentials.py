"""Token storage."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"


@dataclass(frozen=True, slots=True)
class Credentials:
    """Opaque bearer token pair issued at login and replaced on refresh."""

    access_token: str
    refresh_token: str | None = None

    def __repr__(self) -> str:
        # Tokens never end up in logs.
        return f"Credentials(access_token=***, refresh_token={'***' if self.refresh_token else None})"


class CredentialStore:
    """Sole owner of the current credentials.

    Mutated by the login/logout flow and by RefreshCoordinator. When `path`
    is given the tokens are mirrored to a small JSON file so they survive a
    restart, the way a browser client keeps them in local storage.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._lock = Lock()
        self._credentials: Credentials | None = self._load()

    def get(self) -> Credentials | None:
        with self._lock:
            return self._credentials

    @property
    def access_token(self) -> str | None:
        creds = self.get()
        return creds.access_token if creds else None

    @property
    def refresh_token(self) -> str | None:
        creds = self.get()
        return creds.refresh_token if creds else None

    def replace(self, credentials: Credentials) -> None:
        """Install a new token pair (login, OAuth completion, or refresh)."""
        with self._lock:
            self._credentials = credentials
            self._persist(credentials)

    def clear(self) -> bool:
        """Forget the tokens. Returns True if any were held."""
        with self._lock:
            had_credentials = self._credentials is not None
            self._credentials = None
            if self._path is not None and self._path.exists():
                self._path.unlink()
            return had_credentials

    # --- Internal ---

    def _load(self) -> Credentials | None:
        if self._path is None or not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable credentials file %s: %s", self._path, e)
            return None
        access = data.get(ACCESS_TOKEN_KEY) if isinstance(data, dict) else None
        if not access:
            return None
        return Credentials(access_token=access, refresh_token=data.get(REFRESH_TOKEN_KEY))

    def _persist(self, credentials: Credentials) -> None:
        if self._path is None:
            return
        data = {ACCESS_TOKEN_KEY: credentials.access_token}
        if credentials.refresh_token:
            data[REFRESH_TOKEN_KEY] = credentials.refresh_token
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data), encoding="utf-8")
