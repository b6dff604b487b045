"""Environment-driven settings.

Backend URLs are read here and nowhere else.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

DEFAULT_BACKEND_URL = "http://localhost:8080"
DEFAULT_STREAM_PATH = "/ws/coins"


@dataclass(frozen=True)
class Settings:
    backend_url: str = DEFAULT_BACKEND_URL
    stream_url: str = "ws://localhost:8080" + DEFAULT_STREAM_PATH
    price_topic: str = "/topic/coins/all"
    snapshot_exchanges: tuple[str, ...] = ("UPBIT", "COINONE")
    reconnect_base_ms: int = 1000
    reconnect_max_attempts: int = 5
    heartbeat_ms: int = 4000
    http_timeout: float = 10.0
    credentials_file: str | None = None
    log_level: str = "INFO"


def _stream_url_for(backend_url: str) -> str:
    """ws(s)://<backend host>/ws/coins, following the backend's scheme."""
    parts = urlsplit(backend_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = parts.path.rstrip("/") + DEFAULT_STREAM_PATH
    return urlunsplit((scheme, parts.netloc, path, "", ""))


def _get(env: Mapping[str, str], name: str) -> str:
    return env.get(name, "").strip()


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    - APP_SERVER_URL, else NEXT_PUBLIC_API_BASE_URL, else localhost:8080
    - APP_STREAM_URL overrides the stream URL derived from the backend URL
    - APP_SNAPSHOT_EXCHANGES is a comma-separated list
    """
    env = os.environ if env is None else env

    backend_url = (
        _get(env, "APP_SERVER_URL") or _get(env, "NEXT_PUBLIC_API_BASE_URL") or DEFAULT_BACKEND_URL
    ).rstrip("/")

    exchanges = tuple(
        item.strip().upper() for item in _get(env, "APP_SNAPSHOT_EXCHANGES").split(",") if item.strip()
    )

    return Settings(
        backend_url=backend_url,
        stream_url=_get(env, "APP_STREAM_URL") or _stream_url_for(backend_url),
        price_topic=_get(env, "APP_PRICE_TOPIC") or Settings.price_topic,
        snapshot_exchanges=exchanges or Settings.snapshot_exchanges,
        reconnect_base_ms=_get_int(env, "APP_RECONNECT_BASE_MS", Settings.reconnect_base_ms),
        reconnect_max_attempts=_get_int(env, "APP_RECONNECT_MAX_ATTEMPTS", Settings.reconnect_max_attempts),
        heartbeat_ms=_get_int(env, "APP_HEARTBEAT_MS", Settings.heartbeat_ms),
        http_timeout=_get_float(env, "APP_HTTP_TIMEOUT", Settings.http_timeout),
        credentials_file=_get(env, "APP_CREDENTIALS_FILE") or None,
        log_level=(_get(env, "LOG_LEVEL") or Settings.log_level).upper(),
    )
