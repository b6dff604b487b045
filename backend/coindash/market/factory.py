"""Wiring for the market data sync core."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..auth.credentials import CredentialStore
from ..auth.refresh import RefreshCoordinator
from ..auth.requester import AuthenticatedRequester
from ..config import Settings
from ..transport.connection import Connector, StreamConnection
from ..transport.policy import ReconnectionPolicy
from .snapshot import SnapshotClient
from .synchronizer import MarketDataSynchronizer
from .table import CanonicalPriceTable

logger = logging.getLogger(__name__)


@dataclass
class MarketSync:
    """Everything one application instance needs to keep its price table live."""

    table: CanonicalPriceTable
    credentials: CredentialStore
    client: httpx.AsyncClient
    coordinator: RefreshCoordinator
    requester: AuthenticatedRequester
    connection: StreamConnection
    synchronizer: MarketDataSynchronizer

    def start(self) -> None:
        self.synchronizer.start()

    async def aclose(self) -> None:
        """Stop syncing and close the HTTP client."""
        await self.synchronizer.stop()
        await self.client.aclose()


def create_market_sync(
    settings: Settings,
    table: CanonicalPriceTable | None = None,
    credentials: CredentialStore | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    connector: Connector | None = None,
) -> MarketSync:
    """Build the sync core from settings.

    Returns an unstarted MarketSync. Caller must call start() from inside a
    running event loop and await aclose() on shutdown.
    """
    table = table if table is not None else CanonicalPriceTable()
    credentials = credentials if credentials is not None else CredentialStore(settings.credentials_file)
    client = client or httpx.AsyncClient(base_url=settings.backend_url, timeout=settings.http_timeout)

    coordinator = RefreshCoordinator(client, credentials)
    requester = AuthenticatedRequester(client, credentials, coordinator)
    connection = StreamConnection(
        settings.stream_url,
        credentials,
        ReconnectionPolicy(
            base_ms=settings.reconnect_base_ms,
            max_attempts=settings.reconnect_max_attempts,
        ),
        heartbeat_ms=settings.heartbeat_ms,
        connector=connector,
    )
    synchronizer = MarketDataSynchronizer(
        connection,
        SnapshotClient(requester, settings.snapshot_exchanges),
        table,
        topic=settings.price_topic,
    )

    logger.info(
        "Market sync: stream %s, snapshot from %s via %s",
        settings.stream_url,
        ", ".join(settings.snapshot_exchanges),
        settings.backend_url,
    )
    return MarketSync(
        table=table,
        credentials=credentials,
        client=client,
        coordinator=coordinator,
        requester=requester,
        connection=connection,
        synchronizer=synchronizer,
    )
