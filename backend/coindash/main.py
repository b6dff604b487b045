"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import Settings, load_settings
from .market import CanonicalPriceTable, create_market_sync, create_stream_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app. The price table lives for the app; the sync core for its lifespan."""
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    table = CanonicalPriceTable()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sync = create_market_sync(settings, table)
        sync.coordinator.on_session_invalid = lambda reason: logger.warning(
            "Login required: %s", reason
        )
        app.state.market_sync = sync
        sync.start()
        try:
            yield
        finally:
            await sync.aclose()

    app = FastAPI(title="CoinDash Market Sync", lifespan=lifespan)
    app.state.price_table = table
    app.include_router(create_stream_router(table))

    @app.get("/api/health")
    async def health() -> dict[str, object]:
        sync = getattr(app.state, "market_sync", None)
        error = sync.synchronizer.last_error if sync else None
        return {
            "stream": sync.connection.state.value if sync else "idle",
            "initialized": table.initialized,
            "error": str(error) if error else None,
        }

    return app
