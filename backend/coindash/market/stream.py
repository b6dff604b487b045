"""Read-only HTTP and SSE endpoints over the canonical price table."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from .table import CanonicalPriceTable

logger = logging.getLogger(__name__)


def _table_payload(table: CanonicalPriceTable) -> dict[str, Any]:
    return {
        "initialized": table.initialized,
        "lastUpdated": table.last_updated,
        "prices": {market: record.to_dict() for market, record in table.get_all().items()},
    }


def create_stream_router(table: CanonicalPriceTable, interval: float = 0.5) -> APIRouter:
    """Create the price router bound to one table.

    This factory pattern lets us inject the table without globals.
    """
    router = APIRouter(prefix="/api", tags=["prices"])

    @router.get("/prices")
    async def list_prices() -> dict[str, Any]:
        """Every known record plus the initialized flag and last update time."""
        return _table_payload(table)

    @router.get("/prices/{market}")
    async def get_price(market: str) -> dict[str, Any]:
        """One record by market code, matched case-insensitively."""
        record = table.lookup(market)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Unknown market: {market}")
        return record.to_dict()

    @router.get("/stream/prices")
    async def stream_prices(request: Request) -> StreamingResponse:
        """SSE endpoint for live prices.

        Sends the whole table whenever it changes:

            data: {"initialized": true, "lastUpdated": ..., "prices": {"KRW-BTC": {...}}}

        Includes a retry directive so the browser auto-reconnects on
        disconnection (EventSource built-in behavior).
        """
        return StreamingResponse(
            _generate_events(table, request, interval),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    return router


async def _generate_events(
    table: CanonicalPriceTable,
    request: Request,
    interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Yield the table as an SSE event every time its version moves.

    Stops when the client disconnects.
    """
    yield "retry: 1000\n\n"

    last_version = -1
    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s", client_ip)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break

            current_version = table.version
            if current_version != last_version:
                last_version = current_version
                yield f"data: {json.dumps(_table_payload(table))}\n\n"

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
