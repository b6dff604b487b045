"""Bulk snapshot pull of current ticker prices."""

from __future__ import annotations

import asyncio
import logging

from ..auth.requester import AuthenticatedRequester
from .models import MalformedMessageError, PriceRecord, parse_price_records

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGES: tuple[str, ...] = ("UPBIT", "COINONE")
DEFAULT_PATH_TEMPLATE = "/api/coin-prices/ticker/exchange/{exchange}"


class SnapshotClient:
    """Fetches the full current price set, one request per upstream exchange.

    Exchanges are fetched concurrently and concatenated in the configured
    order, so when two exchanges report the same market code the later one
    wins once the result is seeded. Any failing exchange fails the pull.
    """

    def __init__(
        self,
        requester: AuthenticatedRequester,
        exchanges: tuple[str, ...] | list[str] = DEFAULT_EXCHANGES,
        path_template: str = DEFAULT_PATH_TEMPLATE,
    ) -> None:
        self._requester = requester
        self._exchanges = tuple(exchanges)
        self._path_template = path_template

    @property
    def exchanges(self) -> tuple[str, ...]:
        return self._exchanges

    async def fetch(self) -> list[PriceRecord]:
        """Return every current record across all exchanges.

        Raises httpx.HTTPStatusError on a non-2xx response,
        AuthenticationError if the session could not be recovered, and
        MalformedMessageError if a body is not a valid record array.
        """
        batches = await asyncio.gather(*(self._fetch_exchange(ex) for ex in self._exchanges))
        records = [record for batch in batches for record in batch]
        logger.info(
            "Snapshot fetched: %d records from %s",
            len(records),
            ", ".join(self._exchanges),
        )
        return records

    async def _fetch_exchange(self, exchange: str) -> list[PriceRecord]:
        response = await self._requester.get(self._path_template.format(exchange=exchange))
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedMessageError(f"{exchange} snapshot is not JSON") from e

        # The backend envelope is {"data": [...]}; a missing data key means no records.
        data = (body.get("data") or []) if isinstance(body, dict) else body
        records = parse_price_records(data)
        logger.debug("Snapshot %s: %d records", exchange, len(records))
        return records
