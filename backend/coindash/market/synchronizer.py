"""Reconciles the snapshot pull and the delta stream into one price table."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..auth.errors import AuthenticationError
from ..transport.connection import StreamConnection
from ..transport.frames import Frame
from .models import MalformedMessageError, parse_price_records
from .snapshot import SnapshotClient
from .table import CanonicalPriceTable

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "/topic/coins/all"


class MarketDataSynchronizer:
    """Sole writer of a CanonicalPriceTable.

    Per session:
      - on ready: subscribe the broadcast topic, then issue the snapshot pull
        unless this session already issued one. The "bootstrap done" flag is
        set when the pull is issued, not when it completes, so a repeated
        ready signal cannot start a second concurrent pull.
      - on pull success: seed the table. On failure: re-arm the flag, but
        only if the session that issued the pull is still the current one.
      - on every delta message: apply each record, last write wins.
      - on session loss: re-arm the flag for the next session. The table is
        kept; stale prices beat an empty table while reconnecting.

    Pulls are never cancelled by session loss. A late result from an old
    session still seeds the table, which is harmless because seeding merges.
    """

    def __init__(
        self,
        connection: StreamConnection,
        snapshot: SnapshotClient,
        table: CanonicalPriceTable,
        topic: str = DEFAULT_TOPIC,
    ) -> None:
        self._connection = connection
        self._snapshot = snapshot
        self._table = table
        self._topic = topic

        self._bootstrap_done = False
        self._session = 0  # Incremented on every session loss
        self._bootstrap_task: asyncio.Task | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._last_error: BaseException | None = None
        self._pulls_issued = 0
        self._messages_dropped = 0

    def start(self) -> None:
        """Open the stream. Bootstrap and deltas follow from its callbacks."""
        self._connection.connect(self._on_ready, self._on_error, self._on_closed)
        logger.info("Market data sync started on %s", self._topic)

    async def stop(self) -> None:
        """Unsubscribe, disconnect and abandon any pending pull. Safe to call multiple times."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        await self._connection.disconnect()
        task, self._bootstrap_task = self._bootstrap_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Market data sync stopped")

    @property
    def table(self) -> CanonicalPriceTable:
        return self._table

    @property
    def bootstrap_done(self) -> bool:
        return self._bootstrap_done

    @property
    def pulls_issued(self) -> int:
        return self._pulls_issued

    @property
    def messages_dropped(self) -> int:
        return self._messages_dropped

    @property
    def last_error(self) -> BaseException | None:
        """Most recent terminal failure (stream exhausted or session invalid), if any."""
        return self._last_error

    # --- Stream callbacks ---

    def _on_ready(self) -> None:
        self._last_error = None
        self._unsubscribe = self._connection.subscribe(self._topic, self._on_delta)

        if self._bootstrap_done:
            logger.debug("Snapshot already requested for this session")
            return
        self._bootstrap_done = True
        self._pulls_issued += 1
        self._bootstrap_task = asyncio.create_task(
            self._bootstrap(self._session),
            name="market-bootstrap",
        )

    def _on_delta(self, frame: Frame) -> None:
        try:
            records = parse_price_records(frame.body)
        except MalformedMessageError as e:
            self._messages_dropped += 1
            logger.warning("Dropping malformed price message on %s: %s", frame.destination, e)
            return

        for record in records:
            self._table.apply(record)
        logger.debug("Applied %d price deltas", len(records))

    def _on_closed(self) -> None:
        self._session += 1
        self._bootstrap_done = False
        self._unsubscribe = None
        logger.info("Market data session closed; snapshot re-armed for next session")

    def _on_error(self, error: BaseException) -> None:
        self._last_error = error
        logger.error("Market data stream stopped: %s", error)

    # --- Internal ---

    async def _bootstrap(self, session: int) -> None:
        try:
            records = await self._snapshot.fetch()
        except Exception as e:  # noqa: BLE001 - any pull failure re-arms the bootstrap
            if isinstance(e, AuthenticationError):
                self._last_error = e
            logger.error("Snapshot pull failed: %s", e)
            if session == self._session:
                self._bootstrap_done = False
            return

        count = self._table.seed(records)
        logger.info("Price table seeded with %d records (%d total)", count, len(self._table))
