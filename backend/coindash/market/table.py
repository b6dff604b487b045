"""Canonical in-memory price table merged from snapshot and delta streams."""

from __future__ import annotations

import time
from collections.abc import Iterable
from threading import Lock

from .models import PriceRecord


class CanonicalPriceTable:
    """Thread-safe mirror of the latest known record for each market.

    Writer: MarketDataSynchronizer (exactly one).
    Readers: the consumer router, SSE stream, anything holding a reference.
    """

    def __init__(self) -> None:
        self._records: dict[str, PriceRecord] = {}
        self._lock = Lock()
        self._initialized = False
        self._last_updated: float | None = None
        self._version: int = 0  # Monotonically increasing; bumped on every mutation

    def seed(self, records: Iterable[PriceRecord]) -> int:
        """Merge a snapshot into the table and mark it initialized.

        Overwrites every market present in `records` and leaves the others
        untouched, so seeding twice with the same records leaves the same
        records. `version` and `last_updated` still move on every seed, so SSE
        clients receive the table again. Returns the number of records written.
        """
        with self._lock:
            count = 0
            for record in records:
                self._records[record.market] = record
                count += 1
            self._initialized = True
            self._last_updated = time.time()
            self._version += 1
            return count

    def apply(self, record: PriceRecord) -> None:
        """Replace the stored record for this market (last write wins)."""
        with self._lock:
            self._records[record.market] = record
            self._last_updated = time.time()
            self._version += 1

    def clear(self) -> None:
        """Drop every record and reset the initialized flag."""
        with self._lock:
            self._records.clear()
            self._initialized = False
            self._last_updated = None
            self._version += 1

    def get(self, market: str) -> PriceRecord | None:
        """Exact-key lookup, or None if unknown."""
        with self._lock:
            return self._records.get(market)

    def lookup(self, market: str) -> PriceRecord | None:
        """Case-insensitive lookup.

        Some exchanges report lower-case market codes, so after the exact key
        this tries the lower- and upper-case forms and finally a full scan.
        """
        if not market:
            return None
        with self._lock:
            for candidate in (market, market.lower(), market.upper()):
                record = self._records.get(candidate)
                if record is not None:
                    return record
            folded = market.lower()
            for key, record in self._records.items():
                if key.lower() == folded:
                    return record
            return None

    def get_price(self, market: str) -> float | None:
        """Convenience: just the trade price, or None."""
        record = self.lookup(market)
        return record.trade_price if record else None

    def get_all(self) -> dict[str, PriceRecord]:
        """Snapshot of all current records. Returns a shallow copy."""
        with self._lock:
            return dict(self._records)

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def last_updated(self) -> float | None:
        """Unix seconds of the last mutation, or None if never written."""
        return self._last_updated

    @property
    def version(self) -> int:
        """Current version counter. Useful for SSE change detection."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, market: str) -> bool:
        with self._lock:
            return market in self._records
