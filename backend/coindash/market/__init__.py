"""Market data subsystem for CoinDash.

Public API:
    PriceRecord             - Immutable per-market ticker record
    parse_price_records     - Validating JSON boundary for snapshot and delta payloads
    CanonicalPriceTable     - Thread-safe merged price table
    SnapshotClient          - Multi-exchange bulk price pull
    MarketDataSynchronizer  - Snapshot + delta reconciliation, sole table writer
    create_market_sync      - Factory wiring auth, transport and sync together
    create_stream_router    - FastAPI router factory for price lookup and SSE
"""

from .factory import MarketSync, create_market_sync
from .models import MalformedMessageError, PriceRecord, parse_price_records
from .snapshot import SnapshotClient
from .stream import create_stream_router
from .synchronizer import MarketDataSynchronizer
from .table import CanonicalPriceTable

__all__ = [
    "PriceRecord",
    "MalformedMessageError",
    "parse_price_records",
    "CanonicalPriceTable",
    "SnapshotClient",
    "MarketDataSynchronizer",
    "MarketSync",
    "create_market_sync",
    "create_stream_router",
]
