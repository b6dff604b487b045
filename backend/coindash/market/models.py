"""Data models for market data."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any

# Wire keys that map onto typed PriceRecord fields. Everything else is kept in `extra`.
_OPTIONAL_NUMBERS: dict[str, str] = {
    "changePrice": "change_price",
    "changeRate": "change_rate",
    "signedChangeRate": "signed_change_rate",
    "accTradePrice24h": "acc_trade_price_24h",
}
_KNOWN_KEYS = {"market", "tradePrice", "timestamp", *_OPTIONAL_NUMBERS}


class MalformedMessageError(ValueError):
    """A price payload that does not decode into valid price records."""


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:  # Integers too large for a float
        return False


@dataclass(frozen=True, slots=True)
class PriceRecord:
    """Immutable latest-known price for one market, as reported by the exchange."""

    market: str
    trade_price: float
    timestamp: int | None = None  # Exchange-side event time, Unix milliseconds
    change_price: float | None = None
    change_rate: float | None = None
    signed_change_rate: float | None = None
    acc_trade_price_24h: float | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Any) -> PriceRecord:
        """Validate one decoded ticker object.

        Raises MalformedMessageError if the market code is missing or empty,
        the trade price is not a number, or an optional numeric field holds
        something other than a number or null.
        """
        if not isinstance(data, dict):
            raise MalformedMessageError(f"price record must be an object, got {type(data).__name__}")

        market = data.get("market")
        if not isinstance(market, str) or not market.strip():
            raise MalformedMessageError(f"price record has no market code: {data!r}")

        trade_price = data.get("tradePrice")
        if not _is_number(trade_price):
            raise MalformedMessageError(f"{market}: tradePrice is not a number: {trade_price!r}")

        timestamp = data.get("timestamp")
        if timestamp is not None and not _is_number(timestamp):
            raise MalformedMessageError(f"{market}: timestamp is not a number: {timestamp!r}")

        optional: dict[str, float | None] = {}
        for wire_key, attr in _OPTIONAL_NUMBERS.items():
            value = data.get(wire_key)
            if value is not None and not _is_number(value):
                raise MalformedMessageError(f"{market}: {wire_key} is not a number: {value!r}")
            optional[attr] = float(value) if value is not None else None

        return cls(
            market=market,
            trade_price=float(trade_price),
            timestamp=int(timestamp) if timestamp is not None else None,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
            **optional,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the wire shape for JSON / SSE transmission."""
        result: dict[str, Any] = dict(self.extra)
        result["market"] = self.market
        result["tradePrice"] = self.trade_price
        result["timestamp"] = self.timestamp
        for wire_key, attr in _OPTIONAL_NUMBERS.items():
            result[wire_key] = getattr(self, attr)
        return result


def _reject_constant(name: str) -> Any:
    raise MalformedMessageError(f"non-standard JSON constant: {name}")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise MalformedMessageError(f"number out of range: {text}")
    return value


def parse_price_records(payload: str | bytes | list[Any]) -> list[PriceRecord]:
    """Decode a JSON array of ticker objects into PriceRecords.

    The whole payload is rejected if any element is invalid, so callers never
    see a partially applied message.
    """
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload, parse_constant=_reject_constant, parse_float=_finite_float)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedMessageError(f"payload is not valid JSON: {e}") from e

    if not isinstance(payload, list):
        raise MalformedMessageError(f"expected a JSON array of records, got {type(payload).__name__}")

    return [PriceRecord.from_dict(item) for item in payload]
