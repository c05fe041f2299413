"""
Record parser
=============

Turns raw CoinDCX response bodies into typed records.

Market details  (``/exchange/v1/markets_details``)
    One array for every pair.  Parsing is *strict*: any missing field or
    type mismatch rejects the whole batch, because a partial list of pairs
    would silently shrink the pair index.

Tickers  (``/exchange/ticker``)
    Parsing is *tolerant*.  The exchange mixes JSON numbers and strings for
    the same field (``"bid": 5012.3`` one day, ``"bid": "5012.3"`` the next),
    so each numeric field is reduced to canonical decimal text.  Items
    without a market name are dropped.

Order books  (``/market_data/orderbook?pair=…``)
    ``{"bids": {price: qty, …}, "asks": {price: qty, …}}``.  A missing side
    is an empty side.  Anything else malformed raises ``DecodeError``.

Bodies are decoded with ``parse_float=Decimal`` so a number never passes
through a binary float on its way to the stored text.
"""

from __future__ import annotations

import json
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tracker.errors import DecodeError
from tracker.models import MarketDetail, OrderBookSnapshot, TickerSnapshot

logger = logging.getLogger(__name__)

__all__ = [
    "decode",
    "decimal_text",
    "parse_market_details",
    "parse_tickers",
    "parse_order_book",
]

_MARKET_TEXT_FIELDS = (
    "coindcx_name",
    "base_currency_short_name",
    "target_currency_short_name",
    "base_currency_name",
    "target_currency_name",
    "symbol",
    "ecode",
    "pair",
    "status",
)
_MARKET_NUMBER_FIELDS = (
    "min_quantity",
    "max_quantity",
    "min_price",
    "max_price",
    "min_notional",
    "step",
)
_MARKET_INT_FIELDS = ("base_currency_precision", "target_currency_precision")

_TICKER_TEXT_FIELDS = ("change_24_hour", "high", "low", "volume", "last_price", "bid", "ask")

MAX_EXPONENT = 30


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def decode(kind: str, body: str | bytes) -> Any:
    """JSON‑decode *body*; raise ``DecodeError`` tagged with *kind*."""
    try:
        return json.loads(body, parse_float=Decimal)
    except (TypeError, ValueError) as exc:  # JSONDecodeError is a ValueError
        raise DecodeError(kind, str(exc)) from exc


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        # 1e999999 would expand to a million digits in plain notation
        return value.is_finite() and abs(value.adjusted()) <= MAX_EXPONENT
    return isinstance(value, int)


def decimal_text(value: Any) -> Optional[str]:
    """
    Canonical decimal text for a JSON number or string.

    ``1234.5`` → ``"1234.5"``, ``"1234.5"`` → ``"1234.5"``, ``1e3`` → ``"1000"``.
    Returns None for anything that is neither, and for numbers whose
    exponent lies outside ``±MAX_EXPONENT``.
    """
    if _is_number(value):
        return format(Decimal(value), "f")
    if isinstance(value, str):
        return value.strip()
    return None


def _market_from_item(index: int, item: Any) -> MarketDetail:
    if not isinstance(item, dict):
        raise DecodeError("markets", f"item {index} is not an object")

    def require(name: str, check, expected: str):
        if name not in item:
            raise DecodeError("markets", f"item {index} lacks {name!r}")
        value = item[name]
        if not check(value):
            raise DecodeError("markets", f"item {index}: {name!r} is not {expected}")
        return value

    fields: Dict[str, Any] = {}
    for name in _MARKET_TEXT_FIELDS:
        fields[name] = require(name, lambda v: isinstance(v, str), "a string")
    for name in _MARKET_NUMBER_FIELDS:
        fields[name] = float(require(name, _is_number, "a number"))
    for name in _MARKET_INT_FIELDS:
        fields[name] = require(
            name, lambda v: isinstance(v, int) and not isinstance(v, bool), "an integer"
        )

    order_types = require(
        "order_types",
        lambda v: isinstance(v, list) and all(isinstance(t, str) for t in v),
        "a list of strings",
    )
    fields["order_types"] = tuple(order_types)
    fields["max_leverage"] = decimal_text(item.get("max_leverage"))
    return MarketDetail(**fields)


# --------------------------------------------------------------------------- #
# public API                                                                  #
# --------------------------------------------------------------------------- #
def parse_market_details(body: str | bytes) -> List[MarketDetail]:
    """
    Parse the markets‑details array.

    :raises DecodeError: if the body is not JSON, not an array, or any item
        is missing a field / has the wrong type.
    """
    doc = decode("markets", body)
    if not isinstance(doc, list):
        raise DecodeError("markets", "top level is not an array")
    return [_market_from_item(i, item) for i, item in enumerate(doc)]


def parse_tickers(body: str | bytes) -> List[TickerSnapshot]:
    doc = decode("tickers", body)
    if not isinstance(doc, list):
        raise DecodeError("tickers", "top level is not an array")

    tickers: List[TickerSnapshot] = []
    dropped = 0
    for item in doc:
        if not isinstance(item, dict):
            dropped += 1
            continue
        market = item.get("market")
        if not isinstance(market, str) or not market:
            dropped += 1
            continue

        fields: Dict[str, Any] = {"market": market}
        for name in _TICKER_TEXT_FIELDS:
            text = decimal_text(item.get(name))
            if text is not None:
                fields[name] = text

        ts = item.get("timestamp")
        if _is_number(ts):
            fields["timestamp"] = int(ts)

        tickers.append(TickerSnapshot(**fields))

    if dropped:
        logger.debug("Dropped %d ticker item(s) without a market name", dropped)
    return tickers


def _book_side(side: str, levels: Any) -> Dict[str, str]:
    if not isinstance(levels, dict):
        return {}
    out: Dict[str, str] = {}
    for price, qty in levels.items():
        text = decimal_text(qty)
        if text is None:
            raise DecodeError("orderbook", f"{side} level {price!r} has quantity {qty!r}")
        out[price] = text
    return out


def parse_order_book(pair: str, body: str | bytes) -> OrderBookSnapshot:
    """
    Parse one pair's order book.

    :raises DecodeError: if the body is not a JSON object or a level
        quantity is neither a number nor a string.
    """
    doc = decode("orderbook", body)
    if not isinstance(doc, dict):
        raise DecodeError("orderbook", "top level is not an object")
    return OrderBookSnapshot(
        pair=pair,
        bids=_book_side("bids", doc.get("bids")),
        asks=_book_side("asks", doc.get("asks")),
        fetched_at=int(time.time() * 1000),
    )
