"""
Typed records held by the stores.

All records are frozen; a refresh replaces a record as a whole, so a reader
holding one never sees it change underneath.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


def _frozen_map(values: Optional[Mapping[str, str]] = None) -> Mapping[str, str]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class MarketDetail:
    coindcx_name: str
    base_currency_short_name: str
    target_currency_short_name: str
    base_currency_name: str
    target_currency_name: str
    min_quantity: float
    max_quantity: float
    min_price: float
    max_price: float
    min_notional: float
    base_currency_precision: int
    target_currency_precision: int
    step: float
    order_types: Tuple[str, ...]
    symbol: str
    ecode: str
    pair: str
    status: str
    max_leverage: Optional[str] = None

    def summary(self) -> Dict[str, object]:
        """Trading bounds as exposed by ``/livedata``."""
        return {
            "base_currency": self.base_currency_short_name,
            "target_currency": self.target_currency_short_name,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "min_notional": self.min_notional,
            "step": self.step,
            "order_types": list(self.order_types),
            "status": self.status,
        }


@dataclass(frozen=True)
class TickerSnapshot:
    market: str
    change_24_hour: str = "0"
    high: str = ""
    low: str = ""
    volume: str = ""
    last_price: str = ""
    bid: str = ""
    ask: str = ""
    timestamp: int = 0

    def details(self) -> Dict[str, object]:
        return {
            "change_24_hour": self.change_24_hour,
            "last_price": self.last_price,
            "bid": self.bid,
            "ask": self.ask,
            "high": self.high,
            "low": self.low,
            "volume": self.volume,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class OrderBookSnapshot:
    """
    Latest book for one pair.  ``bids`` / ``asks`` map price‑level text to
    quantity text and carry no ordering; sort the keys if you need a ladder.
    """

    pair: str
    bids: Mapping[str, str] = field(default_factory=_frozen_map)
    asks: Mapping[str, str] = field(default_factory=_frozen_map)
    fetched_at: int = 0

    def __post_init__(self):
        # wrap plain dicts so the stored book can't be edited in place
        object.__setattr__(self, "bids", _frozen_map(self.bids))
        object.__setattr__(self, "asks", _frozen_map(self.asks))

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {"bids": dict(self.bids), "asks": dict(self.asks)}
