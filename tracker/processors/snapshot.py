"""
SnapshotAssembler
=================

Read side of the tracker.  Joins the three stores into one response for a
market query:

    name ──PairIndex──▶ pair ──refresh──▶ order book
      │
      ├──MarketStore──▶ market details
      └──TickerStore──▶ ticker

Each lookup hits or misses on its own.  Market details and tickers are
refreshed independently, so a snapshot may pair a fresh ticker with older
market details; that is expected.  A name with no pair mapping raises
``UnknownMarket`` before any network call is made.  When the order‑book
fetch fails, the book last stored for the pair is used; the error only
reaches the caller if there is none.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from tracker.errors import DecodeError, PartialData, TransportError, UnknownMarket
from tracker.models import MarketDetail, OrderBookSnapshot, TickerSnapshot
from tracker.processors.refresh import RefreshEngine
from tracker.storage.memory import MarketStore, OrderBookStore, TickerStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class MarketSnapshot:
    market: str
    pair: str
    request_timestamp: int
    order_book: Optional[OrderBookSnapshot] = None
    market_detail: Optional[MarketDetail] = None
    ticker: Optional[TickerSnapshot] = None

    @property
    def missing(self) -> Tuple[str, ...]:
        parts = (
            ("order_book", self.order_book),
            ("market_details", self.market_detail),
            ("ticker_details", self.ticker),
        )
        return tuple(name for name, value in parts if value is None)

    @property
    def is_partial(self) -> bool:
        return bool(self.missing)

    def require_complete(self) -> "MarketSnapshot":
        """Return self, or raise ``PartialData`` naming the absent pieces."""
        if self.missing:
            raise PartialData(self.market, self.missing)
        return self

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "pair": self.market,
            "request_timestamp": self.request_timestamp,
        }
        if self.order_book is not None:
            out["order_book"] = self.order_book.to_dict()
        if self.market_detail is not None:
            out["market_details"] = self.market_detail.summary()
        if self.ticker is not None:
            out["ticker_details"] = self.ticker.details()
        if self.missing:
            out["missing"] = list(self.missing)
        return out


def ticker_row(ticker: TickerSnapshot, request_timestamp: int) -> Dict[str, Any]:
    """One entry of the ``/ticker`` listing."""
    return {
        "symbol": ticker.market,
        "last_traded_price": ticker.last_price,
        "volume": ticker.volume,
        "exchange_timestamp": ticker.timestamp,
        "ask": ticker.ask,
        "bid": ticker.bid,
        "high": ticker.high,
        "low": ticker.low,
        "change_24_hour": ticker.change_24_hour,
        "request_timestamp": request_timestamp,
    }


class SnapshotAssembler:
    """Builds query responses from the stores; never writes to them itself."""

    def __init__(
        self,
        engine: RefreshEngine,
        markets: MarketStore,
        tickers: TickerStore,
        books: OrderBookStore,
    ):
        self.engine = engine
        self.markets = markets
        self.tickers = tickers
        self.books = books

    async def query(self, market_name: str) -> MarketSnapshot:
        """
        Refresh the order book for *market_name* and join it with cached
        market details and ticker.  If the fetch fails, the last book stored
        for the pair is served instead.

        :raises UnknownMarket: the name has no cached pair mapping
        :raises TransportError, DecodeError: the order‑book fetch failed and
            no book was ever stored for the pair
        """
        pair = self.markets.pair_for(market_name)
        if pair is None:
            raise UnknownMarket(market_name)

        try:
            book = await self.engine.refresh_order_book(pair)
        except (TransportError, DecodeError) as exc:
            book = self.books.get(pair)
            if book is None:
                raise
            logger.warning("Order book for %s unavailable (%s); serving cached copy", pair, exc)

        snapshot = MarketSnapshot(
            market=market_name,
            pair=pair,
            request_timestamp=now_ms(),
            order_book=book,
            market_detail=self.markets.get(market_name),
            ticker=self.tickers.get(market_name),
        )
        if snapshot.is_partial:
            logger.debug("Partial snapshot for %s: missing %s", market_name, ", ".join(snapshot.missing))
        return snapshot

    def list_pairs(self) -> List[str]:
        return self.markets.pairs()

    def list_tickers(self) -> List[TickerSnapshot]:
        return self.tickers.list()
