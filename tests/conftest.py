import asyncio
import json

import pytest

from tracker.connectors.base import BaseConnector
from tracker.errors import TransportError
from tracker.processors.refresh import RefreshEngine
from tracker.processors.snapshot import SnapshotAssembler
from tracker.storage.memory import MarketStore, OrderBookStore, TickerStore


def market_item(name, pair, /, **overrides):
    item = {
        "coindcx_name": name,
        "base_currency_short_name": "INR",
        "target_currency_short_name": name[:-3],
        "target_currency_name": name[:-3].title(),
        "base_currency_name": "Indian Rupee",
        "min_quantity": 0.0001,
        "max_quantity": 100,
        "min_price": 1000.0,
        "max_price": 10000000,
        "min_notional": 100,
        "base_currency_precision": 2,
        "target_currency_precision": 5,
        "step": 0.00001,
        "order_types": ["market_order", "limit_order"],
        "symbol": name,
        "ecode": "I",
        "max_leverage": None,
        "pair": pair,
        "status": "active",
    }
    item.update(overrides)
    return item


MARKETS = [
    market_item("BTCINR", "I-BTC_INR"),
    market_item("ETHINR", "I-ETH_INR"),
    market_item("XRPINR", "I-XRP_INR"),
]
MARKETS_BODY = json.dumps(MARKETS)

TICKERS_BODY = """[
  {"market": "BTCINR", "change_24_hour": "-1.2", "high": "5100000", "low": "4900000",
   "volume": "12.5", "last_price": "5012345.5", "bid": 5012000, "ask": "5012500.25",
   "timestamp": 1700000000},
  {"market": "ETHINR", "change_24_hour": 2.5, "high": 260000.5, "low": "250000",
   "volume": 140, "last_price": 255000.75, "bid": "254900", "ask": 255100,
   "timestamp": 1700000001},
  {"market": "BTCINR_insta", "last_price": "5000000", "timestamp": 1700000002},
  {"change_24_hour": "0.1", "last_price": "1"}
]"""

ORDERBOOK_BODY = json.dumps(
    {
        "bids": {"5012000.00": "0.5", "5011000.00": "1.25"},
        "asks": {"5012500.25": "0.1", "5013000.00": "2"},
    }
)


class DummyConnector(BaseConnector):
    """Serves canned bodies; kinds listed in ``fail`` raise TransportError."""

    def __init__(self, markets=MARKETS_BODY, tickers=TICKERS_BODY, books=None):
        self.markets_body = markets
        self.tickers_body = tickers
        self.books = books or {}
        self.fail = set()
        self.calls = []
        self.closed = False

    def _maybe_fail(self, kind):
        self.calls.append(kind)
        if kind in self.fail:
            raise TransportError(f"dummy://{kind}", "connection refused")

    async def fetch_markets(self):
        self._maybe_fail("markets")
        return self.markets_body

    async def fetch_tickers(self):
        self._maybe_fail("tickers")
        return self.tickers_body

    async def fetch_order_book(self, pair):
        self._maybe_fail("orderbook")
        return self.books.get(pair, ORDERBOOK_BODY)

    async def close(self):
        self.closed = True


class HangingConnector(DummyConnector):
    """fetch_markets blocks until ``release`` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_markets(self):
        self.calls.append("markets")
        self.entered.set()
        await self.release.wait()
        return self.markets_body


@pytest.fixture
def connector():
    return DummyConnector()


@pytest.fixture
def stores():
    return MarketStore(), TickerStore(), OrderBookStore()


@pytest.fixture
def engine(connector, stores):
    markets, tickers, books = stores
    return RefreshEngine(
        connector,
        markets,
        tickers,
        books,
        interval_s=0.01,
        stop_timeout_s=0.5,
        excluded_markets=["BTCINR_insta"],
    )


@pytest.fixture
def assembler(engine, stores):
    markets, tickers, books = stores
    return SnapshotAssembler(engine, markets, tickers, books)
