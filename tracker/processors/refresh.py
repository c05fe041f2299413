# tracker/processors/refresh.py   –   RefreshEngine
# ------------------------------------------------
# * periodic cycle  → markets + tickers, each independent
# * on demand       → one pair's order book, errors go to the caller
# * every write is a single put_all()/replace_all() after fetch + parse,
#   so a failure or cancellation never leaves a store half‑updated
# * stop() signals the loop, waits for it, cancels it if it overstays

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, Optional

from tracker.connectors.base import BaseConnector
from tracker.errors import DecodeError, TransportError
from tracker.metrics import CACHED_RECORDS, FETCH_ERRORS, LAST_SUCCESS_TS, REFRESH_LATENCY, REFRESH_TOTAL
from tracker.models import OrderBookSnapshot
from tracker.parsing.records import parse_market_details, parse_order_book, parse_tickers
from tracker.storage.memory import MarketStore, OrderBookStore, RecordStore, TickerStore


class EngineState(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    UPDATING = "updating"
    STOPPED = "stopped"


class RefreshEngine:
    DEFAULT_INTERVAL_S = 5.0
    DEFAULT_STOP_TIMEOUT_S = 10.0

    # ------------------------------------------------------------------ #
    # init                                                               #
    # ------------------------------------------------------------------ #
    def __init__(
        self,
        connector: BaseConnector,
        markets: MarketStore,
        tickers: TickerStore,
        books: OrderBookStore,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
        stop_timeout_s: float = DEFAULT_STOP_TIMEOUT_S,
        excluded_markets: Iterable[str] = (),
    ):
        self.connector = connector
        self.markets = markets
        self.tickers = tickers
        self.books = books
        self.interval = interval_s
        self.stop_timeout = stop_timeout_s
        self.excluded_markets = frozenset(excluded_markets)

        # kind -> epoch‑ms of last successful refresh
        self.last_success: Dict[str, int] = {}

        self.logger = logging.getLogger(self.__class__.__name__)
        self._state = EngineState.IDLE
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        cfg: Dict,
        connector: BaseConnector,
        markets: MarketStore,
        tickers: TickerStore,
        books: OrderBookStore,
    ) -> "RefreshEngine":
        rf = cfg["refresh"]
        return cls(
            connector,
            markets,
            tickers,
            books,
            interval_s=rf["interval_s"],
            stop_timeout_s=rf["stop_timeout_s"],
            excluded_markets=rf["excluded_markets"],
        )

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------ #
    # periodic data                                                      #
    # ------------------------------------------------------------------ #
    async def refresh_markets(self) -> bool:
        """
        Fetch market details and swap them in (with the pair index) as a
        whole; pairs missing from the new document are dropped.
        """
        return await self._refresh(
            "markets",
            self.connector.fetch_markets,
            parse_market_details,
            self.markets,
            replace=True,
        )

    async def refresh_tickers(self) -> bool:
        """Fetch tickers and replace them, skipping excluded markets."""
        return await self._refresh(
            "tickers",
            self.connector.fetch_tickers,
            parse_tickers,
            self.tickers,
            keep=lambda t: t.market not in self.excluded_markets,
        )

    async def refresh_market_and_ticker_once(self) -> Dict[str, bool]:
        """
        One refresh cycle.  The two fetches don't depend on each other: a
        failed market refresh still lets tickers update, and vice versa.
        """
        return {
            "markets": await self.refresh_markets(),
            "tickers": await self.refresh_tickers(),
        }

    # ------------------------------------------------------------------ #
    # on‑demand data                                                     #
    # ------------------------------------------------------------------ #
    async def refresh_order_book(self, pair: str) -> OrderBookSnapshot:
        """
        Fetch, parse and store the book for *pair*; return it.

        :raises TransportError, DecodeError: nothing is stored in that case
        """
        started = time.perf_counter()
        try:
            body = await self.connector.fetch_order_book(pair)
            book = parse_order_book(pair, body)
        except TransportError:
            FETCH_ERRORS.labels("orderbook", "transport").inc()
            REFRESH_TOTAL.labels("orderbook", "failed").inc()
            raise
        except DecodeError:
            FETCH_ERRORS.labels("orderbook", "decode").inc()
            REFRESH_TOTAL.labels("orderbook", "failed").inc()
            raise
        finally:
            REFRESH_LATENCY.labels("orderbook").observe(time.perf_counter() - started)

        self.books.put_all([book])
        REFRESH_TOTAL.labels("orderbook", "ok").inc()
        CACHED_RECORDS.labels("orderbooks").set(len(self.books))
        self.logger.debug("Order book %s: %d bids / %d asks", pair, len(book.bids), len(book.asks))
        return book

    # ------------------------------------------------------------------ #
    # life‑cycle                                                         #
    # ------------------------------------------------------------------ #
    def start_background_refresh(self, interval: Optional[float] = None) -> asyncio.Task:
        """Spawn the refresh loop on the running event loop."""
        if self._state is EngineState.STOPPED:
            raise RuntimeError("RefreshEngine was stopped and cannot be restarted")
        if self.running:
            raise RuntimeError("Background refresh is already running")

        if interval is not None:
            if interval <= 0:
                raise ValueError("interval must be positive")
            self.interval = interval
        self._task = asyncio.create_task(self._run(), name="RefreshEngine.run")
        return self._task

    async def stop_background_refresh(self):
        """
        Signal the loop, wait up to ``stop_timeout`` for the current cycle to
        finish, then cancel it.  The engine is STOPPED afterwards.
        """
        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                self.logger.warning("Refresh cycle still busy after %.1fs, cancelling", self.stop_timeout)
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._state = EngineState.STOPPED
        self.logger.info("Background refresh stopped.")

    def status(self) -> Dict:
        return {
            "state": self._state.value,
            "running": self.running,
            "interval_s": self.interval,
            "last_success": dict(self.last_success),
            "cached": {
                "markets": len(self.markets),
                "tickers": len(self.tickers),
                "orderbooks": len(self.books),
            },
        }

    # ------------------------------------------------------------------ #
    # internal                                                           #
    # ------------------------------------------------------------------ #
    async def _run(self):
        self.logger.info("Background refresh started (every %.1fs).", self.interval)
        while not self._stop_event.is_set():
            try:
                await self.refresh_market_and_ticker_once()
            except Exception as exc:  # noqa: BLE001
                self.logger.exception("Unexpected error in refresh cycle: %s", exc)

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)

    def _set_state(self, state: EngineState):
        if self._state is not EngineState.STOPPED:
            self._state = state

    async def _refresh(
        self,
        kind: str,
        fetch: Callable[[], Awaitable[str]],
        parse: Callable[[str], list],
        store: RecordStore,
        *,
        keep: Optional[Callable[[object], bool]] = None,
        replace: bool = False,
    ) -> bool:
        self._set_state(EngineState.FETCHING)
        started = time.perf_counter()
        try:
            body = await fetch()
            records = parse(body)
        except TransportError as exc:
            FETCH_ERRORS.labels(kind, "transport").inc()
            REFRESH_TOTAL.labels(kind, "failed").inc()
            self.logger.warning("Error fetching %s: %s; keeping cached data", kind, exc)
            return False
        except DecodeError as exc:
            FETCH_ERRORS.labels(kind, "decode").inc()
            REFRESH_TOTAL.labels(kind, "failed").inc()
            self.logger.warning("Error parsing %s: %s; keeping cached data", kind, exc)
            return False
        finally:
            REFRESH_LATENCY.labels(kind).observe(time.perf_counter() - started)
            self._set_state(EngineState.IDLE)

        self._set_state(EngineState.UPDATING)
        if keep is not None:
            records = [r for r in records if keep(r)]
        written = store.replace_all(records) if replace else store.put_all(records)
        self._set_state(EngineState.IDLE)

        now = time.time()
        self.last_success[kind] = int(now * 1000)
        LAST_SUCCESS_TS.labels(kind).set(now)
        REFRESH_TOTAL.labels(kind, "ok").inc()
        CACHED_RECORDS.labels(kind).set(len(store))
        self.logger.debug("Refreshed %s: %d record(s)", kind, written)
        return True
