"""
REST connector for CoinDCX public market data
---------------------------------------------
Three documents are used:

* ``{api_base_url}/exchange/v1/markets_details`` – static trading rules
* ``{api_base_url}/exchange/ticker``              – 24 h statistics
* ``{public_base_url}/market_data/orderbook?pair=…`` – one pair's book

Retry behaviour
---------------
A request that fails at the transport level (connection error, timeout,
non‑200 status) is retried ``max_retries`` times with ``retry_delay_ms``
between attempts.  After that a ``TransportError`` is raised and the caller
decides what to do (the refresh engine keeps its cache, a query fails).
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from tracker.connectors.base import BaseConnector
from tracker.errors import TransportError

__all__ = ["CoindcxConnector"]


class CoindcxConnector(BaseConnector):
    MARKETS_PATH = "/exchange/v1/markets_details"
    TICKER_PATH = "/exchange/ticker"
    ORDERBOOK_PATH = "/market_data/orderbook"

    def __init__(
        self,
        api_base_url: str = "https://api.coindcx.com",
        public_base_url: str = "https://public.coindcx.com",
        *,
        request_timeout_s: float = 10,
        max_retries: int = 3,
        retry_delay_ms: int = 1000,
    ):
        """Create a connector; the HTTP session is opened lazily on first use.

        Parameters
        ----------
        request_timeout_s : float
            Total timeout per attempt.
        max_retries : int
            Extra attempts after the first failure.  ``0`` ⇒ no retry.
        retry_delay_ms : int
            Pause between attempts.
        """
        self.api_base_url = api_base_url.rstrip("/")
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=request_timeout_s)
        self.max_retries = max_retries
        self.retry_delay = retry_delay_ms / 1000.0

        self.logger = logging.getLogger(self.__class__.__name__)
        self._session: Optional[aiohttp.ClientSession] = None

    # --------------------------------------------------------------------- #
    # public API                                                            #
    # --------------------------------------------------------------------- #
    async def fetch_markets(self) -> str:
        return await self._get(f"{self.api_base_url}{self.MARKETS_PATH}")

    async def fetch_tickers(self) -> str:
        return await self._get(f"{self.api_base_url}{self.TICKER_PATH}")

    async def fetch_order_book(self, pair: str) -> str:
        return await self._get(f"{self.public_base_url}{self.ORDERBOOK_PATH}", params={"pair": pair})

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    # --------------------------------------------------------------------- #
    # internal                                                              #
    # --------------------------------------------------------------------- #
    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def _get(self, url: str, params: Optional[Dict[str, str]] = None) -> str:
        attempts = 1 + self.max_retries
        reason = "no attempt made"
        for attempt in range(1, attempts + 1):
            try:
                async with self._get_session().get(url, params=params) as resp:
                    if resp.status == 200:
                        return await resp.text()
                    reason = f"HTTP {resp.status}"
            except asyncio.TimeoutError:
                reason = "timed out"
            except aiohttp.ClientError as exc:
                reason = f"{exc.__class__.__name__}: {exc}"

            if attempt < attempts:
                self.logger.warning(
                    "GET %s failed (%s): attempt %d/%d, retrying in %.1fs",
                    url,
                    reason,
                    attempt,
                    attempts,
                    self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)

        raise TransportError(url, f"{reason} after {attempts} attempt(s)")


CONNECTOR_CLASS = CoindcxConnector
