import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from tracker.connectors.coindcx import CoindcxConnector
from tracker.errors import TransportError


class FakeExchange:
    """Tiny CoinDCX stand‑in; the first ``failures`` requests get a 503."""

    def __init__(self, failures=0, delay=0.0):
        self.failures = failures
        self.delay = delay
        self.hits = []

    def app(self):
        app = web.Application()
        app.router.add_get(CoindcxConnector.MARKETS_PATH, self._markets)
        app.router.add_get(CoindcxConnector.TICKER_PATH, self._ticker)
        app.router.add_get(CoindcxConnector.ORDERBOOK_PATH, self._orderbook)
        return app

    async def _serve(self, request, body):
        self.hits.append(request.path_qs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if len(self.hits) <= self.failures:
            return web.Response(status=503, text="busy")
        return web.Response(text=body, content_type="application/json")

    async def _markets(self, request):
        return await self._serve(request, '[{"coindcx_name": "BTCINR"}]')

    async def _ticker(self, request):
        return await self._serve(request, '[{"market": "BTCINR"}]')

    async def _orderbook(self, request):
        return await self._serve(request, '{"pair": "%s"}' % request.query.get("pair", ""))


async def _start(exchange):
    server = TestServer(exchange.app())
    await server.start_server()
    return server


def _connector(server, **kwargs):
    base = str(server.make_url("")).rstrip("/")
    kwargs.setdefault("retry_delay_ms", 1)
    return CoindcxConnector(base, base, **kwargs)


@pytest.mark.asyncio
async def test_fetches_return_raw_bodies():
    exchange = FakeExchange()
    server = await _start(exchange)
    conn = _connector(server)
    try:
        assert await conn.fetch_markets() == '[{"coindcx_name": "BTCINR"}]'
        assert await conn.fetch_tickers() == '[{"market": "BTCINR"}]'
        assert await conn.fetch_order_book("I-BTC_INR") == '{"pair": "I-BTC_INR"}'
    finally:
        await conn.close()
        await server.close()

    assert exchange.hits[-1] == "/market_data/orderbook?pair=I-BTC_INR"


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    exchange = FakeExchange(failures=2)
    server = await _start(exchange)
    conn = _connector(server, max_retries=3)
    try:
        assert await conn.fetch_tickers() == '[{"market": "BTCINR"}]'
    finally:
        await conn.close()
        await server.close()

    assert len(exchange.hits) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    exchange = FakeExchange(failures=10)
    server = await _start(exchange)
    conn = _connector(server, max_retries=2)
    try:
        with pytest.raises(TransportError) as info:
            await conn.fetch_markets()
    finally:
        await conn.close()
        await server.close()

    assert len(exchange.hits) == 3
    assert "HTTP 503" in info.value.reason
    assert info.value.url.endswith(CoindcxConnector.MARKETS_PATH)


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt():
    exchange = FakeExchange(failures=1)
    server = await _start(exchange)
    conn = _connector(server, max_retries=0)
    try:
        with pytest.raises(TransportError):
            await conn.fetch_markets()
    finally:
        await conn.close()
        await server.close()

    assert len(exchange.hits) == 1


@pytest.mark.asyncio
async def test_timeout_is_a_transport_error():
    exchange = FakeExchange(delay=0.5)
    server = await _start(exchange)
    conn = _connector(server, request_timeout_s=0.05, max_retries=1)
    try:
        with pytest.raises(TransportError, match="timed out"):
            await conn.fetch_order_book("I-BTC_INR")
    finally:
        await conn.close()
        await server.close()


@pytest.mark.asyncio
async def test_unreachable_host_is_a_transport_error():
    conn = CoindcxConnector("http://127.0.0.1:1", "http://127.0.0.1:1", max_retries=1, retry_delay_ms=1)
    try:
        with pytest.raises(TransportError, match="2 attempt"):
            await conn.fetch_tickers()
    finally:
        await conn.close()


def test_from_config_ignores_exchange_name():
    conn = CoindcxConnector.from_config(
        {
            "name": "coindcx",
            "api_base_url": "http://a/",
            "public_base_url": "http://b",
            "request_timeout_s": 3,
            "max_retries": 1,
            "retry_delay_ms": 250,
        }
    )
    assert conn.api_base_url == "http://a"
    assert conn.public_base_url == "http://b"
    assert conn.max_retries == 1
    assert conn.retry_delay == 0.25
    assert conn.timeout.total == 3
