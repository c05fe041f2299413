"""
aiohttp front‑end for the tracker.

Routes
------
GET|POST /livedata?symbol=<market>   snapshot for one market
GET      /pairs                      {"pairs": [...]}
GET      /ticker                     every cached ticker
GET      /health                     refresh engine status
GET      /metrics                    Prometheus exposition

Every response carries permissive CORS headers; errors are JSON bodies of
the form ``{"error": "...", "request_timestamp": <epoch‑ms>}``.
"""

from __future__ import annotations

import logging

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tracker.errors import DecodeError, TransportError, UnknownMarket
from tracker.processors.refresh import RefreshEngine
from tracker.processors.snapshot import SnapshotAssembler, now_ms, ticker_row

logger = logging.getLogger(__name__)

__all__ = ["create_app"]

ASSEMBLER = web.AppKey("assembler", SnapshotAssembler)
ENGINE = web.AppKey("engine", RefreshEngine)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def error_response(status: int, message: str) -> web.Response:
    return web.json_response(
        {"error": message, "request_timestamp": now_ms()},
        status=status,
    )


# --------------------------------------------------------------------------- #
# middlewares                                                                 #
# --------------------------------------------------------------------------- #
@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        response = web.Response(status=200)
    else:
        response = await handler(request)
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Server error on %s %s: %s", request.method, request.path, exc)
        return error_response(500, str(exc))


# --------------------------------------------------------------------------- #
# handlers                                                                    #
# --------------------------------------------------------------------------- #
async def handle_live_data(request: web.Request) -> web.Response:
    symbol = request.query.get("symbol", "")
    if not symbol and request.method == "POST":
        form = await request.post()
        symbol = str(form.get("symbol", ""))
    symbol = symbol.strip()
    if not symbol:
        return error_response(400, "Missing 'symbol' parameter")

    try:
        snapshot = await request.app[ASSEMBLER].query(symbol)
    except UnknownMarket as exc:
        return error_response(404, str(exc))
    except (TransportError, DecodeError) as exc:
        logger.warning("Order book for %s unavailable: %s", symbol, exc)
        return error_response(502, str(exc))

    return web.json_response(snapshot.to_dict())


async def handle_pairs(request: web.Request) -> web.Response:
    return web.json_response({"pairs": request.app[ASSEMBLER].list_pairs()})


async def handle_ticker(request: web.Request) -> web.Response:
    ts = now_ms()
    rows = [ticker_row(t, ts) for t in request.app[ASSEMBLER].list_tickers()]
    return web.json_response(rows)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response(request.app[ENGINE].status())


async def handle_metrics(request: web.Request) -> web.Response:
    return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})


def create_app(engine: RefreshEngine, assembler: SnapshotAssembler) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[ENGINE] = engine
    app[ASSEMBLER] = assembler
    app.router.add_get("/livedata", handle_live_data)
    app.router.add_post("/livedata", handle_live_data)
    app.router.add_get("/pairs", handle_pairs)
    app.router.add_get("/ticker", handle_ticker)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/metrics", handle_metrics)
    return app
