"""
Market‑data tracker entry point.

* ``asyncio.run()`` drives everything: refresh loop, HTTP server, shutdown
* the config dict is built once here and passed down explicitly
* the connector class is imported by exchange name (``coindcx`` →
  ``tracker.connectors.coindcx``)
* graceful shutdown stops the refresh loop, then the server, then the
  connector's HTTP session
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import importlib
import logging
import signal
from typing import Type

from aiohttp import web

from tracker.api.server import create_app
from tracker.config import LOG_LEVELS, load_config
from tracker.connectors.base import BaseConnector
from tracker.processors.refresh import RefreshEngine
from tracker.processors.snapshot import SnapshotAssembler
from tracker.storage.memory import MarketStore, OrderBookStore, TickerStore

logger = logging.getLogger("tracker.main")


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def snake_to_camel(name: str) -> str:
    """coindcx → Coindcx, coin_dcx → CoinDcx, etc."""
    return "".join(part.capitalize() for part in name.split("_"))


def import_connector(exchange_name: str) -> Type[BaseConnector]:
    """
    Dynamically import a connector module and return its connector class.

    1. If the module exposes `CONNECTOR_CLASS`, use that.
    2. Otherwise fall back to `<CamelCase>Connector`.
    """
    module_path = f"tracker.connectors.{exchange_name}"
    mod = importlib.import_module(module_path)

    if hasattr(mod, "CONNECTOR_CLASS"):
        return getattr(mod, "CONNECTOR_CLASS")

    class_name = f"{snake_to_camel(exchange_name)}Connector"
    if hasattr(mod, class_name):
        return getattr(mod, class_name)

    raise ImportError(f"{module_path} is missing a connector class")


def create_connector(cfg: dict) -> BaseConnector:
    ex_cfg = cfg["exchange"]
    ConnectorCls = import_connector(ex_cfg["name"])
    return ConnectorCls.from_config(ex_cfg)


# --------------------------------------------------------------------------- #
# service runner                                                              #
# --------------------------------------------------------------------------- #
async def run_service(cfg: dict):
    connector = create_connector(cfg)
    markets, tickers, books = MarketStore(), TickerStore(), OrderBookStore()
    engine = RefreshEngine.from_config(cfg, connector, markets, tickers, books)
    assembler = SnapshotAssembler(engine, markets, tickers, books)

    # warm the cache before accepting traffic
    result = await engine.refresh_market_and_ticker_once()
    logger.info(
        "Initial refresh: markets=%s tickers=%s (%d pairs, %d tickers)",
        "ok" if result["markets"] else "FAILED",
        "ok" if result["tickers"] else "FAILED",
        len(markets),
        len(tickers),
    )
    engine.start_background_refresh()

    runner = web.AppRunner(create_app(engine, assembler))
    await runner.setup()
    host, port = cfg["server"]["host"], cfg["server"]["port"]
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Server listening on %s:%d", host, port)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown():
        logger.info("Shutdown signal received - stopping")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _shutdown)

    try:
        await stop_event.wait()
    finally:
        await engine.stop_background_refresh()
        await runner.cleanup()
        await connector.close()
        logger.info("Tracker stopped.")


# --------------------------------------------------------------------------- #
# CLI                                                                         #
# --------------------------------------------------------------------------- #
def parse_args(argv=None):
    p = argparse.ArgumentParser(description="CoinDCX market-data tracker")
    p.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to tracker configuration YAML (defaults apply when omitted)",
    )
    p.add_argument(
        "--log-level",
        default=None,
        choices=list(LOG_LEVELS),
        help="Console log level (overrides log_level from the config file)",
    )
    return p.parse_args(argv)


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv=None):
    args = parse_args(argv)
    cfg = load_config(args.config)
    setup_logging(args.log_level or cfg["log_level"])
    try:
        asyncio.run(run_service(cfg))
    except KeyboardInterrupt:
        # already handled by signal handler on Unix; this is for Windows
        pass


if __name__ == "__main__":
    main()
