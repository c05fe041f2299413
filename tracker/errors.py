"""
Exception taxonomy shared by connectors, parsers and the query path.

* ``TransportError`` – the exchange could not be reached (network, timeout,
  non‑200 status) even after the configured retries.
* ``DecodeError``    – a response body arrived but is not the document we
  expected.
* ``UnknownMarket``  – a query named a market with no cached pair mapping.
* ``PartialData``    – a snapshot lacks some of market / ticker / order book
  and the caller asked for a complete one.
"""

from __future__ import annotations

from typing import Sequence


class TrackerError(Exception):
    """Base class for every error raised by the tracker."""


class TransportError(TrackerError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class DecodeError(TrackerError):
    def __init__(self, kind: str, reason: str):
        super().__init__(f"cannot decode {kind} document: {reason}")
        self.kind = kind
        self.reason = reason


class UnknownMarket(TrackerError):
    def __init__(self, market: str):
        super().__init__(f"unknown market {market!r}")
        self.market = market


class PartialData(TrackerError):
    def __init__(self, market: str, missing: Sequence[str]):
        super().__init__(f"{market}: missing {', '.join(missing)}")
        self.market = market
        self.missing = tuple(missing)
