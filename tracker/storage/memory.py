"""
In‑memory record stores (locked version).

Notes
-----
* The refresh task and request handlers share these stores; a handler may
  also run in a worker thread (``asyncio.to_thread``), so every public
  method goes through the store's own ``threading.Lock``.
* The lock only guards dict updates / copies.  Callers build their batch
  *before* calling ``put_all``; nothing blocks while the lock is held.
* Records are frozen dataclasses, so handing one out is safe; ``list()``
  returns a fresh list, never the internal dict.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from tracker.models import MarketDetail, OrderBookSnapshot, TickerSnapshot

R = TypeVar("R")

__all__ = ["RecordStore", "MarketStore", "TickerStore", "OrderBookStore"]


class RecordStore(Generic[R]):
    """
    Keyed storage for the latest record per key.
    """

    # key -> record
    _records: Dict[str, R]

    def __init__(self, key: Callable[[R], str]):
        self._key = key
        self._records = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # public API                                                         #
    # ------------------------------------------------------------------ #
    def get(self, key: str) -> Optional[R]:
        """
        Latest record for *key*, or None if it was never stored.
        """
        with self._lock:
            return self._records.get(key)

    def put_all(self, records: Iterable[R]) -> int:
        """
        Replace the entries for every key in *records* in one step.

        Keys not present in *records* are left alone.  Returns the number of
        distinct keys written; if two records share a key, the later wins.
        """
        staged = {self._key(r): r for r in records}
        with self._lock:
            self._records.update(staged)
        return len(staged)

    def replace_all(self, records: Iterable[R]) -> int:
        """
        Swap the whole contents for *records*; keys missing from *records*
        are dropped.
        """
        staged = {self._key(r): r for r in records}
        with self._lock:
            self._records = staged
        return len(staged)

    def list(self) -> List[R]:
        """
        Point‑in‑time copy of every stored record.
        """
        with self._lock:
            return list(self._records.values())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class MarketStore(RecordStore[MarketDetail]):
    """
    Market details plus the name → order‑book pair index.

    Both maps are written under the same lock, so a reader never finds a
    pair mapping whose detail record is from another refresh.
    """

    # coindcx_name -> pair
    _pairs: Dict[str, str]

    def __init__(self):
        super().__init__(key=lambda m: m.coindcx_name)
        self._pairs = {}

    def put_all(self, records: Iterable[MarketDetail]) -> int:
        staged = {m.coindcx_name: m for m in records}
        pairs = {name: m.pair for name, m in staged.items()}
        with self._lock:
            self._records.update(staged)
            self._pairs.update(pairs)
        return len(staged)

    def replace_all(self, records: Iterable[MarketDetail]) -> int:
        """
        Rebuild details and pair index from one market document, so a
        delisted pair disappears from both.
        """
        staged = {m.coindcx_name: m for m in records}
        pairs = {name: m.pair for name, m in staged.items()}
        with self._lock:
            self._records = staged
            self._pairs = pairs
        return len(staged)

    def pair_for(self, name: str) -> Optional[str]:
        with self._lock:
            return self._pairs.get(name)

    def pairs(self) -> List[str]:
        """Every known market name, sorted."""
        with self._lock:
            return sorted(self._pairs)


class TickerStore(RecordStore[TickerSnapshot]):
    def __init__(self):
        super().__init__(key=lambda t: t.market)


class OrderBookStore(RecordStore[OrderBookSnapshot]):
    def __init__(self):
        super().__init__(key=lambda b: b.pair)
