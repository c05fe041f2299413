import abc
from typing import Dict


class BaseConnector(abc.ABC):
    """
    Abstract base class for exchange REST connectors.

    Every fetch returns the raw response body; decoding is the parser's job.
    Implementations raise ``tracker.errors.TransportError`` when the exchange
    cannot be reached after their retries are used up.
    """

    @classmethod
    def from_config(cls, exchange_cfg: Dict):
        """
        Build a connector from the ``exchange`` config section; every key
        except ``name`` is passed as a keyword argument.
        """
        params = {k: v for k, v in exchange_cfg.items() if k != "name"}
        return cls(**params)

    @abc.abstractmethod
    async def fetch_markets(self) -> str:
        """
        Download the market‑details document (every listed pair).
        """

    @abc.abstractmethod
    async def fetch_tickers(self) -> str:
        """
        Download the ticker document (every market).
        """

    @abc.abstractmethod
    async def fetch_order_book(self, pair: str) -> str:
        """
        Download the order book for one order‑book *pair* symbol.
        """

    async def close(self):
        """
        Release any network resources held by the connector.
        """
