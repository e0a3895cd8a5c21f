from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

import aiohttp

from arbitrage.models import (
    BookTicker,
    OrderbookDepth,
    PriceChangeStatistic,
    PriceLevel,
    Symbol,
)

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
    "Accept": "application/json",
}


class ExchangeError(RuntimeError):
    """Raised when an exchange answers with an error or an unexpected payload."""

    def __init__(self, exchange: str, message: str) -> None:
        super().__init__(f"{exchange}: {message}")
        self.exchange = exchange


class ExchangeAdapter(ABC):
    """Base interface for spot exchange adapters.

    Adapters own their HTTP session and do not retry; the aggregator treats
    any exception as the exchange being absent for the cycle.
    """

    name: str
    base_url: str
    request_timeout: float = 15.0

    def __init__(self, session: aiohttp.ClientSession | None = None) -> None:
        self._session = session
        self._owns_session = session is None

    @abstractmethod
    async def fetch_book_tickers(self) -> list[BookTicker]:
        """Return best bid/ask for every symbol listed on the exchange."""

    async def fetch_orderbook_depth(self, symbol: str, limit: int) -> OrderbookDepth:
        raise NotImplementedError(f"{self.name} does not provide order-book depth")

    async def fetch_exchange_info(self) -> list[Symbol]:
        raise NotImplementedError(f"{self.name} does not provide exchange info")

    async def fetch_price_change_statistics(self) -> list[PriceChangeStatistic]:
        """Return 24h statistics; adapters without them report nothing."""
        return []

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        session = self._ensure_session()
        url = f"{self.base_url}{path}"
        async with session.get(url, params=params) as resp:
            resp.raise_for_status()
            return await resp.json(content_type=None)

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout, headers=_HEADERS)
            self._owns_session = True
        return self._session


def parse_levels(rows: object, limit: int | None = None) -> tuple[PriceLevel, ...]:
    """Parse ``[[price, qty], ...]`` rows, dropping unusable entries."""

    levels: list[PriceLevel] = []
    if not isinstance(rows, list):
        return ()
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        level = PriceLevel.parse(row[0], row[1])
        if level is None:
            continue
        levels.append(level)
        if limit is not None and len(levels) >= limit:
            break
    return tuple(levels)
