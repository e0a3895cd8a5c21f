from __future__ import annotations

import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from arbitrage.models import (
    ArbitrageOpportunity,
    BookTicker,
    OrderbookDepth,
    PriceChangeStatistic,
    Symbol,
    VolumeEquivalence,
)


class MarketStateCache:
    """Latest known market state, shared by the cycles and status queries.

    Stored values are frozen dataclasses, so a reader never sees a partial
    entry. Readers get copies of the containers; one lock guards every write
    and every copy. Entries are only ever overwritten, never dropped, so the
    last good value stays visible when an exchange misses a cycle.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tickers: Dict[Tuple[str, str], BookTicker] = {}
        self._ticker_updated: Dict[str, float] = {}
        self._depths: Dict[str, OrderbookDepth] = {}
        self._symbols: Dict[str, Symbol] = {}
        self._statistics: Dict[str, PriceChangeStatistic] = {}
        self._volumes: Dict[str, VolumeEquivalence] = {}
        self._opportunities: Tuple[ArbitrageOpportunity, ...] = ()
        self._opportunities_updated: float | None = None
        self._statistics_updated: float | None = None

    # writers ------------------------------------------------------------

    def put_book_tickers(self, exchange: str, tickers: Iterable[BookTicker]) -> int:
        items = [(ticker.exchange, ticker.symbol, ticker) for ticker in tickers]
        with self._lock:
            for ticker_exchange, symbol, ticker in items:
                self._tickers[(ticker_exchange, symbol)] = ticker
            self._ticker_updated[exchange] = time.time()
        return len(items)

    def put_depth(self, depth: OrderbookDepth) -> None:
        with self._lock:
            self._depths[depth.symbol] = depth

    def put_symbols(self, symbols: Iterable[Symbol]) -> None:
        with self._lock:
            for symbol in symbols:
                self._symbols[symbol.symbol] = symbol

    def put_statistics(
        self,
        statistics: Iterable[PriceChangeStatistic],
        volumes: Iterable[VolumeEquivalence] = (),
    ) -> None:
        stats = list(statistics)
        equivalences = list(volumes)
        with self._lock:
            for item in stats:
                self._statistics[item.symbol] = item
            for item in equivalences:
                self._volumes[item.symbol] = item
            self._statistics_updated = time.time()

    def put_opportunities(self, opportunities: Iterable[ArbitrageOpportunity]) -> None:
        frozen = tuple(opportunities)
        with self._lock:
            self._opportunities = frozen
            self._opportunities_updated = time.time()

    # readers ------------------------------------------------------------

    def book_ticker(self, exchange: str, symbol: str) -> Optional[BookTicker]:
        with self._lock:
            return self._tickers.get((exchange, symbol))

    def book_tickers(self, exchange: str | None = None) -> Dict[Tuple[str, str], BookTicker]:
        with self._lock:
            if exchange is None:
                return dict(self._tickers)
            return {key: value for key, value in self._tickers.items() if key[0] == exchange}

    def depth(self, symbol: str) -> Optional[OrderbookDepth]:
        with self._lock:
            return self._depths.get(symbol)

    def depths(self) -> Dict[str, OrderbookDepth]:
        with self._lock:
            return dict(self._depths)

    def symbols(self) -> Dict[str, Symbol]:
        with self._lock:
            return dict(self._symbols)

    def tradeable_symbols(self) -> List[Symbol]:
        with self._lock:
            return [item for item in self._symbols.values() if item.is_tradeable]

    def statistics(self) -> Dict[str, PriceChangeStatistic]:
        with self._lock:
            return dict(self._statistics)

    def volume_equivalences(self) -> Dict[str, VolumeEquivalence]:
        with self._lock:
            return dict(self._volumes)

    def latest_opportunities(self) -> List[ArbitrageOpportunity]:
        with self._lock:
            return list(self._opportunities)

    def status(self) -> dict[str, Any]:
        """Entry counts and ages, for diagnostics."""

        now = time.time()
        with self._lock:
            per_exchange: Dict[str, int] = {}
            for exchange, _symbol in self._tickers:
                per_exchange[exchange] = per_exchange.get(exchange, 0) + 1
            exchanges = {
                name: {
                    "tickers": per_exchange.get(name, 0),
                    "age_seconds": round(now - updated, 3),
                }
                for name, updated in self._ticker_updated.items()
            }
            return {
                "exchanges": exchanges,
                "symbols": len(self._symbols),
                "depths": len(self._depths),
                "statistics": len(self._statistics),
                "statistics_age_seconds": _age(now, self._statistics_updated),
                "opportunities": len(self._opportunities),
                "opportunities_age_seconds": _age(now, self._opportunities_updated),
            }


def _age(now: float, updated: float | None) -> float | None:
    if updated is None:
        return None
    return round(now - updated, 3)
