from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Mapping, Tuple

from arbitrage.models import BookTicker, PriceChangeStatistic, Symbol, VolumeEquivalence
from config import ADAPTER_TIMEOUT_SECONDS, STABLE_ASSETS, STABLE_CONVERSION_ORDER
from exchanges.base import ExchangeAdapter

from .market_state import MarketStateCache

logger = logging.getLogger(__name__)


def compute_volume_equivalences(
    statistics: Iterable[PriceChangeStatistic],
    symbols: Mapping[str, Symbol],
    tickers: Mapping[str, BookTicker],
) -> List[VolumeEquivalence]:
    """Express each symbol's 24h quote volume in a USD-stable amount.

    ``tickers`` maps symbol to the reference exchange's book ticker and is
    used to price non-stable quote assets (``ETHBTC`` via ``BTCUSDT``).
    """

    rates: dict[str, float | None] = {}
    result: list[VolumeEquivalence] = []
    for stat in statistics:
        info = symbols.get(stat.symbol)
        if info is None:
            continue
        quote = info.quote_asset
        if quote not in rates:
            rates[quote] = _stable_rate(quote, tickers)
        rate = rates[quote]
        stable_volume = None
        if stat.quote_volume is not None and rate is not None:
            stable_volume = stat.quote_volume * rate
        result.append(
            VolumeEquivalence(
                symbol=stat.symbol,
                quote_asset=quote,
                quote_volume=stat.quote_volume,
                stable_volume=stable_volume,
            )
        )
    return result


def _stable_rate(asset: str, tickers: Mapping[str, BookTicker]) -> float | None:
    if asset in STABLE_ASSETS:
        return 1.0
    for stable in STABLE_CONVERSION_ORDER:
        ticker = tickers.get(f"{asset}{stable}")
        if ticker is None:
            continue
        price = _mid_price(ticker)
        if price is not None:
            return price
    return None


def _mid_price(ticker: BookTicker) -> float | None:
    if ticker.bid is not None and ticker.ask is not None:
        return (ticker.bid.price + ticker.ask.price) / 2.0
    if ticker.bid is not None:
        return ticker.bid.price
    if ticker.ask is not None:
        return ticker.ask.price
    return None


async def refresh_statistics(
    adapter: ExchangeAdapter,
    state: MarketStateCache,
    *,
    timeout: float = ADAPTER_TIMEOUT_SECONDS,
) -> Tuple[int, int]:
    """Fetch 24h statistics from ``adapter`` and store them with volume equivalence.

    Returns ``(statistics, converted)`` counts. Errors propagate to the
    slow-cycle boundary.
    """

    statistics = await asyncio.wait_for(adapter.fetch_price_change_statistics(), timeout=timeout)
    symbols = state.symbols()
    tickers = {
        symbol: ticker
        for (_exchange, symbol), ticker in state.book_tickers(adapter.name).items()
    }
    volumes = compute_volume_equivalences(statistics, symbols, tickers)
    state.put_statistics(statistics, volumes)
    converted = sum(1 for item in volumes if item.stable_volume is not None)
    logger.info(
        "%s: stored %s statistics, %s with stable volume",
        adapter.name,
        len(statistics),
        converted,
    )
    return len(statistics), converted
