from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import Sequence

from arbitrage.models import ArbitrageOpportunity, BookTicker, MarketSnapshot, PriceLevel

logger = logging.getLogger(__name__)


def _quoted(level: PriceLevel | None) -> bool:
    return level is not None and math.isfinite(level.price) and level.price > 0


def detect_opportunities(
    snapshot: MarketSnapshot,
    *,
    now: datetime | None = None,
) -> list[ArbitrageOpportunity]:
    """Return at most one opportunity per symbol for the snapshot.

    For every symbol quoted by two or more exchanges the cheapest ask is
    paired with the richest bid. Ties keep the exchange seen first in
    snapshot order, so the result is deterministic for a given input.
    """

    started = time.perf_counter()
    detected_at = now or datetime.now(timezone.utc)

    by_symbol: dict[str, list[BookTicker]] = {}
    for exchange_snapshot in snapshot.exchanges:
        for symbol, ticker in exchange_snapshot.tickers.items():
            by_symbol.setdefault(symbol, []).append(ticker)

    opportunities: list[ArbitrageOpportunity] = []
    for symbol, tickers in by_symbol.items():
        if len(tickers) < 2:
            continue

        lowest_ask: BookTicker | None = None
        highest_bid: BookTicker | None = None
        for ticker in tickers:
            if _quoted(ticker.ask) and (
                lowest_ask is None or ticker.ask.price < lowest_ask.ask.price
            ):
                lowest_ask = ticker
            if _quoted(ticker.bid) and (
                highest_bid is None or ticker.bid.price > highest_bid.bid.price
            ):
                highest_bid = ticker

        if lowest_ask is None or highest_bid is None:
            continue
        if lowest_ask.exchange == highest_bid.exchange:
            continue
        if highest_bid.bid.price <= lowest_ask.ask.price:
            continue

        opportunities.append(
            ArbitrageOpportunity(
                symbol=symbol,
                buy_exchange=lowest_ask.exchange,
                sell_exchange=highest_bid.exchange,
                buy_price=lowest_ask.ask.price,
                sell_price=highest_bid.bid.price,
                detected_at=detected_at,
            )
        )

    opportunities.sort(key=lambda item: (-item.profit_percentage, item.symbol))
    logger.debug(
        "Detected %s opportunities across %s symbols in %.4fs",
        len(opportunities),
        len(by_symbol),
        time.perf_counter() - started,
    )
    return opportunities


def format_opportunity_table(rows: Sequence[ArbitrageOpportunity]) -> str:
    header = (
        f"{'Symbol':<12} {'Buy':>10} {'BuyPrice':>14} "
        f"{'Sell':>10} {'SellPrice':>14} {'Profit%':>9}"
    )
    lines = [header, "-" * len(header)]
    for row in rows:
        lines.append(
            f"{row.symbol:<12} {row.buy_exchange:>10} {_fmt_price(row.buy_price):>14} "
            f"{row.sell_exchange:>10} {_fmt_price(row.sell_price):>14} "
            f"{row.profit_percentage:>8.3f}%"
        )
    return "\n".join(lines)


def _fmt_price(value: float) -> str:
    if value >= 1:
        return f"{value:.4f}"
    return f"{value:.8f}"
