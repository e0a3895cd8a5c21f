from __future__ import annotations

import logging
from typing import List

from arbitrage.models import (
    BookTicker,
    OrderbookDepth,
    PriceChangeStatistic,
    Symbol,
    normalize_symbol,
    to_float,
)

from .base import ExchangeAdapter, ExchangeError, parse_levels

logger = logging.getLogger(__name__)


class BinanceAdapter(ExchangeAdapter):
    """REST adapter for Binance spot; also the reference exchange for depth and stats."""

    name = "binance"
    base_url = "https://api.binance.com"

    async def fetch_book_tickers(self) -> List[BookTicker]:
        payload = await self._get_json("/api/v3/ticker/bookTicker")
        if not isinstance(payload, list):
            raise ExchangeError(self.name, f"unexpected bookTicker payload: {_describe(payload)}")
        return [
            BookTicker.from_raw(
                self.name,
                item.get("symbol"),
                bid_price=item.get("bidPrice"),
                bid_qty=item.get("bidQty"),
                ask_price=item.get("askPrice"),
                ask_qty=item.get("askQty"),
            )
            for item in payload
            if isinstance(item, dict) and item.get("symbol")
        ]

    async def fetch_orderbook_depth(self, symbol: str, limit: int) -> OrderbookDepth:
        canonical = normalize_symbol(symbol)
        payload = await self._get_json(
            "/api/v3/depth", params={"symbol": canonical, "limit": limit}
        )
        if not isinstance(payload, dict) or "bids" not in payload:
            raise ExchangeError(self.name, f"unexpected depth payload for {canonical}: {_describe(payload)}")
        return OrderbookDepth(
            exchange=self.name,
            symbol=canonical,
            bids=parse_levels(payload.get("bids"), limit),
            asks=parse_levels(payload.get("asks"), limit),
        )

    async def fetch_exchange_info(self) -> List[Symbol]:
        payload = await self._get_json("/api/v3/exchangeInfo")
        items = payload.get("symbols") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise ExchangeError(self.name, f"unexpected exchangeInfo payload: {_describe(payload)}")
        symbols: list[Symbol] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("symbol"):
                continue
            symbols.append(
                Symbol(
                    symbol=normalize_symbol(item["symbol"]),
                    base_asset=str(item.get("baseAsset") or "").upper(),
                    quote_asset=str(item.get("quoteAsset") or "").upper(),
                    status=str(item.get("status") or ""),
                    is_spot_trading_allowed=bool(item.get("isSpotTradingAllowed", False)),
                )
            )
        return symbols

    async def fetch_price_change_statistics(self) -> List[PriceChangeStatistic]:
        payload = await self._get_json("/api/v3/ticker/24hr")
        if not isinstance(payload, list):
            raise ExchangeError(self.name, f"unexpected 24hr payload: {_describe(payload)}")
        return [
            PriceChangeStatistic(
                symbol=normalize_symbol(item.get("symbol")),
                price_change_percent=to_float(item.get("priceChangePercent")),
                last_price=to_float(item.get("lastPrice")),
                volume=to_float(item.get("volume")),
                quote_volume=to_float(item.get("quoteVolume")),
            )
            for item in payload
            if isinstance(item, dict) and item.get("symbol")
        ]


def _describe(payload: object) -> str:
    if isinstance(payload, dict) and "msg" in payload:
        return f"code={payload.get('code')} msg={payload.get('msg')}"
    return type(payload).__name__
