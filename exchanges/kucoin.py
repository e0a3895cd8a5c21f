from __future__ import annotations

import logging
from typing import List

from arbitrage.models import BookTicker

from .base import ExchangeAdapter, ExchangeError

logger = logging.getLogger(__name__)


class KucoinAdapter(ExchangeAdapter):
    name = "kucoin"
    base_url = "https://api.kucoin.com"

    async def fetch_book_tickers(self) -> List[BookTicker]:
        payload = await self._get_json("/api/v1/market/allTickers")
        if not isinstance(payload, dict) or payload.get("code") != "200000":
            message = payload.get("msg") if isinstance(payload, dict) else None
            raise ExchangeError(self.name, f"allTickers error: {message}")
        data = payload.get("data") or {}
        items = data.get("ticker") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise ExchangeError(self.name, "allTickers payload has no ticker list")

        return [
            BookTicker.from_raw(
                self.name,
                item.get("symbol"),
                bid_price=item.get("buy"),
                bid_qty=item.get("bestBidSize"),
                ask_price=item.get("sell"),
                ask_qty=item.get("bestAskSize"),
            )
            for item in items
            if isinstance(item, dict) and item.get("symbol")
        ]
