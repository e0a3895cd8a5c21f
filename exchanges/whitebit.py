from __future__ import annotations

import logging
from typing import List

from arbitrage.models import BookTicker

from .base import ExchangeAdapter, ExchangeError

logger = logging.getLogger(__name__)


class WhiteBitAdapter(ExchangeAdapter):
    """WhiteBIT public v2 ticker; quotes carry prices only, no sizes."""

    name = "whitebit"
    base_url = "https://whitebit.com"

    async def fetch_book_tickers(self) -> List[BookTicker]:
        payload = await self._get_json("/api/v2/public/ticker")
        if not isinstance(payload, dict) or not payload.get("success", False):
            message = payload.get("message") if isinstance(payload, dict) else None
            raise ExchangeError(self.name, f"ticker request unsuccessful: {message}")
        items = payload.get("result")
        if not isinstance(items, list):
            raise ExchangeError(self.name, "ticker result is not a list")

        tickers: list[BookTicker] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("tradingPairs"):
                continue
            if item.get("tradesEnabled") is False:
                logger.debug("WhiteBIT: trading disabled for %s", item.get("tradingPairs"))
                continue
            tickers.append(
                BookTicker.from_raw(
                    self.name,
                    item["tradingPairs"],
                    bid_price=item.get("highestBid"),
                    ask_price=item.get("lowestAsk"),
                )
            )
        return tickers
