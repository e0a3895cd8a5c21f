from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping


def normalize_symbol(value: object) -> str:
    """Return the canonical ``BASEQUOTE`` form, e.g. ``btc_usdt`` -> ``BTCUSDT``."""

    if value is None:
        return ""
    text = str(value).upper().strip()
    for sep in ("_", "-", "/", " "):
        text = text.replace(sep, "")
    return text


def to_float(value: object) -> float | None:
    if value in (None, "", "null"):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class Symbol:
    """Exchange-info entry for a trading pair."""

    symbol: str
    base_asset: str
    quote_asset: str
    status: str = "TRADING"
    is_spot_trading_allowed: bool = True

    @property
    def is_tradeable(self) -> bool:
        return self.status.upper() == "TRADING" and self.is_spot_trading_allowed

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "base_asset": self.base_asset,
            "quote_asset": self.quote_asset,
            "status": self.status,
            "is_spot_trading_allowed": self.is_spot_trading_allowed,
        }


@dataclass(slots=True, frozen=True)
class PriceLevel:
    price: float
    quantity: float

    @classmethod
    def parse(cls, price: object, quantity: object = None) -> "PriceLevel | None":
        """Build a level from raw payload values; None when the price is unusable."""

        value = to_float(price)
        if value is None or value <= 0:
            return None
        size = to_float(quantity)
        return cls(price=value, quantity=size if size is not None and size > 0 else 0.0)


@dataclass(slots=True, frozen=True)
class BookTicker:
    """Best bid/ask for one symbol on one exchange.

    A side without a usable quote is ``None``; detection skips that side.
    """

    exchange: str
    symbol: str
    bid: PriceLevel | None
    ask: PriceLevel | None

    @classmethod
    def from_raw(
        cls,
        exchange: str,
        symbol: object,
        *,
        bid_price: object,
        bid_qty: object = None,
        ask_price: object,
        ask_qty: object = None,
    ) -> "BookTicker":
        return cls(
            exchange=exchange,
            symbol=normalize_symbol(symbol),
            bid=PriceLevel.parse(bid_price, bid_qty),
            ask=PriceLevel.parse(ask_price, ask_qty),
        )

    @property
    def is_empty(self) -> bool:
        return self.bid is None and self.ask is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "bid_price": self.bid.price if self.bid else None,
            "bid_qty": self.bid.quantity if self.bid else None,
            "ask_price": self.ask.price if self.ask else None,
            "ask_qty": self.ask.quantity if self.ask else None,
        }


@dataclass(slots=True, frozen=True)
class OrderbookDepth:
    exchange: str
    symbol: str
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]
    fetched_at: datetime = field(default_factory=_utcnow)

    @property
    def best_bid(self) -> PriceLevel | None:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> PriceLevel | None:
        return self.asks[0] if self.asks else None

    def spread(self) -> float | None:
        if not self.bids or not self.asks:
            return None
        return self.asks[0].price - self.bids[0].price

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "bids": [[level.price, level.quantity] for level in self.bids],
            "asks": [[level.price, level.quantity] for level in self.asks],
            "spread": self.spread(),
            "fetched_at": self.fetched_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class ExchangeSnapshot:
    """One exchange's book tickers for a cycle, or the reason it has none."""

    exchange: str
    tickers: Mapping[str, BookTicker]
    ok: bool = True
    error: str | None = None
    fetched_at: datetime = field(default_factory=_utcnow)
    elapsed: float = 0.0

    @classmethod
    def failed(cls, exchange: str, error: str, *, elapsed: float = 0.0) -> "ExchangeSnapshot":
        return cls(exchange=exchange, tickers={}, ok=False, error=error, elapsed=elapsed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange,
            "status": "ok" if self.ok else "failed",
            "error": self.error,
            "count": len(self.tickers),
            "elapsed": round(self.elapsed, 4),
            "fetched_at": self.fetched_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class MarketSnapshot:
    """Merged exchange data for one fast cycle; the detector's only input."""

    generated_at: datetime
    exchanges: tuple[ExchangeSnapshot, ...] = ()
    failures: tuple[ExchangeSnapshot, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.exchanges

    @property
    def exchange_names(self) -> list[str]:
        return [item.exchange for item in self.exchanges]

    def symbols(self) -> set[str]:
        result: set[str] = set()
        for item in self.exchanges:
            result.update(item.tickers)
        return result

    def status_entries(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in (*self.exchanges, *self.failures)]


@dataclass(slots=True, frozen=True)
class ArbitrageOpportunity:
    """Buy on ``buy_exchange`` at its ask, sell on ``sell_exchange`` at its bid."""

    symbol: str
    buy_exchange: str
    sell_exchange: str
    buy_price: float
    sell_price: float
    detected_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.buy_exchange == self.sell_exchange:
            raise ValueError(
                f"{self.symbol}: buy and sell exchange must differ ({self.buy_exchange})"
            )
        if not (math.isfinite(self.buy_price) and math.isfinite(self.sell_price)):
            raise ValueError(f"{self.symbol}: prices must be finite")
        if self.buy_price <= 0:
            raise ValueError(f"{self.symbol}: buy price must be positive")
        if self.sell_price <= self.buy_price:
            raise ValueError(
                f"{self.symbol}: sell price {self.sell_price} does not exceed buy price {self.buy_price}"
            )

    @property
    def profit_percentage(self) -> float:
        return (self.sell_price - self.buy_price) / self.buy_price * 100

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.symbol, self.buy_exchange, self.sell_exchange)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "buy_exchange": self.buy_exchange,
            "sell_exchange": self.sell_exchange,
            "buy_price": self.buy_price,
            "sell_price": self.sell_price,
            "profit_percentage": self.profit_percentage,
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class PriceChangeStatistic:
    """24h rolling window statistics for a symbol."""

    symbol: str
    price_change_percent: float | None
    last_price: float | None
    volume: float | None
    quote_volume: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price_change_percent": self.price_change_percent,
            "last_price": self.last_price,
            "volume": self.volume,
            "quote_volume": self.quote_volume,
        }


@dataclass(slots=True, frozen=True)
class VolumeEquivalence:
    symbol: str
    quote_asset: str
    quote_volume: float | None
    stable_volume: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "quote_asset": self.quote_asset,
            "quote_volume": self.quote_volume,
            "stable_volume": self.stable_volume,
        }
