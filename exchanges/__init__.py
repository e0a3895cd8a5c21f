"""Exchange adapter registry."""

from __future__ import annotations

from typing import Dict, Type

from .base import ExchangeAdapter, ExchangeError
from .binance import BinanceAdapter
from .kucoin import KucoinAdapter
from .whitebit import WhiteBitAdapter

ADAPTER_FACTORIES: Dict[str, Type[ExchangeAdapter]] = {
    "binance": BinanceAdapter,
    "whitebit": WhiteBitAdapter,
    "kucoin": KucoinAdapter,
}

EXCHANGE_ALIASES: Dict[str, str] = {
    "kukoin": "kucoin",
    "white-bit": "whitebit",
    "white_bit": "whitebit",
}


def normalize_exchange_name(name: str) -> str:
    key = name.lower().strip()
    return EXCHANGE_ALIASES.get(key, key)


def get_adapter(name: str) -> ExchangeAdapter:
    canonical = normalize_exchange_name(name)
    cls = ADAPTER_FACTORIES.get(canonical)
    if not cls:
        raise KeyError(f"No adapter registered for exchange '{name}'")
    return cls()


__all__ = [
    "ExchangeAdapter",
    "ExchangeError",
    "BinanceAdapter",
    "KucoinAdapter",
    "WhiteBitAdapter",
    "get_adapter",
    "normalize_exchange_name",
    "ADAPTER_FACTORIES",
]
