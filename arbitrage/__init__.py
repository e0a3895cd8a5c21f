"""Market-data model and cross-exchange opportunity detection."""

from .models import (
    ArbitrageOpportunity,
    BookTicker,
    ExchangeSnapshot,
    MarketSnapshot,
    OrderbookDepth,
    PriceChangeStatistic,
    PriceLevel,
    Symbol,
    VolumeEquivalence,
    normalize_symbol,
)
from .opportunities import detect_opportunities, format_opportunity_table

__all__ = [
    "ArbitrageOpportunity",
    "BookTicker",
    "ExchangeSnapshot",
    "MarketSnapshot",
    "OrderbookDepth",
    "PriceChangeStatistic",
    "PriceLevel",
    "Symbol",
    "VolumeEquivalence",
    "normalize_symbol",
    "detect_opportunities",
    "format_opportunity_table",
]
