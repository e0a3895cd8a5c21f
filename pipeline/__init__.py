"""Data collection pipeline: aggregation, market state and statistics."""

from .aggregator import ProgressCallback, SnapshotAggregator
from .market_state import MarketStateCache
from .statistics import compute_volume_equivalences, refresh_statistics

__all__ = [
    "MarketStateCache",
    "ProgressCallback",
    "SnapshotAggregator",
    "compute_volume_equivalences",
    "refresh_statistics",
]
