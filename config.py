"""
Project-wide configuration.

This is a central place for static settings such as supported exchanges.
API credentials and anything secret should remain in `.env` or environment
variables - keep this file for non-sensitive defaults only.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Final, FrozenSet, List

# Root directory of the project (useful for resolving relative paths).
BASE_DIR: Final[Path] = Path(__file__).resolve().parent

# Exchanges polled on every fast cycle, in snapshot order.
SUPPORTED_EXCHANGES: Final[List[str]] = [
    "binance",
    "whitebit",
    "kucoin",
]

# Exchange used for exchange-info, order-book depth and 24h statistics.
REFERENCE_EXCHANGE: Final[str] = "binance"

# Quote assets treated as 1:1 with USD when computing volume equivalence.
STABLE_ASSETS: Final[FrozenSet[str]] = frozenset(
    {"USDT", "USDC", "BUSD", "TUSD", "FDUSD", "DAI"}
)

# Preferred stable asset when a quote asset must be converted via a ticker.
STABLE_CONVERSION_ORDER: Final[List[str]] = ["USDT", "USDC", "BUSD", "FDUSD"]

# Default cadence of the two scheduler cycles.
FAST_CYCLE_SECONDS: Final[int] = 10
SLOW_CYCLE_SECONDS: Final[int] = 300

# Per-adapter budget for one request; a slow exchange is dropped after this.
ADAPTER_TIMEOUT_SECONDS: Final[float] = 8.0

# Order-book depth refresh on the reference exchange.
DEPTH_LIMIT: Final[int] = 10
DEPTH_SYMBOLS_LIMIT: Final[int] = 50
DEPTH_CONCURRENCY: Final[int] = 10

# Minimum profit (percent) per subscriber mode before an alert is considered.
MODE_MIN_PROFIT_PERCENT: Final[Dict[str, float]] = {
    "alerting": 0.1,
}

# Persisted runtime settings (see project_settings.py).
SETTINGS_PATH: Final[Path] = BASE_DIR / "data" / "settings.json"

# Structured event log for cycle telemetry.
TELEMETRY_LOG_PATH: Final[Path] = BASE_DIR / "logs" / "events.jsonl"
