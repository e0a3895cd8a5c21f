"""Runtime configuration for the arbitrage monitor.

This module centralises user-adjustable settings that are persisted on disk.
It exposes a small manager responsible for validating, loading and saving the
settings.  Only non-sensitive values belong here - credentials should stay in
environment variables or `.env`.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Final, List, Mapping

from config import (
    ADAPTER_TIMEOUT_SECONDS,
    DEPTH_LIMIT,
    DEPTH_SYMBOLS_LIMIT,
    FAST_CYCLE_SECONDS,
    MODE_MIN_PROFIT_PERCENT,
    SETTINGS_PATH,
    SLOW_CYCLE_SECONDS,
    SUPPORTED_EXCHANGES,
)

DEFAULT_EXCHANGES: Final[Dict[str, bool]] = {
    name: True for name in SUPPORTED_EXCHANGES
}

RENOTIFY_POLICIES: Final[tuple[str, ...]] = ("always", "on_change", "new_only")

MIN_FAST_CYCLE_SECONDS: Final[int] = 1
MAX_FAST_CYCLE_SECONDS: Final[int] = 59
MIN_SLOW_CYCLE_SECONDS: Final[int] = 30
MAX_SLOW_CYCLE_SECONDS: Final[int] = 24 * 60 * 60  # one day
MAX_DEPTH_LIMIT: Final[int] = 5000


def _normalise_bool_map(
    baseline: Mapping[str, bool],
    incoming: Mapping[str, object] | None,
    *,
    allow_new_keys: bool = True,
) -> Dict[str, bool]:
    """Return a bool map starting from the baseline and applying incoming keys."""
    result = dict(baseline)
    if not incoming:
        return result
    for key, value in incoming.items():
        if not allow_new_keys and key not in result:
            continue
        result[key] = bool(value)
    return result


@dataclass(slots=True)
class AppSettings:
    """In-memory representation of persisted application settings."""

    exchanges: Dict[str, bool] = field(
        default_factory=lambda: dict(DEFAULT_EXCHANGES)
    )
    fast_cycle_seconds: int = FAST_CYCLE_SECONDS  # ticker refresh + detection
    slow_cycle_seconds: int = SLOW_CYCLE_SECONDS  # statistics / depth refresh
    adapter_timeout_seconds: float = ADAPTER_TIMEOUT_SECONDS
    depth_limit: int = DEPTH_LIMIT
    depth_symbols_limit: int = DEPTH_SYMBOLS_LIMIT
    mode_thresholds: Dict[str, float] = field(
        default_factory=lambda: dict(MODE_MIN_PROFIT_PERCENT)
    )
    renotify_policy: str = "on_change"
    alert_after_failures: int = 1

    def with_updates(self, payload: Mapping[str, object]) -> "AppSettings":
        """Return a new settings instance with the provided updates applied."""
        updated = replace(self)
        if "exchanges" in payload:
            updated.exchanges = _normalise_bool_map(
                DEFAULT_EXCHANGES, payload["exchanges"]  # type: ignore[arg-type]
            )
        else:
            updated.exchanges = dict(self.exchanges)
        updated.fast_cycle_seconds = int(
            payload.get("fast_cycle_seconds", self.fast_cycle_seconds)  # type: ignore[arg-type]
        )
        updated.slow_cycle_seconds = int(
            payload.get("slow_cycle_seconds", self.slow_cycle_seconds)  # type: ignore[arg-type]
        )
        updated.adapter_timeout_seconds = float(
            payload.get("adapter_timeout_seconds", self.adapter_timeout_seconds)  # type: ignore[arg-type]
        )
        updated.depth_limit = int(payload.get("depth_limit", self.depth_limit))  # type: ignore[arg-type]
        updated.depth_symbols_limit = int(
            payload.get("depth_symbols_limit", self.depth_symbols_limit)  # type: ignore[arg-type]
        )
        thresholds = dict(self.mode_thresholds)
        incoming = payload.get("mode_thresholds")
        if isinstance(incoming, Mapping):
            for mode, value in incoming.items():
                thresholds[str(mode).lower()] = float(value)
        updated.mode_thresholds = thresholds
        updated.renotify_policy = str(
            payload.get("renotify_policy", self.renotify_policy)
        ).lower()
        updated.alert_after_failures = int(
            payload.get("alert_after_failures", self.alert_after_failures)  # type: ignore[arg-type]
        )
        return updated

    def validate(self) -> None:
        """Validate invariants, raising ValueError if anything is invalid."""
        if not any(self.exchanges.values()):
            raise ValueError("At least one exchange must remain enabled.")
        if not (MIN_FAST_CYCLE_SECONDS <= self.fast_cycle_seconds <= MAX_FAST_CYCLE_SECONDS):
            raise ValueError(
                f"Fast cycle must be between {MIN_FAST_CYCLE_SECONDS} and "
                f"{MAX_FAST_CYCLE_SECONDS} seconds."
            )
        if not (MIN_SLOW_CYCLE_SECONDS <= self.slow_cycle_seconds <= MAX_SLOW_CYCLE_SECONDS):
            raise ValueError(
                f"Slow cycle must be between {MIN_SLOW_CYCLE_SECONDS} and "
                f"{MAX_SLOW_CYCLE_SECONDS} seconds."
            )
        if not math.isfinite(self.adapter_timeout_seconds) or self.adapter_timeout_seconds <= 0:
            raise ValueError("adapter_timeout_seconds must be a positive number.")
        if not (1 <= self.depth_limit <= MAX_DEPTH_LIMIT):
            raise ValueError(f"depth_limit must be between 1 and {MAX_DEPTH_LIMIT}.")
        if self.depth_symbols_limit < 0:
            raise ValueError("depth_symbols_limit must be >= 0.")
        for mode, value in self.mode_thresholds.items():
            if mode not in MODE_MIN_PROFIT_PERCENT:
                raise ValueError(f"Unknown alerting mode '{mode}'.")
            if value < 0:
                raise ValueError(f"Threshold for mode '{mode}' must be >= 0.")
        if self.renotify_policy not in RENOTIFY_POLICIES:
            raise ValueError(
                f"renotify_policy must be one of: {', '.join(RENOTIFY_POLICIES)}."
            )
        if self.alert_after_failures < 1:
            raise ValueError("alert_after_failures must be >= 1.")

    def enabled_exchanges(self) -> List[str]:
        return [name for name, enabled in self.exchanges.items() if enabled]

    def to_dict(self) -> Dict[str, object]:
        return {
            "exchanges": dict(self.exchanges),
            "fast_cycle_seconds": self.fast_cycle_seconds,
            "slow_cycle_seconds": self.slow_cycle_seconds,
            "adapter_timeout_seconds": self.adapter_timeout_seconds,
            "depth_limit": self.depth_limit,
            "depth_symbols_limit": self.depth_symbols_limit,
            "mode_thresholds": dict(self.mode_thresholds),
            "renotify_policy": self.renotify_policy,
            "alert_after_failures": self.alert_after_failures,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object] | None) -> "AppSettings":
        if not payload:
            return cls()
        return cls().with_updates(payload)


class SettingsManager:
    """Thin wrapper around settings persistence."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or SETTINGS_PATH
        self._settings = self._load()

    @property
    def current(self) -> AppSettings:
        return self._settings

    @property
    def path(self) -> Path:
        return self._path

    def as_dict(self) -> Dict[str, object]:
        return self._settings.to_dict()

    def update(self, payload: Mapping[str, object]) -> AppSettings:
        candidate = self._settings.with_updates(payload)
        candidate.validate()
        self._settings = candidate
        self.save()
        return self._settings

    def save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(self._settings.to_dict(), handle, indent=2)

    def _load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError) as exc:
            raise ValueError(f"Failed to load settings: {exc}") from exc
        settings = AppSettings.from_dict(data)
        settings.validate()
        return settings

    def reload(self) -> AppSettings:
        self._settings = self._load()
        return self._settings
