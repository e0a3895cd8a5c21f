from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from alerts import (
    AlertSink,
    BotMode,
    EmailAlertSink,
    FanoutAlertSink,
    LoggingAlertSink,
    LoggingNotificationSink,
    NotificationSink,
    RoutingReport,
    Subscriber,
    SubscriberRegistry,
    SubscriptionRouter,
    TelegramNotificationSink,
    TelemetryAlertSink,
)
from arbitrage import ArbitrageOpportunity, detect_opportunities
from config import REFERENCE_EXCHANGE, TELEMETRY_LOG_PATH
from exchanges import ExchangeAdapter, get_adapter, normalize_exchange_name
from pipeline import MarketStateCache, SnapshotAggregator, refresh_statistics
from project_settings import AppSettings, SettingsManager

from .scheduler import CycleScheduler
from .telemetry import TelemetryClient

logger = logging.getLogger(__name__)

FAST_CYCLE = "fast"
SLOW_CYCLE = "slow"


class ArbitrageService:
    """Own the market state and wire the cycles together for one process."""

    def __init__(
        self,
        settings_manager: SettingsManager | None = None,
        *,
        adapters: Sequence[ExchangeAdapter] | None = None,
        reference: ExchangeAdapter | None = None,
        state: MarketStateCache | None = None,
        registry: SubscriberRegistry | None = None,
        notification_sink: NotificationSink | None = None,
        alert_sink: AlertSink | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._settings_manager = settings_manager or SettingsManager()
        settings = self._settings_manager.current
        self._state = state or MarketStateCache()
        self._registry = registry or SubscriberRegistry()
        self._telemetry = telemetry or TelemetryClient(TELEMETRY_LOG_PATH)
        self._notification_sink = notification_sink or _default_notification_sink()
        self._alert_sink = alert_sink or _default_alert_sink(self._telemetry)
        self._custom_adapters = adapters is not None
        self._adapters: List[ExchangeAdapter] = (
            list(adapters) if adapters is not None else _active_adapters(settings.enabled_exchanges())
        )
        self._reference = reference or _reference_adapter(self._adapters)
        self._aggregator = self._build_aggregator(settings)
        self._router = SubscriptionRouter(
            self._registry,
            self._notification_sink,
            thresholds=settings.mode_thresholds,
            policy=settings.renotify_policy,
        )
        self._scheduler = CycleScheduler(self._alert_sink, telemetry=self._telemetry)
        self._scheduler.add_job(
            FAST_CYCLE,
            settings.fast_cycle_seconds,
            self.run_fast_cycle,
            alert_after=settings.alert_after_failures,
        )
        self._scheduler.add_job(
            SLOW_CYCLE,
            settings.slow_cycle_seconds,
            self.run_slow_cycle,
            alert_after=settings.alert_after_failures,
        )
        self._fast_lock = asyncio.Lock()
        self._slow_lock = asyncio.Lock()
        self._last_report: Optional[RoutingReport] = None
        self._last_exchange_status: List[dict[str, Any]] = []
        self._last_fast_cycle: Optional[datetime] = None

    @property
    def state(self) -> MarketStateCache:
        return self._state

    @property
    def registry(self) -> SubscriberRegistry:
        return self._registry

    @property
    def scheduler(self) -> CycleScheduler:
        return self._scheduler

    @property
    def settings_manager(self) -> SettingsManager:
        return self._settings_manager

    @property
    def settings(self) -> AppSettings:
        return self._settings_manager.current

    async def startup(self) -> None:
        await self._telemetry.start()
        await self._scheduler.start()
        logger.info(
            "Arbitrage service started with exchanges: %s",
            ", ".join(adapter.name for adapter in self._adapters) or "-",
        )

    async def shutdown(self) -> None:
        await self._scheduler.stop()
        await self._close_adapters(self._adapters, self._reference)
        await self._notification_sink.close()
        await self._telemetry.stop()

    async def run_fast_cycle(self) -> List[ArbitrageOpportunity]:
        """Aggregate, detect, route. Adapter failures only shrink the snapshot."""

        async with self._fast_lock:
            snapshot = await self._aggregator.collect()
            self._last_exchange_status = snapshot.status_entries()
            if snapshot.is_empty:
                self._telemetry.emit(
                    "snapshot:empty",
                    {"failed": [item.exchange for item in snapshot.failures]},
                )
            opportunities = detect_opportunities(snapshot)
            self._state.put_opportunities(opportunities)
            report = await self._router.route(opportunities)
            self._last_report = report
            self._last_fast_cycle = datetime.now(timezone.utc)
            self._telemetry.emit(
                "opportunities:complete",
                {
                    "exchanges": snapshot.exchange_names,
                    "count": len(opportunities),
                    "routing": report.counts(),
                },
            )
            return opportunities

    async def run_slow_cycle(self) -> None:
        """Refresh reference data: exchange info, 24h statistics, order-book depth."""

        async with self._slow_lock:
            settings = self.settings
            tradeable = await self._aggregator.refresh_symbols()
            await refresh_statistics(
                self._reference,
                self._state,
                timeout=settings.adapter_timeout_seconds,
            )
            depth_symbols = self._depth_candidates([item.symbol for item in tradeable])
            refreshed = await self._aggregator.refresh_depths(
                depth_symbols,
                limit=settings.depth_limit,
            )
            self._telemetry.emit(
                "statistics:complete",
                {
                    "tradeable": len(tradeable),
                    "depth_requested": len(depth_symbols),
                    "depth_refreshed": refreshed,
                },
            )

    def _depth_candidates(self, symbols: List[str]) -> List[str]:
        limit = self.settings.depth_symbols_limit
        if limit <= 0:
            return []
        volumes = self._state.volume_equivalences()

        def _volume(symbol: str) -> float:
            item = volumes.get(symbol)
            if item is None or item.stable_volume is None:
                return 0.0
            return item.stable_volume

        ranked = sorted(symbols, key=lambda symbol: (-_volume(symbol), symbol))
        return ranked[:limit]

    async def refresh_now(self) -> bool:
        return await self._scheduler.run_job_once(FAST_CYCLE)

    def select_mode(self, chat_id: int, mode: str, username: str | None = None) -> Subscriber:
        subscriber = self._registry.select_mode(chat_id, mode, username=username)
        logger.info("Subscriber %s switched to %s", chat_id, subscriber.mode.label)
        self._telemetry.emit(
            "subscriber:mode",
            {"chat_id": chat_id, "mode": subscriber.mode.label},
        )
        return subscriber

    async def on_settings_updated(self) -> None:
        settings = self.settings
        self._scheduler.set_interval(FAST_CYCLE, settings.fast_cycle_seconds)
        self._scheduler.set_interval(SLOW_CYCLE, settings.slow_cycle_seconds)
        self._scheduler.set_alert_after(settings.alert_after_failures)
        self._router.update_thresholds(settings.mode_thresholds)
        self._router.set_policy(settings.renotify_policy)
        if self._custom_adapters:
            self._aggregator = self._build_aggregator(settings)
            return
        async with self._fast_lock, self._slow_lock:
            previous, previous_reference = self._adapters, self._reference
            self._adapters = _active_adapters(settings.enabled_exchanges())
            self._reference = _reference_adapter(self._adapters)
            self._aggregator = self._build_aggregator(settings)
        await self._close_adapters(previous, previous_reference)

    def _build_aggregator(self, settings: AppSettings) -> SnapshotAggregator:
        return SnapshotAggregator(
            self._adapters,
            self._state,
            timeout=settings.adapter_timeout_seconds,
            reference=self._reference,
            progress_cb=self._record_event,
        )

    def _record_event(self, event: str, payload: dict[str, Any]) -> None:
        self._telemetry.emit(event, payload)

    async def _close_adapters(
        self,
        adapters: Sequence[ExchangeAdapter],
        reference: ExchangeAdapter | None,
    ) -> None:
        targets = list(adapters)
        if reference is not None and reference not in targets:
            targets.append(reference)
        for adapter in targets:
            try:
                await adapter.close()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Failed to close %s adapter", adapter.name)

    def latest_opportunities(self) -> List[dict[str, Any]]:
        return [item.to_dict() for item in self._state.latest_opportunities()]

    def depth_payload(self, symbol: str) -> dict[str, Any] | None:
        depth = self._state.depth(symbol.upper())
        return depth.to_dict() if depth else None

    def statistics_payload(self) -> List[dict[str, Any]]:
        volumes = self._state.volume_equivalences()
        rows: List[dict[str, Any]] = []
        for symbol, stat in sorted(self._state.statistics().items()):
            row = stat.to_dict()
            volume = volumes.get(symbol)
            row["stable_volume"] = volume.stable_volume if volume else None
            rows.append(row)
        return rows

    def subscribers_payload(self) -> List[dict[str, Any]]:
        return [item.to_dict() for item in self._registry.snapshot()]

    def telemetry_backlog(self, limit: int = 50, prefix: str | None = None) -> List[dict[str, Any]]:
        return list(self._telemetry.tail(limit, prefix=prefix))

    def state_payload(self) -> dict[str, Any]:
        report = self._last_report
        return {
            "last_fast_cycle": self._last_fast_cycle.isoformat() if self._last_fast_cycle else None,
            "exchanges": [adapter.name for adapter in self._adapters],
            "reference_exchange": self._reference.name if self._reference else None,
            "exchange_status": list(self._last_exchange_status),
            "cache": self._state.status(),
            "jobs": self._scheduler.jobs_status(),
            "routing": report.counts() if report else None,
            "subscribers": {
                mode.label: sum(1 for item in self._registry.snapshot() if item.mode is mode)
                for mode in BotMode
            },
            "renotify_policy": self._router.policy.value,
            "events": self.telemetry_backlog(20),
            "event_counts": self._telemetry.counts(),
        }


def _active_adapters(enabled: Sequence[str]) -> List[ExchangeAdapter]:
    adapters: List[ExchangeAdapter] = []
    seen: set[str] = set()
    for name in enabled:
        canonical = normalize_exchange_name(name)
        if canonical in seen:
            continue
        seen.add(canonical)
        try:
            adapters.append(get_adapter(canonical))
        except KeyError:
            logger.warning("No adapter implemented for %s", canonical)
    return adapters


def _reference_adapter(adapters: Sequence[ExchangeAdapter]) -> ExchangeAdapter:
    for adapter in adapters:
        if adapter.name == REFERENCE_EXCHANGE:
            return adapter
    return get_adapter(REFERENCE_EXCHANGE)


def _default_notification_sink() -> NotificationSink:
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    if token:
        return TelegramNotificationSink(token)
    logger.info("TELEGRAM_BOT_TOKEN not set; notifications go to the log only")
    return LoggingNotificationSink()


def _default_alert_sink(telemetry: TelemetryClient) -> AlertSink:
    sinks: List[AlertSink] = [LoggingAlertSink(), TelemetryAlertSink(telemetry)]
    email = EmailAlertSink.from_env()
    if email is not None:
        sinks.append(email)
    return FanoutAlertSink(sinks)
