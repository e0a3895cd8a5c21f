from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime, timezone
from typing import Sequence

from arbitrage import detect_opportunities, format_opportunity_table
from exchanges import ExchangeAdapter, get_adapter, normalize_exchange_name
from pipeline import MarketStateCache, SnapshotAggregator
from project_settings import SettingsManager
from utils import setup_logging
from webapp import ArbitrageService


async def scan_once(exchanges: Sequence[str], *, timeout: float, min_profit: float) -> int:
    adapters: list[ExchangeAdapter] = []
    for name in exchanges:
        try:
            adapters.append(get_adapter(normalize_exchange_name(name)))
        except KeyError:
            logging.warning("No adapter implemented for %s", name)
    if not adapters:
        logging.error("No exchange adapters available")
        return 1

    aggregator = SnapshotAggregator(adapters, MarketStateCache(), timeout=timeout)
    try:
        snapshot = await aggregator.collect()
    finally:
        for adapter in adapters:
            await adapter.close()

    for entry in snapshot.status_entries():
        logging.info(
            "%s: %s (%s tickers)%s",
            entry["exchange"],
            entry["status"],
            entry["count"],
            f" - {entry['error']}" if entry["error"] else "",
        )

    opportunities = [
        item for item in detect_opportunities(snapshot) if item.profit_percentage >= min_profit
    ]
    if not opportunities:
        logging.warning("No arbitrage opportunities detected")
        return 0

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    print(f"=== Arbitrage Opportunities ({stamp}) ===")
    print(format_opportunity_table(opportunities))
    return 0


async def run_forever(watch: Sequence[int]) -> None:
    service = ArbitrageService()
    for chat_id in watch:
        service.select_mode(chat_id, "alerting")
    await service.startup()
    try:
        await asyncio.Event().wait()
    finally:
        await service.shutdown()


def main(argv: Sequence[str] | None = None) -> int:
    settings = SettingsManager().current
    parser = argparse.ArgumentParser(description="Cross-exchange arbitrage monitor")
    parser.add_argument(
        "--loop",
        action="store_true",
        help="run the fast and slow cycles until interrupted",
    )
    parser.add_argument(
        "--exchanges",
        nargs="+",
        default=settings.enabled_exchanges(),
        help="exchanges to poll for a one-shot scan",
    )
    parser.add_argument("--timeout", type=float, default=settings.adapter_timeout_seconds)
    parser.add_argument(
        "--min-profit",
        type=float,
        default=0.0,
        help="hide opportunities below this profit percentage",
    )
    parser.add_argument(
        "--watch",
        type=int,
        nargs="*",
        default=[],
        help="chat ids to put in alerting mode when running with --loop",
    )
    args = parser.parse_args(argv)

    setup_logging()
    try:
        if args.loop:
            asyncio.run(run_forever(args.watch))
            return 0
        return asyncio.run(
            scan_once(args.exchanges, timeout=args.timeout, min_profit=args.min_profit)
        )
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
