from __future__ import annotations

import unittest
from unittest.mock import AsyncMock

from arbitrage.models import Symbol
from pipeline import MarketStateCache, SnapshotAggregator
from fakes import FakeAdapter


class SnapshotAggregatorTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.state = MarketStateCache()
        self.events: list[tuple[str, dict]] = []

    def _aggregator(self, *adapters, timeout: float = 1.0) -> SnapshotAggregator:
        return SnapshotAggregator(
            adapters,
            self.state,
            timeout=timeout,
            progress_cb=lambda event, payload: self.events.append((event, payload)),
        )

    async def test_failing_adapter_only_shrinks_snapshot(self) -> None:
        aggregator = self._aggregator(
            FakeAdapter("binance", [("BTCUSDT", 100.0, 101.0)]),
            FakeAdapter("whitebit", error=ConnectionError("connection reset")),
            FakeAdapter("kucoin", [("BTCUSDT", 102.0, 103.0)]),
        )
        snapshot = await aggregator.collect()

        self.assertEqual(snapshot.exchange_names, ["binance", "kucoin"])
        self.assertEqual(len(snapshot.failures), 1)
        failure = snapshot.failures[0]
        self.assertEqual(failure.exchange, "whitebit")
        self.assertFalse(failure.ok)
        self.assertIn("connection reset", failure.error)
        statuses = {entry["exchange"]: entry["status"] for entry in snapshot.status_entries()}
        self.assertEqual(statuses, {"binance": "ok", "kucoin": "ok", "whitebit": "failed"})
        self.assertIn("exchange:error", [event for event, _ in self.events])

    async def test_slow_adapter_times_out(self) -> None:
        aggregator = self._aggregator(
            FakeAdapter("binance", [("ETHUSDT", 10.0, 11.0)]),
            FakeAdapter("kucoin", [("ETHUSDT", 12.0, 13.0)], delay=0.5),
            timeout=0.05,
        )
        snapshot = await aggregator.collect()

        self.assertEqual(snapshot.exchange_names, ["binance"])
        self.assertIn("timeout", snapshot.failures[0].error)

    async def test_successful_tickers_are_cached(self) -> None:
        aggregator = self._aggregator(
            FakeAdapter("binance", [("BTCUSDT", 100.0, 101.0), ("ETHUSDT", 10.0, 11.0)]),
            FakeAdapter("kucoin", [("BTCUSDT", 102.0, 103.0)]),
        )
        await aggregator.collect()

        self.assertEqual(len(self.state.book_tickers()), 3)
        cached = self.state.book_ticker("kucoin", "BTCUSDT")
        self.assertIsNotNone(cached)
        self.assertEqual(cached.bid.price, 102.0)
        self.assertEqual(set(self.state.status()["exchanges"]), {"binance", "kucoin"})

    async def test_last_good_value_survives_a_failed_cycle(self) -> None:
        adapter = FakeAdapter("binance", [("BTCUSDT", 100.0, 101.0)])
        aggregator = self._aggregator(adapter)
        await aggregator.collect()
        adapter.error = ConnectionError("down")
        snapshot = await aggregator.collect()

        self.assertTrue(snapshot.is_empty)
        self.assertIsNotNone(self.state.book_ticker("binance", "BTCUSDT"))

    async def test_all_adapters_failing_gives_empty_snapshot(self) -> None:
        aggregator = self._aggregator(
            FakeAdapter("binance", error=RuntimeError("boom")),
            FakeAdapter("kucoin", error=ValueError()),
        )
        snapshot = await aggregator.collect()

        self.assertTrue(snapshot.is_empty)
        self.assertEqual(len(snapshot.failures), 2)
        self.assertEqual(snapshot.failures[1].error, "ValueError")

    async def test_malformed_ticker_payload_only_shrinks_snapshot(self) -> None:
        returns_none = FakeAdapter("whitebit")
        returns_none.fetch_book_tickers = AsyncMock(return_value=None)
        returns_dicts = FakeAdapter("gateio")
        returns_dicts.fetch_book_tickers = AsyncMock(return_value=[{"symbol": "BTCUSDT"}])
        aggregator = self._aggregator(
            FakeAdapter("a", [("BTCUSDT", 100.0, 101.0)]),
            returns_none,
            returns_dicts,
            FakeAdapter("b", [("BTCUSDT", 102.0, 103.0)]),
        )
        snapshot = await aggregator.collect()

        self.assertEqual(snapshot.exchange_names, ["a", "b"])
        self.assertEqual(
            sorted(item.exchange for item in snapshot.failures), ["gateio", "whitebit"]
        )
        self.assertIsNone(self.state.book_ticker("whitebit", "BTCUSDT"))

    async def test_duplicate_symbols_keep_first_ticker(self) -> None:
        aggregator = self._aggregator(
            FakeAdapter("binance", [("BTCUSDT", 100.0, 101.0), ("BTCUSDT", 1.0, 2.0)]),
        )
        snapshot = await aggregator.collect()

        self.assertEqual(snapshot.exchanges[0].tickers["BTCUSDT"].bid.price, 100.0)

    async def test_refresh_symbols_returns_tradeable(self) -> None:
        reference = FakeAdapter(
            "binance",
            symbols=[
                Symbol("BTCUSDT", "BTC", "USDT"),
                Symbol("OLDUSDT", "OLD", "USDT", status="BREAK"),
                Symbol("MARGINONLY", "MAR", "GIN", is_spot_trading_allowed=False),
            ],
        )
        aggregator = SnapshotAggregator([reference], self.state, timeout=1.0)
        tradeable = await aggregator.refresh_symbols()

        self.assertEqual([item.symbol for item in tradeable], ["BTCUSDT"])
        self.assertEqual(len(self.state.symbols()), 3)
        self.assertEqual([item.symbol for item in self.state.tradeable_symbols()], ["BTCUSDT"])

    async def test_refresh_depths_skips_failures(self) -> None:
        reference = FakeAdapter("binance", depth_errors=["ETHUSDT"])
        aggregator = SnapshotAggregator([reference], self.state, timeout=1.0)
        refreshed = await aggregator.refresh_depths(
            ["BTCUSDT", "ETHUSDT", "BTCUSDT", "SOLUSDT"], limit=5, concurrency=2
        )

        self.assertEqual(refreshed, 2)
        self.assertEqual(sorted(reference.depth_calls), ["BTCUSDT", "ETHUSDT", "SOLUSDT"])
        depth = self.state.depth("BTCUSDT")
        self.assertEqual(len(depth.bids), 5)
        self.assertEqual(depth.best_bid.price, 100.0)
        self.assertEqual(depth.best_ask.price, 101.0)
        self.assertIsNone(self.state.depth("ETHUSDT"))

    async def test_explicit_reference_is_used_for_depth(self) -> None:
        polled = FakeAdapter("kucoin")
        reference = FakeAdapter("binance")
        aggregator = SnapshotAggregator([polled], self.state, timeout=1.0, reference=reference)
        await aggregator.refresh_depths(["BTCUSDT"])

        self.assertEqual(reference.depth_calls, ["BTCUSDT"])
        self.assertEqual(polled.depth_calls, [])


if __name__ == "__main__":
    unittest.main()
