from __future__ import annotations

import unittest
from datetime import datetime, timezone

from arbitrage.models import ArbitrageOpportunity, BookTicker, MarketSnapshot
from arbitrage.opportunities import detect_opportunities, format_opportunity_table
from fakes import snapshot, ticker


class DetectOpportunitiesTestCase(unittest.TestCase):
    def test_cross_exchange_example(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=101.0, ask=100.0)]),
            ("b", [ticker("b", "XYZ", bid=99.0, ask=98.0)]),
        )
        result = detect_opportunities(snap)
        self.assertEqual(len(result), 1)
        item = result[0]
        self.assertEqual(item.buy_exchange, "b")
        self.assertEqual(item.sell_exchange, "a")
        self.assertEqual(item.buy_price, 98.0)
        self.assertEqual(item.sell_price, 101.0)
        self.assertAlmostEqual(item.profit_percentage, 3.0612244898, places=6)

    def test_single_exchange_symbol_is_skipped(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "ONLYA", bid=120.0, ask=100.0)]),
            ("b", [ticker("b", "OTHER", bid=10.0, ask=9.0)]),
        )
        self.assertEqual(detect_opportunities(snap), [])

    def test_same_exchange_best_bid_and_ask_emits_nothing(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=105.0, ask=95.0)]),
            ("b", [ticker("b", "XYZ", bid=100.0, ask=101.0)]),
        )
        self.assertEqual(detect_opportunities(snap), [])

    def test_no_profit_emits_nothing(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=99.0, ask=100.0)]),
            ("b", [ticker("b", "XYZ", bid=100.0, ask=101.0)]),
        )
        # best bid 100 on b equals lowest ask 100 on a
        self.assertEqual(detect_opportunities(snap), [])

    def test_one_opportunity_per_symbol(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=90.0, ask=91.0)]),
            ("b", [ticker("b", "XYZ", bid=95.0, ask=96.0)]),
            ("c", [ticker("c", "XYZ", bid=99.0, ask=100.0)]),
        )
        result = detect_opportunities(snap)
        self.assertEqual(len(result), 1)
        self.assertEqual((result[0].buy_exchange, result[0].sell_exchange), ("a", "c"))

    def test_missing_side_excludes_exchange_only(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=None, ask=90.0)]),
            ("b", [ticker("b", "XYZ", bid=95.0, ask=None)]),
            ("c", [ticker("c", "XYZ", bid=None, ask=None)]),
        )
        result = detect_opportunities(snap)
        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].buy_exchange, "a")
        self.assertEqual(result[0].sell_exchange, "b")

    def test_symbol_with_no_usable_side_is_skipped(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=None, ask=None)]),
            ("b", [ticker("b", "XYZ", bid=95.0, ask=None)]),
        )
        self.assertEqual(detect_opportunities(snap), [])

    def test_ties_prefer_first_exchange_in_snapshot_order(self) -> None:
        first = snapshot(
            ("a", [ticker("a", "XYZ", bid=90.0, ask=95.0)]),
            ("b", [ticker("b", "XYZ", bid=90.0, ask=95.0)]),
            ("c", [ticker("c", "XYZ", bid=97.0, ask=99.0)]),
        )
        second = snapshot(
            ("b", [ticker("b", "XYZ", bid=90.0, ask=95.0)]),
            ("a", [ticker("a", "XYZ", bid=90.0, ask=95.0)]),
            ("c", [ticker("c", "XYZ", bid=97.0, ask=99.0)]),
        )
        self.assertEqual(detect_opportunities(first)[0].buy_exchange, "a")
        self.assertEqual(detect_opportunities(second)[0].buy_exchange, "b")

    def test_profit_is_always_positive_and_recomputed(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "AAA", 10.5, 10.0), ticker("a", "BBB", 2.0, 2.1)]),
            ("b", [ticker("b", "AAA", 9.0, 9.5), ticker("b", "BBB", 2.3, 2.4)]),
        )
        result = detect_opportunities(snap)
        self.assertEqual([item.symbol for item in result], ["AAA", "BBB"])
        for item in result:
            self.assertGreater(item.profit_percentage, 0)
            self.assertAlmostEqual(
                item.profit_percentage,
                (item.sell_price - item.buy_price) / item.buy_price * 100,
            )

    def test_non_finite_quotes_are_ignored(self) -> None:
        snap = snapshot(
            ("a", [BookTicker.from_raw("a", "XYZ", bid_price="NaN", ask_price="NaN")]),
            ("b", [ticker("b", "XYZ", bid=99.0, ask=98.0)]),
            ("c", [ticker("c", "XYZ", bid=101.0, ask=100.0)]),
        )
        result = detect_opportunities(snap)
        self.assertEqual(
            [(item.buy_exchange, item.sell_exchange) for item in result], [("b", "c")]
        )

    def test_nan_ask_does_not_become_the_lowest_ask(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=50.0, ask=float("nan"))]),
            ("c", [ticker("c", "XYZ", bid=101.0, ask=100.0)]),
        )
        self.assertEqual(detect_opportunities(snap), [])

    def test_infinite_bid_is_ignored(self) -> None:
        snap = snapshot(
            ("a", [BookTicker.from_raw("a", "XYZ", bid_price="inf", ask_price="97")]),
            ("b", [ticker("b", "XYZ", bid=99.0, ask=98.0)]),
            ("c", [ticker("c", "XYZ", bid=float("inf"), ask=100.0)]),
        )
        result = detect_opportunities(snap)
        self.assertEqual(len(result), 1)
        self.assertEqual((result[0].buy_exchange, result[0].sell_exchange), ("a", "b"))
        self.assertAlmostEqual(result[0].profit_percentage, 2.0618556701, places=6)

    def test_empty_snapshot(self) -> None:
        empty = MarketSnapshot(generated_at=datetime.now(timezone.utc))
        self.assertEqual(detect_opportunities(empty), [])

    def test_detection_timestamp_is_shared(self) -> None:
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=101.0, ask=100.0)]),
            ("b", [ticker("b", "XYZ", bid=99.0, ask=98.0)]),
        )
        self.assertEqual(detect_opportunities(snap, now=now)[0].detected_at, now)

    def test_format_table_lists_rows(self) -> None:
        snap = snapshot(
            ("a", [ticker("a", "XYZ", bid=101.0, ask=100.0)]),
            ("b", [ticker("b", "XYZ", bid=99.0, ask=98.0)]),
        )
        table = format_opportunity_table(detect_opportunities(snap))
        self.assertIn("XYZ", table)
        self.assertIn("3.061%", table)


class ArbitrageOpportunityTestCase(unittest.TestCase):
    def test_rejects_same_exchange(self) -> None:
        with self.assertRaises(ValueError):
            ArbitrageOpportunity("XYZ", "a", "a", 1.0, 2.0)

    def test_rejects_non_positive_spread(self) -> None:
        with self.assertRaises(ValueError):
            ArbitrageOpportunity("XYZ", "a", "b", 2.0, 2.0)
        with self.assertRaises(ValueError):
            ArbitrageOpportunity("XYZ", "a", "b", 2.0, 1.0)

    def test_rejects_non_finite_prices(self) -> None:
        with self.assertRaises(ValueError):
            ArbitrageOpportunity("XYZ", "a", "b", float("nan"), 101.0)
        with self.assertRaises(ValueError):
            ArbitrageOpportunity("XYZ", "a", "b", 100.0, float("nan"))
        with self.assertRaises(ValueError):
            ArbitrageOpportunity("XYZ", "a", "b", 100.0, float("inf"))


class BookTickerTestCase(unittest.TestCase):
    def test_from_raw_maps_bad_prices_to_missing(self) -> None:
        item = BookTicker.from_raw(
            "kucoin",
            "btc-usdt",
            bid_price="0",
            bid_qty="1",
            ask_price="not-a-number",
        )
        self.assertEqual(item.symbol, "BTCUSDT")
        self.assertIsNone(item.bid)
        self.assertIsNone(item.ask)
        self.assertTrue(item.is_empty)

    def test_from_raw_maps_non_finite_prices_to_missing(self) -> None:
        for raw in ("nan", "NaN", "inf", "-Infinity"):
            item = BookTicker.from_raw("binance", "XYZ", bid_price=raw, ask_price=raw)
            self.assertIsNone(item.bid, raw)
            self.assertIsNone(item.ask, raw)

    def test_from_raw_parses_quotes(self) -> None:
        item = BookTicker.from_raw(
            "binance", "ETHUSDT", bid_price="1800.5", bid_qty="2", ask_price="1801", ask_qty=None
        )
        self.assertEqual(item.bid.price, 1800.5)
        self.assertEqual(item.bid.quantity, 2.0)
        self.assertEqual(item.ask.price, 1801.0)
        self.assertEqual(item.ask.quantity, 0.0)


if __name__ == "__main__":
    unittest.main()
