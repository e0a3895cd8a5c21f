from __future__ import annotations

import importlib
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

try:
    from fastapi.testclient import TestClient
except (ImportError, RuntimeError):  # pragma: no cover - httpx missing
    TestClient = None

from project_settings import SettingsManager
from webapp.app import create_app
from webapp.services import ArbitrageService
from webapp.telemetry import TelemetryClient
from fakes import FakeAdapter, RecordingAlertSink, RecordingSink


@unittest.skipIf(TestClient is None, "httpx is required for API tests")
class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        binance = FakeAdapter("binance", [("BTCUSDT", 100.0, 101.0)])
        kucoin = FakeAdapter("kucoin", [("BTCUSDT", 103.0, 104.0)])
        self.sink = RecordingSink()
        self.service = ArbitrageService(
            SettingsManager(path=Path(self.tmp.name) / "settings.json"),
            adapters=[binance, kucoin],
            reference=binance,
            notification_sink=self.sink,
            alert_sink=RecordingAlertSink(),
            telemetry=TelemetryClient(),
        )
        self.client = TestClient(create_app(self.service))
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        self.tmp.cleanup()

    def test_refresh_and_list_opportunities(self) -> None:
        response = self.client.post("/api/refresh")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "completed")

        rows = self.client.get("/api/opportunities").json()["opportunities"]
        self.assertEqual(rows[0]["symbol"], "BTCUSDT")
        self.assertEqual(rows[0]["buy_exchange"], "binance")
        self.assertAlmostEqual(rows[0]["profit_percentage"], 1.980198, places=5)

    def test_status(self) -> None:
        payload = self.client.get("/api/status").json()
        self.assertEqual(payload["exchanges"], ["binance", "kucoin"])
        self.assertIn("jobs", payload)

    def test_select_mode(self) -> None:
        response = self.client.post("/api/subscribers/7/mode", json={"mode": "/start_alerting"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["subscriber"]["mode"], "alerting")

        bad = self.client.post("/api/subscribers/7/mode", json={"mode": "/start_trading"})
        self.assertEqual(bad.status_code, 400)

        subscribers = self.client.get("/api/subscribers").json()["subscribers"]
        self.assertEqual([item["chat_id"] for item in subscribers], [7])

    def test_events_filtered_by_prefix(self) -> None:
        self.client.post("/api/refresh")
        events = self.client.get("/api/events", params={"prefix": "cycle:"}).json()["events"]
        self.assertTrue(events)
        self.assertTrue(all(item["event"].startswith("cycle:") for item in events))

    def test_unknown_depth_is_404(self) -> None:
        self.assertEqual(self.client.get("/api/depth/NOPEUSDT").status_code, 404)

    def test_settings_roundtrip(self) -> None:
        response = self.client.post("/api/settings", json={"renotify_policy": "new_only"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["settings"]["renotify_policy"], "new_only")

        invalid = self.client.post("/api/settings", json={"renotify_policy": "sometimes"})
        self.assertEqual(invalid.status_code, 400)
        out_of_range = self.client.post("/api/settings", json={"fast_cycle_seconds": 0})
        self.assertEqual(out_of_range.status_code, 422)
        current = self.client.get("/api/settings").json()["settings"]
        self.assertEqual(current["renotify_policy"], "new_only")


class AppFactoryTestCase(unittest.TestCase):
    def test_import_does_not_build_a_service(self) -> None:
        import webapp.app as app_module

        try:
            with patch("webapp.services.ArbitrageService") as factory:
                importlib.reload(app_module)
                factory.assert_not_called()
                self.assertFalse(hasattr(app_module, "app"))
                app_module.create_app()
                factory.assert_called_once_with()
        finally:
            importlib.reload(app_module)


if __name__ == "__main__":
    unittest.main()
