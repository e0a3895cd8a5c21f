from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from alerts import EmailAlertSink, FanoutAlertSink, LoggingNotificationSink, TelemetryAlertSink
from alerts.sinks import describe_opportunity
from webapp.telemetry import TelemetryClient
from fakes import RecordingAlertSink, opportunity


class SinkTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_describe_opportunity(self) -> None:
        text = describe_opportunity(opportunity(buy_price=98.0, sell_price=101.0))
        self.assertIn("buy on binance at 98", text)
        self.assertIn("sell on kucoin at 101", text)
        self.assertIn("3.06%", text)

    async def test_logging_sink_logs_message(self) -> None:
        with self.assertLogs("alerts.notifications", level="INFO") as captured:
            await LoggingNotificationSink().notify(5, opportunity())
        self.assertIn("[5]", captured.output[0])

    async def test_fanout_continues_after_failing_sink(self) -> None:
        healthy = RecordingAlertSink()
        sink = FanoutAlertSink([RecordingAlertSink(fail=True), healthy])
        await sink.raise_alert("subject", "message")
        self.assertEqual(healthy.alerts, [("subject", "message")])

    async def test_telemetry_sink_emits_event(self) -> None:
        telemetry = TelemetryClient()
        await TelemetryAlertSink(telemetry).raise_alert("[slow] cycle failed", "boom")
        event = list(telemetry.tail())[-1]
        self.assertEqual(event["event"], "alert")
        self.assertEqual(event["payload"]["subject"], "[slow] cycle failed")


class EmailAlertSinkTestCase(unittest.TestCase):
    def test_from_env_requires_host_and_recipients(self) -> None:
        with patch.dict(os.environ, {"SMTP_HOST": "", "ALERT_EMAIL_TO": ""}):
            self.assertIsNone(EmailAlertSink.from_env())

    def test_from_env_builds_sink(self) -> None:
        env = {
            "SMTP_HOST": "smtp.example.com",
            "SMTP_PORT": "2525",
            "SMTP_USER": "bot@example.com",
            "ALERT_EMAIL_TO": "ops@example.com, dev@example.com",
            "ALERT_EMAIL_FROM": "",
        }
        with patch.dict(os.environ, env):
            sink = EmailAlertSink.from_env()
        self.assertIsNotNone(sink)

    def test_recipients_required(self) -> None:
        with self.assertRaises(ValueError):
            EmailAlertSink("smtp.example.com", sender="bot@example.com", recipients=[""])


if __name__ == "__main__":
    unittest.main()
