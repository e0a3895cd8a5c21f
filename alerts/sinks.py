from __future__ import annotations

import asyncio
import logging
import os
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import TYPE_CHECKING, Iterable, List

import aiohttp

from arbitrage.models import ArbitrageOpportunity

if TYPE_CHECKING:  # pragma: no cover
    from webapp.telemetry import TelemetryClient

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Receives opportunities chosen for a subscriber. Best effort."""

    @abstractmethod
    async def notify(self, chat_id: int, opportunity: ArbitrageOpportunity) -> None:
        ...

    async def close(self) -> None:
        return None


class AlertSink(ABC):
    """Receives operational failures (a cycle that raised)."""

    @abstractmethod
    async def raise_alert(self, subject: str, message: str) -> None:
        ...


def describe_opportunity(opportunity: ArbitrageOpportunity) -> str:
    return (
        f"{opportunity.symbol}: buy on {opportunity.buy_exchange} at {opportunity.buy_price:g}, "
        f"sell on {opportunity.sell_exchange} at {opportunity.sell_price:g} "
        f"({opportunity.profit_percentage:.2f}%)"
    )


class LoggingNotificationSink(NotificationSink):
    def __init__(self, logger_name: str = "alerts.notifications") -> None:
        self._logger = logging.getLogger(logger_name)

    async def notify(self, chat_id: int, opportunity: ArbitrageOpportunity) -> None:
        self._logger.info("[%s] %s", chat_id, describe_opportunity(opportunity))


class TelegramNotificationSink(NotificationSink):
    """Send each opportunity as a Telegram Bot API ``sendMessage`` call."""

    api_url = "https://api.telegram.org"

    def __init__(
        self,
        token: str,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not token:
            raise ValueError("Telegram bot token is required")
        self._token = token
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout

    async def notify(self, chat_id: int, opportunity: ArbitrageOpportunity) -> None:
        session = self._ensure_session()
        url = f"{self.api_url}/bot{self._token}/sendMessage"
        payload = {"chat_id": chat_id, "text": describe_opportunity(opportunity)}
        async with session.post(url, json=payload) as resp:
            if resp.status != 200:
                body = await resp.text()
                raise RuntimeError(f"Telegram sendMessage failed ({resp.status}): {body[:200]}")

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
            self._owns_session = True
        return self._session


class LoggingAlertSink(AlertSink):
    async def raise_alert(self, subject: str, message: str) -> None:
        logger.error("ALERT %s: %s", subject, message)


class TelemetryAlertSink(AlertSink):
    def __init__(self, telemetry: "TelemetryClient") -> None:
        self._telemetry = telemetry

    async def raise_alert(self, subject: str, message: str) -> None:
        self._telemetry.emit("alert", {"subject": subject, "message": message})


class EmailAlertSink(AlertSink):
    """Operational e-mail over SMTP; the blocking send runs in a worker thread."""

    def __init__(
        self,
        host: str,
        *,
        port: int = 587,
        sender: str,
        recipients: Iterable[str],
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 15.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._recipients = [item for item in recipients if item]
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout
        if not self._recipients:
            raise ValueError("EmailAlertSink needs at least one recipient")

    @classmethod
    def from_env(cls) -> "EmailAlertSink | None":
        host = os.getenv("SMTP_HOST")
        recipients = os.getenv("ALERT_EMAIL_TO")
        if not host or not recipients:
            return None
        username = os.getenv("SMTP_USER")
        return cls(
            host,
            port=int(os.getenv("SMTP_PORT", "587")),
            sender=os.getenv("ALERT_EMAIL_FROM") or username or "arbitrage-monitor@localhost",
            recipients=[item.strip() for item in recipients.split(",")],
            username=username,
            password=os.getenv("SMTP_PASSWORD"),
        )

    async def raise_alert(self, subject: str, message: str) -> None:
        await asyncio.to_thread(self._send, subject, message)

    def _send(self, subject: str, message: str) -> None:
        email = EmailMessage()
        email["Subject"] = subject
        email["From"] = self._sender
        email["To"] = ", ".join(self._recipients)
        email.set_content(message)
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as client:
            if self._use_tls:
                client.starttls()
            if self._username and self._password:
                client.login(self._username, self._password)
            client.send_message(email)


class FanoutAlertSink(AlertSink):
    """Deliver to every sink; one failing sink does not stop the others."""

    def __init__(self, sinks: Iterable[AlertSink]) -> None:
        self._sinks: List[AlertSink] = list(sinks)

    async def raise_alert(self, subject: str, message: str) -> None:
        for sink in self._sinks:
            try:
                await sink.raise_alert(subject, message)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Alert sink %s failed", type(sink).__name__)
