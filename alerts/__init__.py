"""Subscriber state, routing decisions and outbound sinks."""

from .router import RenotifyPolicy, RoutingDecision, RoutingReport, SubscriptionRouter
from .sinks import (
    AlertSink,
    EmailAlertSink,
    FanoutAlertSink,
    LoggingAlertSink,
    LoggingNotificationSink,
    NotificationSink,
    TelegramNotificationSink,
    TelemetryAlertSink,
)
from .subscribers import BotMode, Subscriber, SubscriberRegistry

__all__ = [
    "AlertSink",
    "BotMode",
    "EmailAlertSink",
    "FanoutAlertSink",
    "LoggingAlertSink",
    "LoggingNotificationSink",
    "NotificationSink",
    "RenotifyPolicy",
    "RoutingDecision",
    "RoutingReport",
    "Subscriber",
    "SubscriberRegistry",
    "SubscriptionRouter",
    "TelegramNotificationSink",
    "TelemetryAlertSink",
]
