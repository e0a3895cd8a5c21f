"""Scheduler, service wiring and the FastAPI status application."""

from .scheduler import CycleScheduler
from .services import ArbitrageService
from .telemetry import TelemetryClient

__all__ = ["ArbitrageService", "CycleScheduler", "TelemetryClient"]
