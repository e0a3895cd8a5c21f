from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from alerts.sinks import AlertSink

from .telemetry import TelemetryClient

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class JobState:
    name: str
    interval: float
    job: Job
    alert_after: int = 1
    runs: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_started: Optional[datetime] = None
    last_finished: Optional[datetime] = None
    last_duration: Optional[float] = None
    last_error: Optional[str] = None
    task: Optional[asyncio.Task] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval": self.interval,
            "running": self.task is not None and not self.task.done(),
            "runs": self.runs,
            "failures": self.failures,
            "consecutive_failures": self.consecutive_failures,
            "last_started": _fmt(self.last_started),
            "last_finished": _fmt(self.last_finished),
            "last_duration": self.last_duration,
            "last_error": self.last_error,
        }


class CycleScheduler:
    """Run independent periodic jobs; each job is its own failure domain.

    A job that raises is logged and counted; once ``alert_after``
    consecutive runs have failed the error goes to the alert sink. The loop
    then sleeps and tries again on the next tick.
    """

    def __init__(
        self,
        alert_sink: AlertSink,
        *,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._alert_sink = alert_sink
        self._telemetry = telemetry
        self._jobs: Dict[str, JobState] = {}
        self._running = False

    def add_job(self, name: str, interval: float, job: Job, *, alert_after: int = 1) -> None:
        if name in self._jobs:
            raise ValueError(f"Job '{name}' already registered")
        if interval <= 0:
            raise ValueError("Job interval must be positive")
        self._jobs[name] = JobState(
            name=name,
            interval=interval,
            job=job,
            alert_after=max(alert_after, 1),
        )
        if self._running:
            self._spawn(self._jobs[name])

    def set_interval(self, name: str, interval: float) -> None:
        if interval <= 0:
            raise ValueError("Job interval must be positive")
        self._jobs[name].interval = interval

    def set_alert_after(self, alert_after: int) -> None:
        for state in self._jobs.values():
            state.alert_after = max(alert_after, 1)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for state in self._jobs.values():
            self._spawn(state)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        tasks: List[asyncio.Task] = []
        for state in self._jobs.values():
            if state.task is not None:
                state.task.cancel()
                tasks.append(state.task)
                state.task = None
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_job_once(self, name: str) -> bool:
        """Run ``name`` immediately; return True when it succeeded."""
        return await self._run(self._jobs[name])

    def jobs_status(self) -> List[Dict[str, Any]]:
        return [state.to_dict() for state in self._jobs.values()]

    def _spawn(self, state: JobState) -> None:
        loop = asyncio.get_running_loop()
        state.task = loop.create_task(self._loop(state), name=f"cycle:{state.name}")

    async def _loop(self, state: JobState) -> None:
        while True:
            started = time.monotonic()
            await self._run(state)
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(state.interval - elapsed, 0.0))

    async def _run(self, state: JobState) -> bool:
        state.last_started = datetime.now(timezone.utc)
        started = time.perf_counter()
        try:
            await state.job()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            state.last_duration = time.perf_counter() - started
            state.last_finished = datetime.now(timezone.utc)
            state.runs += 1
            state.failures += 1
            state.consecutive_failures += 1
            state.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("Cycle '%s' failed", state.name)
            self._emit("cycle:failed", {"job": state.name, "error": state.last_error})
            if state.consecutive_failures >= state.alert_after:
                await self._raise_alert(state)
            return False

        state.last_duration = time.perf_counter() - started
        state.last_finished = datetime.now(timezone.utc)
        state.runs += 1
        if state.consecutive_failures:
            logger.info(
                "Cycle '%s' recovered after %s failed runs",
                state.name,
                state.consecutive_failures,
            )
        state.consecutive_failures = 0
        state.last_error = None
        self._emit(
            "cycle:completed",
            {"job": state.name, "duration": round(state.last_duration, 4)},
        )
        return True

    async def _raise_alert(self, state: JobState) -> None:
        subject = f"[{state.name}] cycle failed"
        message = (
            f"{state.last_error}\n"
            f"consecutive failures: {state.consecutive_failures}"
        )
        try:
            await self._alert_sink.raise_alert(subject, message)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Alert sink failed for cycle '%s'", state.name)

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self._telemetry:
            self._telemetry.emit(event, payload)


def _fmt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
