from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter, deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

Event = Dict[str, object]
Listener = Callable[[Event], Awaitable[None] | None]


class TelemetryClient:
    """Cycle and alert events: a bounded in-memory tail plus a JSONL log.

    ``emit`` never blocks the caller. File writes and listener callbacks
    happen on a consumer task started by ``start``; events emitted before
    that are queued and flushed on start. The log is rolled over to
    ``<name>.1`` once it grows past ``max_log_bytes``.
    """

    def __init__(
        self,
        log_path: Path | None = None,
        *,
        max_events: int = 500,
        max_log_bytes: int = 5 * 1024 * 1024,
    ) -> None:
        self._log_path = Path(log_path) if log_path is not None else None
        if self._log_path is not None:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._max_log_bytes = max_log_bytes
        self._recent: Deque[Event] = deque(maxlen=max_events)
        self._backlog: Deque[Event] = deque(maxlen=max_events)
        self._counts: Counter[str] = Counter()
        self._listeners: List[Listener] = []
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._consumer_task: asyncio.Task | None = None

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    @property
    def running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    async def start(self) -> None:
        if self.running:
            return
        while self._backlog:
            self._queue.put_nowait(self._backlog.popleft())
        self._consumer_task = asyncio.get_running_loop().create_task(
            self._drain(), name="telemetry"
        )

    async def stop(self) -> None:
        task, self._consumer_task = self._consumer_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def emit(self, event: str, payload: Optional[Dict[str, object]] = None) -> None:
        entry: Event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "payload": payload or {},
        }
        self._recent.append(entry)
        self._counts[event] += 1
        if self.running:
            self._queue.put_nowait(entry)
        else:
            self._backlog.append(entry)

    def register_listener(self, callback: Listener) -> None:
        self._listeners.append(callback)

    def tail(self, limit: int = 50, *, prefix: str | None = None) -> List[Event]:
        """Most recent events, oldest first; ``prefix`` filters on event name."""
        events = list(self._recent)
        if prefix:
            events = [item for item in events if str(item["event"]).startswith(prefix)]
        return events[-limit:] if limit > 0 else []

    def counts(self) -> Dict[str, int]:
        """Events emitted since construction, by name."""
        return dict(self._counts)

    async def _drain(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                if self._log_path is not None:
                    try:
                        await asyncio.to_thread(self._write, entry)
                    except OSError as exc:
                        logger.warning("Telemetry log write failed: %s", exc)
                await self._notify(entry)
            finally:
                self._queue.task_done()

    async def _notify(self, entry: Event) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(entry)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:  # pylint: disable=broad-except
                logger.exception("Telemetry listener failed for %s", entry.get("event"))

    def _write(self, entry: Event) -> None:
        path = self._log_path
        assert path is not None
        if path.exists() and path.stat().st_size >= self._max_log_bytes:
            path.replace(path.with_name(path.name + ".1"))
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, default=str) + "\n")
