from __future__ import annotations

import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple


class BotMode(Enum):
    """Subscriber mode with the data attached to each variant."""

    ALERTING = ("alerting", 1.0, "/start_alerting", 0.1)
    SUSPENDED = ("suspended", math.inf, "/stop", None)

    def __init__(
        self,
        label: str,
        job_interval: float,
        command: str,
        min_profit_percentage: float | None,
    ) -> None:
        self.label = label
        self.job_interval = job_interval  # seconds
        self.command = command
        self.min_profit_percentage = min_profit_percentage

    @property
    def receives_alerts(self) -> bool:
        return self.min_profit_percentage is not None

    @classmethod
    def parse(cls, value: "str | BotMode") -> "BotMode":
        if isinstance(value, BotMode):
            return value
        key = str(value).strip().lower()
        for mode in cls:
            if key in (mode.label, mode.command):
                return mode
        raise ValueError(f"Unknown bot mode '{value}'")


@dataclass(slots=True, frozen=True)
class Subscriber:
    chat_id: int
    mode: BotMode
    mode_changed_at: datetime
    username: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "chat_id": self.chat_id,
            "mode": self.mode.label,
            "mode_changed_at": self.mode_changed_at.isoformat(),
            "username": self.username,
        }


class SubscriberRegistry:
    """Thread-safe subscriber store mutated by the command layer."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Subscriber] = {}

    def select_mode(
        self,
        chat_id: int,
        mode: BotMode | str,
        *,
        username: str | None = None,
        now: datetime | None = None,
    ) -> Subscriber:
        selected = BotMode.parse(mode)
        changed_at = now or datetime.now(timezone.utc)
        with self._lock:
            current = self._subscribers.get(chat_id)
            if current is None:
                subscriber = Subscriber(
                    chat_id=chat_id,
                    mode=selected,
                    mode_changed_at=changed_at,
                    username=username,
                )
            else:
                subscriber = replace(
                    current,
                    mode=selected,
                    mode_changed_at=changed_at,
                    username=username or current.username,
                )
            self._subscribers[chat_id] = subscriber
        return subscriber

    def stop(self, chat_id: int, *, now: datetime | None = None) -> Optional[Subscriber]:
        """Suspend every mode for ``chat_id``; unknown chats are ignored."""
        changed_at = now or datetime.now(timezone.utc)
        with self._lock:
            current = self._subscribers.get(chat_id)
            if current is None:
                return None
            subscriber = replace(current, mode=BotMode.SUSPENDED, mode_changed_at=changed_at)
            self._subscribers[chat_id] = subscriber
        return subscriber

    def remove(self, chat_id: int) -> bool:
        with self._lock:
            return self._subscribers.pop(chat_id, None) is not None

    def get(self, chat_id: int) -> Optional[Subscriber]:
        with self._lock:
            return self._subscribers.get(chat_id)

    def snapshot(self) -> Tuple[Subscriber, ...]:
        with self._lock:
            return tuple(self._subscribers.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)
