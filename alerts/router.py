from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Sequence, Set, Tuple

from arbitrage.models import ArbitrageOpportunity

from .sinks import NotificationSink
from .subscribers import BotMode, Subscriber, SubscriberRegistry

logger = logging.getLogger(__name__)

OpportunityKey = Tuple[str, str, str]

SEND = "send"
BELOW_THRESHOLD = "below_threshold"
DUPLICATE = "duplicate"


class RenotifyPolicy(str, Enum):
    """What to do with an opportunity already seen in the previous cycle."""

    ALWAYS = "always"  # resend every cycle
    ON_CHANGE = "on_change"  # resend only when buy or sell price moved
    NEW_ONLY = "new_only"  # send once per uninterrupted streak

    @classmethod
    def parse(cls, value: "str | RenotifyPolicy") -> "RenotifyPolicy":
        if isinstance(value, RenotifyPolicy):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown renotify policy '{value}'") from exc


@dataclass(slots=True, frozen=True)
class RoutingDecision:
    chat_id: int
    opportunity: ArbitrageOpportunity
    action: str

    @property
    def send(self) -> bool:
        return self.action == SEND


@dataclass(slots=True)
class RoutingReport:
    decisions: List[RoutingDecision] = field(default_factory=list)
    delivered: int = 0
    failed: int = 0

    @property
    def to_send(self) -> List[RoutingDecision]:
        return [item for item in self.decisions if item.send]

    def counts(self) -> Dict[str, int]:
        result: Dict[str, int] = {SEND: 0, BELOW_THRESHOLD: 0, DUPLICATE: 0}
        for item in self.decisions:
            result[item.action] = result.get(item.action, 0) + 1
        result["delivered"] = self.delivered
        result["failed"] = self.failed
        return result


def default_thresholds() -> Dict[BotMode, float]:
    return {
        mode: mode.min_profit_percentage
        for mode in BotMode
        if mode.min_profit_percentage is not None
    }


class SubscriptionRouter:
    """Decide which subscriber hears about which opportunity, then deliver."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        sink: NotificationSink,
        *,
        thresholds: Mapping[BotMode | str, float] | None = None,
        policy: RenotifyPolicy | str = RenotifyPolicy.ON_CHANGE,
    ) -> None:
        self._registry = registry
        self._sink = sink
        self._thresholds: Dict[BotMode, float] = default_thresholds()
        if thresholds:
            self.update_thresholds(thresholds)
        self._policy = RenotifyPolicy.parse(policy)
        self._previous: Dict[int, Dict[OpportunityKey, ArbitrageOpportunity]] = {}

    @property
    def policy(self) -> RenotifyPolicy:
        return self._policy

    def set_policy(self, policy: RenotifyPolicy | str) -> None:
        self._policy = RenotifyPolicy.parse(policy)

    def update_thresholds(self, thresholds: Mapping[BotMode | str, float]) -> None:
        for mode, value in thresholds.items():
            self._thresholds[BotMode.parse(mode)] = float(value)

    def threshold_for(self, mode: BotMode) -> float | None:
        if not mode.receives_alerts:
            return None
        return self._thresholds.get(mode, mode.min_profit_percentage)

    def decide(
        self,
        opportunities: Sequence[ArbitrageOpportunity],
        subscribers: Iterable[Subscriber] | None = None,
    ) -> List[RoutingDecision]:
        """Return one decision per (alerting subscriber, opportunity) pair."""

        if subscribers is None:
            subscribers = self._registry.snapshot()
        decisions: list[RoutingDecision] = []
        for subscriber in subscribers:
            threshold = self.threshold_for(subscriber.mode)
            if threshold is None:
                continue
            previous = self._previous.get(subscriber.chat_id, {})
            for opportunity in opportunities:
                if opportunity.profit_percentage < threshold:
                    action = BELOW_THRESHOLD
                elif self._is_repeat(previous.get(opportunity.key), opportunity):
                    action = DUPLICATE
                else:
                    action = SEND
                decisions.append(RoutingDecision(subscriber.chat_id, opportunity, action))
        return decisions

    async def route(self, opportunities: Sequence[ArbitrageOpportunity]) -> RoutingReport:
        subscribers = self._registry.snapshot()
        decisions = self.decide(opportunities, subscribers)

        report = RoutingReport(decisions=decisions)
        undelivered: Set[Tuple[int, OpportunityKey]] = set()
        for decision in report.to_send:
            try:
                await self._sink.notify(decision.chat_id, decision.opportunity)
            except Exception:  # pylint: disable=broad-except
                report.failed += 1
                undelivered.add((decision.chat_id, decision.opportunity.key))
                logger.exception(
                    "Notification to %s failed for %s",
                    decision.chat_id,
                    decision.opportunity.symbol,
                )
            else:
                report.delivered += 1
        self._remember(subscribers, decisions, undelivered)
        if report.decisions:
            logger.info("Routing summary: %s", report.counts())
        return report

    def _is_repeat(
        self,
        previous: ArbitrageOpportunity | None,
        current: ArbitrageOpportunity,
    ) -> bool:
        if previous is None or self._policy is RenotifyPolicy.ALWAYS:
            return False
        if self._policy is RenotifyPolicy.NEW_ONLY:
            return True
        return (
            previous.buy_price == current.buy_price
            and previous.sell_price == current.sell_price
        )

    def _remember(
        self,
        subscribers: Sequence[Subscriber],
        decisions: Sequence[RoutingDecision],
        undelivered: Set[Tuple[int, OpportunityKey]],
    ) -> None:
        """Keep what each subscriber has actually seen; failed sends are retried next cycle."""

        current: Dict[int, Dict[OpportunityKey, ArbitrageOpportunity]] = {}
        for subscriber in subscribers:
            if subscriber.mode.receives_alerts:
                current[subscriber.chat_id] = {}
        for decision in decisions:
            if decision.action == BELOW_THRESHOLD:
                continue
            if (decision.chat_id, decision.opportunity.key) in undelivered:
                continue
            current[decision.chat_id][decision.opportunity.key] = decision.opportunity
        self._previous = current
