"""Per-type cooldown policy.

An event type with a configured cooldown may fire again only when strictly
more than ``cooldown`` seconds have passed since the last stored event of
that type.  Types without a rule are never throttled.

The policy holds no state of its own: the verdict is a function of the
rule table, the event store contents and the supplied ``now``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping

from tgnotify.models import CooldownRule, ThrottleDecision
from tgnotify.ports import EventStorePort


class DuplicateRuleError(ValueError):
    """Raised when two cooldown rules name the same event type."""


def build_rule_table(rules: Iterable[CooldownRule]) -> dict[str, CooldownRule]:
    table: dict[str, CooldownRule] = {}
    for rule in rules:
        if rule.type in table:
            raise DuplicateRuleError(f"duplicate cooldown rule for type {rule.type!r}")
        table[rule.type] = rule
    return table


class ThrottlePolicy:
    """Decides ALLOW/SUPPRESS for an event type at a point in time."""

    def __init__(self, rules: Iterable[CooldownRule] | Mapping[str, CooldownRule], store: EventStorePort) -> None:
        if isinstance(rules, Mapping):
            rules = rules.values()
        self._rules = build_rule_table(rules)
        self._store = store

    @property
    def rules(self) -> dict[str, CooldownRule]:
        return dict(self._rules)

    def rule_for(self, event_type: str) -> CooldownRule | None:
        return self._rules.get(event_type)

    def evaluate(self, event_type: str, now: datetime) -> ThrottleDecision:
        rule = self._rules.get(event_type)
        if rule is None:
            return ThrottleDecision(allowed=True)

        prior = self._store.most_recent(event_type)
        if prior is None:
            return ThrottleDecision(allowed=True, rule=rule)

        elapsed = (now - prior.timestamp).total_seconds()
        return ThrottleDecision(
            allowed=elapsed > rule.cooldown,
            rule=rule,
            last_seen=prior.timestamp,
            elapsed=elapsed,
        )

    def is_allowed(self, event_type: str, now: datetime) -> bool:
        return self.evaluate(event_type, now).allowed
