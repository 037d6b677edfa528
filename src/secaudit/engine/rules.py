"""Rule engine — matches recorded events against the security rule set.

Rules live in a mapping keyed by id.  Evaluation walks a snapshot of that
mapping, so ``add_rule``/``remove_rule`` may run concurrently with it.
Each rule is evaluated in isolation: a condition that raises is logged
and only that rule is skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import lru_cache
from threading import Lock
from typing import Any

from secaudit.engine.dispatch import ActionDispatcher
from secaudit.engine.windows import SlidingWindows
from secaudit.models.events import AuditEvent
from secaudit.models.events import AuditEventType
from secaudit.models.events import Outcome
from secaudit.models.events import Severity
from secaudit.models.fields import compile_field_path
from secaudit.models.rules import AlertAction
from secaudit.models.rules import AnomalyCondition
from secaudit.models.rules import BlockAction
from secaudit.models.rules import FrequencyCondition
from secaudit.models.rules import LogAction
from secaudit.models.rules import PatternCondition
from secaudit.models.rules import RuleCondition
from secaudit.models.rules import SecurityRule
from secaudit.models.rules import ThresholdCondition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleMatch:
    """One rule that matched one event."""

    rule_id: str
    event_id: str
    actions_dispatched: int


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


@lru_cache(maxsize=256)
def _compile_regex(pattern: str, ignore_case: bool) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE if ignore_case else 0)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if number != number else number


def compare_numeric(operator: str, actual: Any, expected: Any) -> bool:
    left = _as_float(actual)
    right = _as_float(expected)
    if left is None or right is None:
        return False
    if operator == "gt":
        return left > right
    if operator == "lt":
        return left < right
    if operator == "gte":
        return left >= right
    if operator == "lte":
        return left <= right
    raise ValueError(f"Unsupported numeric operator '{operator}'")


def apply_operator(
    operator: str, actual: Any, expected: Any, *, ignore_case: bool = False
) -> bool:
    """Apply a condition operator to a resolved field value."""
    actual = _plain(actual)
    if operator == "equals":
        return actual == _plain(expected)
    if operator == "contains":
        if actual is None:
            return False
        if ignore_case:
            return str(expected).lower() in str(actual).lower()
        return str(expected) in str(actual)
    if operator == "regex":
        if actual is None:
            return False
        return _compile_regex(str(expected), ignore_case).search(str(actual)) is not None
    return compare_numeric(operator, actual, expected)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class RuleEngine:
    """Holds the rule set and evaluates events against it."""

    def __init__(
        self,
        dispatcher: ActionDispatcher,
        *,
        rules: list[SecurityRule] | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._lock = Lock()
        self._rules: dict[str, SecurityRule] = {}
        self._windows = SlidingWindows()
        for rule in rules or []:
            self._rules[rule.id] = rule

    # -- rule set --

    def add_rule(self, rule: SecurityRule) -> None:
        """Insert *rule*, replacing any rule with the same id."""
        with self._lock:
            replaced = self._rules.get(rule.id)
            self._rules[rule.id] = rule
        if replaced is not None:
            self._forget_windows(rule.id)
        logger.info("Added security rule id=%s name=%r", rule.id, rule.name)

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule by id; return whether it existed."""
        with self._lock:
            removed = self._rules.pop(rule_id, None)
        if removed is None:
            return False
        self._forget_windows(rule_id)
        logger.info("Removed security rule id=%s", rule_id)
        return True

    def get_rule(self, rule_id: str) -> SecurityRule | None:
        with self._lock:
            return self._rules.get(rule_id)

    def rules(self) -> list[SecurityRule]:
        with self._lock:
            return list(self._rules.values())

    def _forget_windows(self, rule_id: str) -> None:
        self._windows.discard(lambda key: key[0] == rule_id)

    def prune_windows(self, now: datetime) -> int:
        """Expire stale window observations; return keys removed."""
        return self._windows.prune(now)

    # -- evaluation --

    def evaluate(self, event: AuditEvent) -> list[RuleMatch]:
        """Evaluate *event* against every applicable rule and dispatch actions."""
        matches: list[RuleMatch] = []
        for rule in self.rules():
            if not rule.applies_to(event.event_type):
                continue
            try:
                if not self._rule_matches(rule, event):
                    continue
                for action in rule.actions:
                    self._dispatcher.dispatch(rule, event, action)
            except Exception:
                logger.exception(
                    "Security rule evaluation failed rule_id=%s event_id=%s",
                    rule.id,
                    event.id,
                )
                continue
            matches.append(
                RuleMatch(
                    rule_id=rule.id,
                    event_id=event.id,
                    actions_dispatched=len(rule.actions),
                )
            )
        return matches

    def _rule_matches(self, rule: SecurityRule, event: AuditEvent) -> bool:
        for index, condition in enumerate(rule.conditions):
            if not self._condition_matches(rule.id, index, condition, event):
                return False
        return True

    def _condition_matches(
        self,
        rule_id: str,
        index: int,
        condition: RuleCondition,
        event: AuditEvent,
    ) -> bool:
        actual = compile_field_path(condition.field)(event)

        if isinstance(condition, PatternCondition):
            return apply_operator(
                condition.operator,
                actual,
                condition.value,
                ignore_case=condition.ignore_case,
            )

        if isinstance(condition, ThresholdCondition):
            if condition.time_window is None:
                return compare_numeric(condition.operator, actual, condition.value)
            amount = _as_float(actual)
            if amount is None:
                return False
            key = (rule_id, index, self._group_key(condition.group_by, event))
            _, total = self._windows.add(
                key,
                event.timestamp,
                window_seconds=condition.time_window,
                amount=amount,
            )
            return compare_numeric(condition.operator, total, condition.value)

        if isinstance(condition, FrequencyCondition):
            if not apply_operator("equals", actual, condition.value):
                return False
            key = (rule_id, index, self._group_key(condition.group_by, event))
            count, _ = self._windows.add(
                key, event.timestamp, window_seconds=condition.time_window
            )
            return count >= condition.count

        if isinstance(condition, AnomalyCondition):
            return False

        raise TypeError(f"Unsupported rule condition: {type(condition).__name__}")

    @staticmethod
    def _group_key(path: str, event: AuditEvent) -> Any:
        value = _plain(compile_field_path(path)(event))
        return value if isinstance(value, (str, int, float, type(None))) else str(value)


# ---------------------------------------------------------------------------
# Default rule set
# ---------------------------------------------------------------------------

SQL_INJECTION_PATTERN = r"(SELECT|INSERT|UPDATE|DELETE|DROP|UNION|OR\s+1=1)"


def default_rules() -> list[SecurityRule]:
    """Return the seed rule set installed on every new engine."""
    return [
        SecurityRule(
            id="failed-auth-attempts",
            name="Multiple Failed Authentication Attempts",
            description=(
                "Detects multiple failed authentication attempts from the same IP"
            ),
            event_types=frozenset({AuditEventType.AUTHENTICATION}),
            conditions=(
                FrequencyCondition(
                    field="result",
                    value=Outcome.FAILURE.value,
                    count=5,
                    time_window=300,
                    group_by="ip",
                ),
            ),
            actions=(LogAction(level="warning"), AlertAction(threshold=5)),
            severity=Severity.HIGH,
        ),
        SecurityRule(
            id="sql-injection-attempt",
            name="SQL Injection Attempt",
            description="Detects potential SQL injection patterns",
            event_types=frozenset({AuditEventType.INJECTION_ATTEMPT}),
            conditions=(
                PatternCondition(
                    field="details.query",
                    operator="regex",
                    value=SQL_INJECTION_PATTERN,
                    ignore_case=True,
                ),
            ),
            actions=(LogAction(level="error"), BlockAction(duration=3600)),
            severity=Severity.CRITICAL,
        ),
        SecurityRule(
            id="privilege-escalation",
            name="Privilege Escalation Attempt",
            description="Detects attempts to access unauthorized resources",
            event_types=frozenset(
                {AuditEventType.AUTHORIZATION, AuditEventType.PRIVILEGE_ESCALATION}
            ),
            conditions=(
                PatternCondition(
                    field="result",
                    operator="equals",
                    value=Outcome.BLOCKED.value,
                ),
            ),
            actions=(LogAction(level="warning"), AlertAction(immediate=True)),
            severity=Severity.HIGH,
        ),
        SecurityRule(
            id="data-exfiltration",
            name="Potential Data Exfiltration",
            description="Detects unusual data access patterns",
            event_types=frozenset({AuditEventType.DATA_ACCESS}),
            conditions=(
                ThresholdCondition(
                    field="details.recordCount",
                    operator="gt",
                    value=1000,
                    time_window=3600,
                    group_by="ip",
                ),
            ),
            actions=(LogAction(level="warning"), AlertAction(threshold=1)),
            severity=Severity.MEDIUM,
        ),
    ]
