"""Security rule, condition and action models.

Conditions and actions are discriminated unions keyed by ``kind`` so the
rule engine can match on concrete types instead of inspecting dicts.
"""

from __future__ import annotations

import re
from typing import Annotated
from typing import Any
from typing import Literal

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from secaudit.models.events import AuditEventType
from secaudit.models.events import Severity
from secaudit.models.fields import compile_field_path

Operator = Literal["equals", "contains", "regex", "gt", "lt", "gte", "lte"]
NumericOperator = Literal["gt", "lt", "gte", "lte"]


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class _FieldCondition(BaseModel):
    model_config = {"frozen": True}

    field: str = Field(description="Event field path, e.g. 'details.query'.")

    @field_validator("field")
    @classmethod
    def _known_field(cls, value: str) -> str:
        compile_field_path(value)
        return value


class PatternCondition(_FieldCondition):
    """Compare one field of the current event against a literal or regex."""

    kind: Literal["pattern"] = "pattern"
    operator: Operator = "equals"
    value: Any = None
    ignore_case: bool = Field(
        default=False,
        validation_alias=AliasChoices("ignore_case", "ignoreCase"),
    )

    @model_validator(mode="after")
    def _valid_regex(self) -> PatternCondition:
        if self.operator == "regex":
            try:
                re.compile(str(self.value), re.IGNORECASE if self.ignore_case else 0)
            except re.error as exc:
                raise ValueError(f"invalid regex pattern: {exc}") from exc
        return self


class ThresholdCondition(_FieldCondition):
    """Numeric comparison, optionally over a windowed per-key sum."""

    kind: Literal["threshold"] = "threshold"
    operator: NumericOperator = "gt"
    value: float
    time_window: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("time_window", "timeWindow"),
        description="Window length in seconds; None compares the single event.",
    )
    group_by: str = Field(
        default="ip",
        validation_alias=AliasChoices("group_by", "groupBy"),
    )

    @field_validator("group_by")
    @classmethod
    def _known_group(cls, value: str) -> str:
        compile_field_path(value)
        return value


class FrequencyCondition(_FieldCondition):
    """Match once ``count`` events with ``field == value`` share a key in a window."""

    kind: Literal["frequency"] = "frequency"
    value: Any = None
    count: int = Field(default=1, ge=1)
    time_window: float = Field(
        default=300.0,
        gt=0,
        validation_alias=AliasChoices("time_window", "timeWindow"),
    )
    group_by: str = Field(
        default="ip",
        validation_alias=AliasChoices("group_by", "groupBy"),
    )

    @field_validator("group_by")
    @classmethod
    def _known_group(cls, value: str) -> str:
        compile_field_path(value)
        return value


class AnomalyCondition(_FieldCondition):
    """Reserved for statistical checks; never matches."""

    kind: Literal["anomaly"] = "anomaly"


RuleCondition = Annotated[
    PatternCondition | ThresholdCondition | FrequencyCondition | AnomalyCondition,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class LogAction(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["log"] = "log"
    level: Literal["debug", "info", "warning", "error", "critical"] = "warning"

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return "warning" if value == "warn" else value
        return value


class AlertAction(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["alert"] = "alert"
    threshold: int = Field(default=1, ge=1)
    immediate: bool = False


class BlockAction(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["block"] = "block"
    duration: int = Field(default=3600, gt=0, description="Seconds.")


class WebhookAction(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["webhook"] = "webhook"
    url: str
    timeout_seconds: float | None = Field(default=None, gt=0)


RuleAction = Annotated[
    LogAction | AlertAction | BlockAction | WebhookAction,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Rule
# ---------------------------------------------------------------------------


def _normalize_item(item: Any) -> Any:
    """Accept ``{"type": ..., "configuration": {...}}`` authored items."""
    if not isinstance(item, dict):
        return item
    normalized = dict(item)
    if "kind" not in normalized and "type" in normalized:
        normalized["kind"] = normalized.pop("type")
    configuration = normalized.pop("configuration", None)
    if isinstance(configuration, dict):
        for key, value in configuration.items():
            normalized.setdefault(key, value)
    return normalized


class SecurityRule(BaseModel):
    """A named, enable-able condition set that dispatches actions on match."""

    model_config = {"frozen": True}

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    event_types: frozenset[AuditEventType] = Field(
        validation_alias=AliasChoices("event_types", "eventTypes"),
    )
    conditions: tuple[RuleCondition, ...] = ()
    actions: tuple[RuleAction, ...] = ()
    enabled: bool = True
    severity: Severity = Severity.MEDIUM

    @model_validator(mode="before")
    @classmethod
    def _normalize_external(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("conditions", "actions"):
            items = data.get(key)
            if isinstance(items, (list, tuple)):
                data[key] = [_normalize_item(item) for item in items]
        return data

    def applies_to(self, event_type: AuditEventType) -> bool:
        return self.enabled and event_type in self.event_types
