"""Unit tests for event, rule and field-accessor models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from secaudit.models.events import AuditEvent
from secaudit.models.events import AuditEventType
from secaudit.models.events import Outcome
from secaudit.models.events import RequestContext
from secaudit.models.events import Severity
from secaudit.models.fields import resolve_field
from secaudit.models.rules import AlertAction
from secaudit.models.rules import BlockAction
from secaudit.models.rules import FrequencyCondition
from secaudit.models.rules import LogAction
from secaudit.models.rules import PatternCondition
from secaudit.models.rules import SecurityRule
from secaudit.models.rules import ThresholdCondition
from secaudit.models.rules import WebhookAction


def _make_event(**kwargs) -> AuditEvent:
    defaults: dict = {
        "event_type": AuditEventType.DATA_ACCESS,
        "severity": Severity.LOW,
        "source": "test",
        "ip": "10.0.0.1",
        "result": Outcome.SUCCESS,
        "risk_score": 15,
        "tags": ("data_access",),
        "details": {"query": "select", "meta": {"rows": [5, 6]}},
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)


class TestRequestContext:
    def test_defaults(self):
        ctx = RequestContext()
        assert ctx.ip == "unknown"
        assert ctx.user_agent == "unknown"
        assert ctx.user_id is None

    def test_accepts_camel_case_keys(self):
        ctx = RequestContext.model_validate(
            {"ip": "1.2.3.4", "userAgent": "ua", "sessionId": "s", "userId": "u"}
        )
        assert (ctx.user_agent, ctx.session_id, ctx.user_id) == ("ua", "s", "u")

    def test_rejects_malformed_values(self):
        with pytest.raises(ValidationError):
            RequestContext.model_validate({"ip": ["not", "an", "address"]})


class TestAuditEvent:
    def test_event_is_frozen(self):
        event = _make_event()
        with pytest.raises(ValidationError):
            event.risk_score = 99

    @pytest.mark.parametrize("score", [-1, 101])
    def test_risk_score_bounds(self, score):
        with pytest.raises(ValidationError):
            _make_event(risk_score=score)

    def test_json_round_trip_keeps_tags_and_timestamp(self):
        event = _make_event(tags=("data_access", "compliance"))
        back = AuditEvent.model_validate_json(event.model_dump_json())
        assert back.model_dump() == event.model_dump()
        assert back.tags == ("data_access", "compliance")


class TestFieldResolution:
    def test_top_level_fields_and_aliases(self):
        event = _make_event(user_id="u1")
        assert resolve_field(event, "ip") == "10.0.0.1"
        assert resolve_field(event, "userId") == "u1"
        assert resolve_field(event, "outcome") == Outcome.SUCCESS
        assert resolve_field(event, "riskScore") == 15

    def test_details_paths(self):
        event = _make_event()
        assert resolve_field(event, "details.query") == "select"
        assert resolve_field(event, "details.meta.rows.1") == 6
        assert resolve_field(event, "details.missing.deeper") is None

    def test_unknown_top_level_field_rejected(self):
        with pytest.raises(ValueError, match="Unknown event field"):
            resolve_field(_make_event(), "password")


class TestSecurityRule:
    def test_typed_construction(self):
        rule = SecurityRule(
            id="r1",
            name="Rule",
            event_types=frozenset({AuditEventType.AUTHENTICATION}),
            conditions=(PatternCondition(field="result", value="failure"),),
            actions=(LogAction(), AlertAction(immediate=True)),
        )
        assert rule.applies_to(AuditEventType.AUTHENTICATION)
        assert not rule.applies_to(AuditEventType.DATA_ACCESS)

    def test_disabled_rule_applies_to_nothing(self):
        rule = SecurityRule(
            id="r1",
            name="Rule",
            event_types=frozenset({AuditEventType.AUTHENTICATION}),
            enabled=False,
        )
        assert not rule.applies_to(AuditEventType.AUTHENTICATION)

    def test_externally_authored_mapping(self):
        rule = SecurityRule.model_validate(
            {
                "id": "ext",
                "name": "External",
                "eventTypes": ["data_access", "authentication"],
                "conditions": [
                    {
                        "type": "threshold",
                        "field": "details.recordCount",
                        "operator": "gt",
                        "value": 10,
                        "timeWindow": 60,
                    },
                    {"type": "frequency", "field": "result", "value": "failure",
                     "count": 3, "timeWindow": 30, "groupBy": "userId"},
                ],
                "actions": [
                    {"type": "log", "configuration": {"level": "warn"}},
                    {"type": "block", "configuration": {"duration": 60}},
                    {"type": "webhook", "configuration": {"url": "https://hooks.test/x"}},
                ],
                "severity": "high",
            }
        )
        threshold, frequency = rule.conditions
        assert isinstance(threshold, ThresholdCondition)
        assert threshold.time_window == 60
        assert isinstance(frequency, FrequencyCondition)
        assert frequency.group_by == "userId"
        log, block, webhook = rule.actions
        assert isinstance(log, LogAction) and log.level == "warning"
        assert isinstance(block, BlockAction) and block.duration == 60
        assert isinstance(webhook, WebhookAction)
        assert rule.severity == Severity.HIGH
        assert rule.event_types == frozenset(
            {AuditEventType.DATA_ACCESS, AuditEventType.AUTHENTICATION}
        )

    def test_unknown_condition_field_rejected(self):
        with pytest.raises(ValidationError):
            SecurityRule.model_validate(
                {
                    "id": "bad",
                    "name": "Bad",
                    "event_types": ["authentication"],
                    "conditions": [{"kind": "pattern", "field": "nope.x"}],
                }
            )

    def test_unknown_event_type_rejected(self):
        with pytest.raises(ValidationError):
            SecurityRule.model_validate(
                {"id": "bad", "name": "Bad", "event_types": ["login"]}
            )

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValidationError, match="invalid regex pattern"):
            SecurityRule.model_validate(
                {
                    "id": "bad-regex",
                    "name": "Bad regex",
                    "eventTypes": ["injection_attempt"],
                    "conditions": [
                        {"type": "pattern", "field": "details.query", "operator": "regex", "value": "(SELECT"}
                    ],
                }
            )

    def test_regex_text_is_literal_for_other_operators(self):
        cond = PatternCondition(field="details.query", operator="contains", value="(SELECT")
        assert cond.value == "(SELECT"

    def test_rule_is_frozen(self):
        rule = SecurityRule(id="r", name="R", event_types=frozenset())
        with pytest.raises(ValidationError):
            rule.enabled = False
