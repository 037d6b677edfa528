"""Unit tests for rule action dispatch and the default collaborators."""

from __future__ import annotations

import io
import json
import logging
from urllib.error import HTTPError
from urllib.error import URLError

import pytest

from secaudit.config import DispatchConfig
from secaudit.engine import dispatch as dispatch_module
from secaudit.engine.dispatch import ActionDispatcher
from secaudit.engine.dispatch import DispatchError
from secaudit.engine.dispatch import InMemoryDenylist
from secaudit.engine.dispatch import UrllibWebhookTransport
from secaudit.models.alerts import BlockEntry
from secaudit.models.events import AuditEvent
from secaudit.models.events import AuditEventType
from secaudit.models.events import Outcome
from secaudit.models.events import Severity
from secaudit.models.rules import AlertAction
from secaudit.models.rules import BlockAction
from secaudit.models.rules import LogAction
from secaudit.models.rules import SecurityRule
from secaudit.models.rules import WebhookAction


def _event(clock) -> AuditEvent:
    return AuditEvent(
        timestamp=clock(),
        event_type=AuditEventType.INJECTION_ATTEMPT,
        severity=Severity.CRITICAL,
        source="test",
        ip="203.0.113.9",
        result=Outcome.BLOCKED,
        details={"query": "DROP TABLE todos"},
        risk_score=100,
        tags=("injection_attempt",),
    )


RULE = SecurityRule(
    id="sql-injection-attempt",
    name="SQL Injection Attempt",
    event_types=frozenset({AuditEventType.INJECTION_ATTEMPT}),
    severity=Severity.CRITICAL,
)


class _SpawnCollector:
    def __init__(self) -> None:
        self.spawned: list[tuple[object, str]] = []

    def __call__(self, coro, name: str) -> None:
        self.spawned.append((coro, name))

    async def run_all(self) -> None:
        for coro, _ in self.spawned:
            await coro
        self.spawned.clear()


@pytest.fixture()
def spawn() -> _SpawnCollector:
    return _SpawnCollector()


@pytest.fixture()
def dispatcher(spawn, alert_sink, denylist, transport, clock) -> ActionDispatcher:
    return ActionDispatcher(
        spawn=spawn,
        alert_sink=alert_sink,
        denylist=denylist,
        webhook_transport=transport,
        config=DispatchConfig(webhook_timeout_seconds=2.5),
        clock=clock,
    )


class TestActionDispatcher:
    async def test_log_action_writes_synchronously(self, dispatcher, spawn, clock, caplog):
        with caplog.at_level(logging.ERROR, logger="secaudit"):
            dispatcher.dispatch(RULE, _event(clock), LogAction(level="error"))
        assert spawn.spawned == []
        assert "rule_id=sql-injection-attempt" in caplog.text
        assert caplog.records[-1].levelno == logging.ERROR

    async def test_alert_action_builds_payload(self, dispatcher, spawn, alert_sink, clock):
        event = _event(clock)
        dispatcher.dispatch(RULE, event, AlertAction(immediate=True, threshold=3))
        assert [name for _, name in spawn.spawned] == ["alert:sql-injection-attempt"]

        await spawn.run_all()
        (alert,) = alert_sink.alerts
        assert alert.rule == "SQL Injection Attempt"
        assert alert.severity == "critical"
        assert alert.immediate is True
        assert alert.threshold == 3
        assert alert.event.id == event.id
        assert alert.event.risk_score == 100
        assert alert.details == {"query": "DROP TABLE todos"}

    async def test_block_action_emits_intent(self, dispatcher, spawn, denylist, clock):
        dispatcher.dispatch(RULE, _event(clock), BlockAction(duration=120))
        await spawn.run_all()
        (entry,) = denylist.entries
        assert entry.ip == "203.0.113.9"
        assert entry.duration == 120
        assert entry.reason == "security_rule_violation"
        assert entry.rule_id == RULE.id

    async def test_webhook_action_uses_configured_timeout(
        self, dispatcher, spawn, transport, clock
    ):
        event = _event(clock)
        dispatcher.dispatch(RULE, event, WebhookAction(url="https://hooks.test/sec"))
        await spawn.run_all()
        ((url, payload, timeout),) = transport.calls
        assert url == "https://hooks.test/sec"
        assert timeout == 2.5
        assert payload["rule"] == "SQL Injection Attempt"
        assert payload["event"]["id"] == event.id
        assert payload["event"]["severity"] == "critical"

    async def test_webhook_action_timeout_override(self, dispatcher, spawn, transport, clock):
        dispatcher.dispatch(
            RULE, _event(clock), WebhookAction(url="https://x.test", timeout_seconds=9)
        )
        await spawn.run_all()
        assert transport.calls[0][2] == 9


class TestInMemoryDenylist:
    async def test_block_expires_with_clock(self, clock):
        denylist = InMemoryDenylist(clock=clock)
        await denylist.block(BlockEntry(ip="1.2.3.4", blocked_at=clock(), duration=60))
        assert await denylist.is_blocked("1.2.3.4")
        assert not await denylist.is_blocked("5.6.7.8")

        clock.advance(61)
        assert not await denylist.is_blocked("1.2.3.4")
        assert denylist.entries() == []

    async def test_block_sweeps_expired_entries(self, clock):
        denylist = InMemoryDenylist(clock=clock)
        for i in range(50):
            await denylist.block(
                BlockEntry(ip=f"10.0.0.{i}", blocked_at=clock(), duration=60)
            )
        clock.advance(61)
        await denylist.block(BlockEntry(ip="10.9.9.9", blocked_at=clock(), duration=60))

        assert [e.ip for e in denylist.entries()] == ["10.9.9.9"]


class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class TestUrllibWebhookTransport:
    async def test_posts_json(self, monkeypatch):
        captured = {}

        def _fake_urlopen(request, timeout):
            captured["url"] = request.full_url
            captured["body"] = json.loads(request.data)
            captured["timeout"] = timeout
            captured["method"] = request.get_method()
            return _FakeResponse(b"ok")

        monkeypatch.setattr(dispatch_module, "urlopen", _fake_urlopen)
        await UrllibWebhookTransport().post(
            "https://hooks.test/a", {"rule": "r"}, timeout_seconds=3.0
        )
        assert captured == {
            "url": "https://hooks.test/a",
            "body": {"rule": "r"},
            "timeout": 3.0,
            "method": "POST",
        }

    @pytest.mark.parametrize(
        ("error", "message"),
        [
            (HTTPError("https://hooks.test/a", 503, "unavailable", {}, None), "HTTP 503"),
            (URLError("refused"), "network error"),
        ],
    )
    async def test_errors_become_dispatch_errors(self, monkeypatch, error, message):
        def _failing_urlopen(request, timeout):
            raise error

        monkeypatch.setattr(dispatch_module, "urlopen", _failing_urlopen)
        with pytest.raises(DispatchError, match=message):
            await UrllibWebhookTransport().post(
                "https://hooks.test/a", {}, timeout_seconds=1.0
            )

