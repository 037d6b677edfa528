"""Rule action dispatch and the collaborators actions are handed to.

The dispatcher turns a matched rule's actions into intents.  ``log``
actions are written synchronously through :mod:`logging`; alert, block
and webhook deliveries are I/O and are handed to ``spawn`` so they run
out-of-band relative to the recording caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from collections.abc import Coroutine
from datetime import datetime
from datetime import timedelta
from datetime import UTC
from typing import Any
from typing import Protocol
from typing import runtime_checkable
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from redis.asyncio import Redis  # type: ignore[import-untyped]

from secaudit.audit.store import AuditLogStore
from secaudit.config import DispatchConfig
from secaudit.models.alerts import AlertEventRef
from secaudit.models.alerts import AlertPayload
from secaudit.models.alerts import BlockEntry
from secaudit.models.events import AuditEvent
from secaudit.models.rules import AlertAction
from secaudit.models.rules import BlockAction
from secaudit.models.rules import LogAction
from secaudit.models.rules import RuleAction
from secaudit.models.rules import SecurityRule
from secaudit.models.rules import WebhookAction

logger = logging.getLogger(__name__)

Spawn = Callable[[Coroutine[Any, Any, Any], str], None]


class DispatchError(Exception):
    """Raised by collaborators when a delivery fails."""


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class AlertSink(Protocol):
    async def send(self, alert: AlertPayload) -> None: ...


@runtime_checkable
class Denylist(Protocol):
    """Receives block intents; traffic enforcement lives elsewhere."""

    async def block(self, entry: BlockEntry) -> None: ...

    async def is_blocked(self, ip: str) -> bool: ...


@runtime_checkable
class WebhookTransport(Protocol):
    async def post(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        timeout_seconds: float,
    ) -> None: ...


# ---------------------------------------------------------------------------
# Default collaborators
# ---------------------------------------------------------------------------


class JsonlAlertSink:
    """Logs each alert and appends it to the store's alerts file."""

    def __init__(self, store: AuditLogStore) -> None:
        self._store = store

    async def send(self, alert: AlertPayload) -> None:
        logger.warning(
            "security alert rule=%s severity=%s event_id=%s ip=%s risk_score=%d",
            alert.rule_id,
            alert.severity,
            alert.event.id,
            alert.event.ip,
            alert.event.risk_score,
        )
        await self._store.append_alert(alert)


class InMemoryDenylist:
    """Process-local denylist with clock-based expiry."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._entries: dict[str, BlockEntry] = {}

    @staticmethod
    def _expired(entry: BlockEntry, now: datetime) -> bool:
        return now >= entry.blocked_at + timedelta(seconds=entry.duration)

    async def block(self, entry: BlockEntry) -> None:
        now = self._clock()
        self._entries = {
            ip: e for ip, e in self._entries.items() if not self._expired(e, now)
        }
        self._entries[entry.ip] = entry

    async def is_blocked(self, ip: str) -> bool:
        entry = self._entries.get(ip)
        if entry is None:
            return False
        if self._expired(entry, self._clock()):
            del self._entries[ip]
            return False
        return True

    def entries(self) -> list[BlockEntry]:
        return list(self._entries.values())


class RedisDenylist:
    """Redis-backed denylist: one key per address, expiring with the block."""

    def __init__(self, redis: Redis, *, config: DispatchConfig | None = None) -> None:
        self._redis = redis
        self._prefix = (config or DispatchConfig()).denylist_prefix

    def _key(self, ip: str) -> str:
        return f"{self._prefix}:{ip}"

    async def block(self, entry: BlockEntry) -> None:
        await self._redis.set(
            self._key(entry.ip), entry.model_dump_json(), ex=entry.duration
        )

    async def is_blocked(self, ip: str) -> bool:
        return bool(await self._redis.exists(self._key(ip)))

    async def get(self, ip: str) -> BlockEntry | None:
        data = await self._redis.get(self._key(ip))
        if data is None:
            return None
        return BlockEntry.model_validate_json(data)

    async def close(self) -> None:
        await self._redis.aclose()


class UrllibWebhookTransport:
    """JSON POST over ``urllib``, run in a worker thread."""

    async def post(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        timeout_seconds: float,
    ) -> None:
        await asyncio.to_thread(self._post_sync, url, payload, timeout_seconds)

    @staticmethod
    def _post_sync(url: str, payload: dict[str, Any], timeout_seconds: float) -> None:
        request = Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(request, timeout=timeout_seconds) as response:
                response.read()
        except HTTPError as exc:
            raise DispatchError(f"webhook HTTP {exc.code} from {url}") from exc
        except URLError as exc:
            raise DispatchError(f"webhook network error: {exc.reason}") from exc
        except OSError as exc:
            raise DispatchError(f"webhook IO error: {exc}") from exc


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def build_alert(
    rule: SecurityRule, event: AuditEvent, action: AlertAction, now: datetime
) -> AlertPayload:
    return AlertPayload(
        timestamp=now,
        rule_id=rule.id,
        rule=rule.name,
        severity=rule.severity.value,
        immediate=action.immediate,
        threshold=action.threshold,
        event=AlertEventRef(
            id=event.id,
            type=event.event_type.value,
            ip=event.ip,
            risk_score=event.risk_score,
        ),
        details=event.details,
    )


def build_webhook_payload(rule: SecurityRule, event: AuditEvent) -> dict[str, Any]:
    return {
        "rule": rule.name,
        "rule_id": rule.id,
        "event": {
            "id": event.id,
            "type": event.event_type.value,
            "severity": event.severity.value,
            "timestamp": event.timestamp.isoformat(),
        },
    }


class ActionDispatcher:
    """Hands each rule action to its collaborator."""

    def __init__(
        self,
        *,
        spawn: Spawn,
        alert_sink: AlertSink,
        denylist: Denylist,
        webhook_transport: WebhookTransport | None = None,
        config: DispatchConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._spawn = spawn
        self.alert_sink = alert_sink
        self.denylist = denylist
        self.webhook_transport = webhook_transport or UrllibWebhookTransport()
        self.config = config or DispatchConfig()
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def dispatch(
        self, rule: SecurityRule, event: AuditEvent, action: RuleAction
    ) -> None:
        if isinstance(action, LogAction):
            logger.log(
                _LOG_LEVELS[action.level],
                "security rule triggered rule_id=%s name=%r event_id=%s "
                "event_type=%s severity=%s ip=%s risk_score=%d",
                rule.id,
                rule.name,
                event.id,
                event.event_type.value,
                rule.severity.value,
                event.ip,
                event.risk_score,
            )
        elif isinstance(action, AlertAction):
            alert = build_alert(rule, event, action, self._clock())
            self._spawn(self.alert_sink.send(alert), f"alert:{rule.id}")
        elif isinstance(action, BlockAction):
            entry = BlockEntry(
                ip=event.ip,
                blocked_at=self._clock(),
                duration=action.duration,
                rule_id=rule.id,
            )
            logger.warning(
                "block intent ip=%s duration=%d rule_id=%s",
                entry.ip,
                entry.duration,
                rule.id,
            )
            self._spawn(self.denylist.block(entry), f"block:{rule.id}")
        elif isinstance(action, WebhookAction):
            timeout = action.timeout_seconds or self.config.webhook_timeout_seconds
            self._spawn(
                self.webhook_transport.post(
                    action.url,
                    build_webhook_payload(rule, event),
                    timeout_seconds=timeout,
                ),
                f"webhook:{rule.id}",
            )
        else:
            raise TypeError(f"Unsupported rule action: {type(action).__name__}")
