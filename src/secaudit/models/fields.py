"""Field accessors used by rule conditions.

Top-level event attributes are read through a closed table of typed
getters.  Dotted ``details.*`` paths are the only string-walked part and
exist for externally authored rule configuration.
"""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from secaudit.models.events import AuditEvent

FieldAccessor = Callable[[AuditEvent], Any]

_EVENT_FIELDS: dict[str, FieldAccessor] = {
    "id": lambda e: e.id,
    "timestamp": lambda e: e.timestamp,
    "event_type": lambda e: e.event_type,
    "severity": lambda e: e.severity,
    "source": lambda e: e.source,
    "user_id": lambda e: e.user_id,
    "session_id": lambda e: e.session_id,
    "ip": lambda e: e.ip,
    "user_agent": lambda e: e.user_agent,
    "resource": lambda e: e.resource,
    "action": lambda e: e.action,
    "result": lambda e: e.result,
    "risk_score": lambda e: e.risk_score,
    "tags": lambda e: e.tags,
}

_ALIASES = {
    "eventType": "event_type",
    "userId": "user_id",
    "sessionId": "session_id",
    "userAgent": "user_agent",
    "riskScore": "risk_score",
    "outcome": "result",
}

_DETAILS_ROOT = "details"


def _walk(value: Any, parts: tuple[str, ...]) -> Any:
    for part in parts:
        if isinstance(value, Mapping):
            value = value.get(part)
        elif isinstance(value, list) and part.isdigit():
            idx = int(part)
            value = value[idx] if idx < len(value) else None
        else:
            return None
        if value is None:
            return None
    return value


@lru_cache(maxsize=256)
def compile_field_path(path: str) -> FieldAccessor:
    """Return an accessor for *path*.

    Raises ``ValueError`` for an empty path or an unknown top-level field.
    """
    parts = tuple(p for p in path.strip().split(".") if p)
    if not parts:
        raise ValueError("field path must not be empty")

    head = _ALIASES.get(parts[0], parts[0])
    if head == _DETAILS_ROOT:
        rest = parts[1:]
        return lambda e: _walk(e.details, rest) if rest else e.details

    getter = _EVENT_FIELDS.get(head)
    if getter is None:
        raise ValueError(f"Unknown event field '{parts[0]}' in path '{path}'")
    if len(parts) == 1:
        return getter
    rest = parts[1:]
    return lambda e: _walk(getter(e), rest)


def resolve_field(event: AuditEvent, path: str) -> Any:
    """Resolve a dotted *path* against *event*; missing segments give ``None``."""
    return compile_field_path(path)(event)
