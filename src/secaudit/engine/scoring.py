"""Risk scoring, severity classification, tagging and detail sanitizing.

Everything here is pure: the same inputs always give the same output and
nothing outside the arguments is read or written.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from secaudit.models.events import AuditEventType
from secaudit.models.events import Outcome
from secaudit.models.events import Severity

# ---------------------------------------------------------------------------
# Risk score
# ---------------------------------------------------------------------------

MIN_RISK_SCORE = 0
MAX_RISK_SCORE = 100
DEFAULT_BASE_SCORE = 10

BASE_SCORES: dict[AuditEventType, int] = {
    AuditEventType.AUTHENTICATION: 20,
    AuditEventType.AUTHORIZATION: 30,
    AuditEventType.DATA_ACCESS: 15,
    AuditEventType.DATA_MODIFICATION: 25,
    AuditEventType.CONFIGURATION_CHANGE: 40,
    AuditEventType.SUSPICIOUS_ACTIVITY: 50,
    AuditEventType.RATE_LIMIT: 10,
    AuditEventType.VALIDATION_ERROR: 5,
    AuditEventType.CORS_VIOLATION: 15,
    AuditEventType.INJECTION_ATTEMPT: 80,
    AuditEventType.PRIVILEGE_ESCALATION: 70,
    AuditEventType.SYSTEM_ACCESS: 35,
    AuditEventType.NETWORK_ANOMALY: 45,
}

_OUTCOME_ADJUSTMENT = {
    Outcome.SUCCESS: 0,
    Outcome.FAILURE: 10,
    Outcome.BLOCKED: 20,
}


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def is_off_hours(hour: int) -> bool:
    return hour < 6 or hour > 22


def compute_risk_score(
    event_type: AuditEventType,
    outcome: Outcome,
    details: Mapping[str, Any],
    *,
    hour: int,
) -> int:
    """Return the additive risk score for one event, clamped to [0, 100].

    *hour* is the local wall-clock hour (0-23) the event was recorded at.
    """
    score = BASE_SCORES.get(event_type, DEFAULT_BASE_SCORE)
    score += _OUTCOME_ADJUSTMENT.get(outcome, 0)

    attempts = _number(details.get("attemptCount"))
    if attempts is not None and attempts > 3:
        score += 15
    data_size = _number(details.get("dataSize"))
    if data_size is not None and data_size > 1_000_000:
        score += 10
    if details.get("privilegeLevel") == "admin":
        score += 20
    if details.get("fromExternalNetwork"):
        score += 15

    if is_off_hours(hour):
        score += 5

    return max(MIN_RISK_SCORE, min(score, MAX_RISK_SCORE))


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------

ALWAYS_CRITICAL: frozenset[AuditEventType] = frozenset(
    {AuditEventType.INJECTION_ATTEMPT, AuditEventType.PRIVILEGE_ESCALATION}
)


def classify_severity(event_type: AuditEventType, score: int) -> Severity:
    """Map an event type and risk score to a severity tier."""
    if score >= 80 or event_type in ALWAYS_CRITICAL:
        return Severity.CRITICAL
    if score >= 60:
        return Severity.HIGH
    if score >= 30:
        return Severity.MEDIUM
    return Severity.LOW


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

_FLAG_TAGS: tuple[tuple[str, str], ...] = (
    ("adminAction", "admin"),
    ("automatedRequest", "automated"),
    ("fromExternalNetwork", "external"),
    ("suspiciousPattern", "suspicious"),
)


def derive_tags(
    event_type: AuditEventType,
    details: Mapping[str, Any],
    *,
    user_id: str | None = None,
) -> tuple[str, ...]:
    """Build the ordered tag tuple; the event type always comes first.

    Caller-supplied ``details["tags"]`` strings are appended after the
    derived tags.
    """
    tags: list[str] = [event_type.value]
    if user_id:
        tags.append("authenticated")
    for flag, tag in _FLAG_TAGS:
        if details.get(flag):
            tags.append(tag)

    extra = details.get("tags")
    if isinstance(extra, (list, tuple)):
        tags.extend(t.strip() for t in extra if isinstance(t, str) and t.strip())

    return tuple(dict.fromkeys(tags))


# ---------------------------------------------------------------------------
# Sanitizing
# ---------------------------------------------------------------------------

SENSITIVE_KEY_PARTS: tuple[str, ...] = (
    "password",
    "token",
    "key",
    "secret",
    "auth",
    "cookie",
)
REDACTED = "[REDACTED]"


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if is_sensitive_key(k) else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def sanitize_details(details: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a JSON-safe copy of *details* with sensitive keys redacted.

    The copy goes through a JSON round trip, so values that are not
    serializable come back as strings.  The input is never mutated.
    """
    if not details:
        return {}
    copied = json.loads(json.dumps(dict(details), default=str, skipkeys=True))
    return _redact(copied)
