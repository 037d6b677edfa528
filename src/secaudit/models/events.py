"""Audit event types and data models."""

from __future__ import annotations

import uuid
from datetime import datetime
from datetime import UTC
from enum import Enum
from typing import Any

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import Field


class AuditEventType(str, Enum):
    """Categories of security-relevant occurrences."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    DATA_ACCESS = "data_access"
    DATA_MODIFICATION = "data_modification"
    CONFIGURATION_CHANGE = "configuration_change"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    RATE_LIMIT = "rate_limit"
    VALIDATION_ERROR = "validation_error"
    CORS_VIOLATION = "cors_violation"
    INJECTION_ATTEMPT = "injection_attempt"
    PRIVILEGE_ESCALATION = "privilege_escalation"
    SYSTEM_ACCESS = "system_access"
    NETWORK_ANOMALY = "network_anomaly"


class Severity(str, Enum):
    """Severity tiers, declared lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class Outcome(str, Enum):
    """Result of the audited operation."""

    SUCCESS = "success"
    FAILURE = "failure"
    BLOCKED = "blocked"


class RequestContext(BaseModel):
    """Actor, session and network metadata supplied by the caller."""

    model_config = {"frozen": True}

    ip: str = Field(
        default="unknown",
        description="Originating network address.",
    )
    user_agent: str = Field(
        default="unknown",
        validation_alias=AliasChoices("user_agent", "userAgent"),
        description="Client agent string.",
    )
    session_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("session_id", "sessionId"),
    )
    user_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("user_id", "userId"),
    )
    resource: str | None = None
    action: str | None = None


class AuditEvent(BaseModel):
    """A single immutable, normalized security event."""

    model_config = {"frozen": True}

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier (uuid4).",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=UTC),
        description="Timezone-aware creation time.",
    )
    event_type: AuditEventType
    severity: Severity
    source: str = Field(
        description="Label of the component that recorded the event.",
    )
    user_id: str | None = None
    session_id: str | None = None
    ip: str = "unknown"
    user_agent: str = "unknown"
    resource: str | None = None
    action: str | None = None
    result: Outcome = Field(
        description="Outcome of the audited operation.",
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Sanitized free-form detail mapping.",
    )
    risk_score: int = Field(ge=0, le=100)
    tags: tuple[str, ...] = Field(
        default=(),
        description="Ordered, duplicate-free tags; the first is the event type.",
    )
