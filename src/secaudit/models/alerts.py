"""Payloads handed to alerting and denylist collaborators."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class AlertEventRef(BaseModel):
    id: str
    type: str
    ip: str
    risk_score: int


class AlertPayload(BaseModel):
    """Alert raised by a matched rule's ``alert`` action."""

    model_config = {"frozen": True}

    timestamp: datetime
    rule_id: str
    rule: str = Field(description="Display name of the matched rule.")
    severity: str = Field(description="Declared severity of the rule.")
    immediate: bool = False
    threshold: int = 1
    event: AlertEventRef
    details: dict[str, Any] = Field(default_factory=dict)


class BlockEntry(BaseModel):
    """Block intent for an address; enforcement happens elsewhere."""

    model_config = {"frozen": True}

    ip: str
    blocked_at: datetime
    duration: int = Field(description="Seconds the block should last.")
    reason: str = "security_rule_violation"
    rule_id: str | None = None
