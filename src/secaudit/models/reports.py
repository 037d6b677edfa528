"""Metrics snapshot and compliance report models."""

from __future__ import annotations

import uuid
from datetime import datetime
from datetime import UTC

from pydantic import BaseModel
from pydantic import Field

RISK_BUCKETS: tuple[str, ...] = ("0-25", "26-50", "51-75", "76-100")


def risk_bucket(score: int) -> str:
    """Return the distribution bucket label for a risk *score*."""
    if score <= 25:
        return "0-25"
    if score <= 50:
        return "26-50"
    if score <= 75:
        return "51-75"
    return "76-100"


class SourceCount(BaseModel):
    source: str
    count: int


class IPActivity(BaseModel):
    ip: str
    count: int
    risk_score: float = Field(description="Average risk score of the address.")


class TrendPoint(BaseModel):
    timestamp: datetime = Field(description="Start of the one-minute bucket.")
    count: int
    avg_risk_score: float


class SecurityMetrics(BaseModel):
    """Running counters over every recorded event."""

    total_events: int = 0
    events_by_type: dict[str, int] = Field(default_factory=dict)
    events_by_severity: dict[str, int] = Field(
        default_factory=lambda: {"low": 0, "medium": 0, "high": 0, "critical": 0}
    )
    risk_score_distribution: dict[str, int] = Field(
        default_factory=lambda: dict.fromkeys(RISK_BUCKETS, 0)
    )
    top_sources: list[SourceCount] = Field(default_factory=list)
    top_ips: list[IPActivity] = Field(default_factory=list)
    recent_trends: list[TrendPoint] = Field(default_factory=list)


class ReportPeriod(BaseModel):
    start: datetime
    end: datetime


class ReportSummary(BaseModel):
    total_events: int = 0
    security_incidents: int = Field(
        default=0, description="Events with critical severity."
    )
    data_breaches: int = Field(
        default=0, description="Blocked data_access events."
    )
    unauthorized_access: int = Field(
        default=0, description="Failed authorization events."
    )
    compliance_violations: int = Field(
        default=0, description="Events tagged 'compliance'."
    )


class ReportDetails(BaseModel):
    authentication_events: int = 0
    data_access_events: int = 0
    configuration_changes: int = 0
    suspicious_activities: int = 0


class ComplianceReport(BaseModel):
    """Aggregate summary over a bounded time window."""

    model_config = {"frozen": True}

    report_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    generated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    period: ReportPeriod
    summary: ReportSummary
    details: ReportDetails
    recommendations: list[str] = Field(default_factory=list)
