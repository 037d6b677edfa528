"""Compliance reporting over persisted and pending audit events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from collections.abc import Sequence
from datetime import datetime
from datetime import UTC

from secaudit.audit.buffer import EventBuffer
from secaudit.audit.store import AuditLogStore
from secaudit.models.events import AuditEvent
from secaudit.models.events import AuditEventType
from secaudit.models.events import Outcome
from secaudit.models.events import Severity
from secaudit.models.reports import ComplianceReport
from secaudit.models.reports import ReportDetails
from secaudit.models.reports import ReportPeriod
from secaudit.models.reports import ReportSummary

logger = logging.getLogger(__name__)

CRITICAL_EVENTS_LIMIT = 10
FAILED_AUTH_LIMIT = 50
SUSPICIOUS_ACTIVITY_LIMIT = 20

RECOMMEND_CONTROLS = (
    "Review and strengthen security controls due to high number of critical events"
)
RECOMMEND_AUTHENTICATION = "Consider implementing stronger authentication mechanisms"
RECOMMEND_MONITORING = "Enhance monitoring and detection capabilities"


class ReportTimeoutError(TimeoutError):
    """Raised when report generation exceeds its time budget."""


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _count(events: Sequence[AuditEvent], predicate: Callable[[AuditEvent], bool]) -> int:
    return sum(1 for e in events if predicate(e))


def build_recommendations(events: Sequence[AuditEvent]) -> list[str]:
    recommendations: list[str] = []
    critical = _count(events, lambda e: e.severity == Severity.CRITICAL)
    failed_auth = _count(
        events,
        lambda e: e.event_type == AuditEventType.AUTHENTICATION
        and e.result == Outcome.FAILURE,
    )
    suspicious = _count(
        events, lambda e: e.event_type == AuditEventType.SUSPICIOUS_ACTIVITY
    )
    if critical > CRITICAL_EVENTS_LIMIT:
        recommendations.append(RECOMMEND_CONTROLS)
    if failed_auth > FAILED_AUTH_LIMIT:
        recommendations.append(RECOMMEND_AUTHENTICATION)
    if suspicious > SUSPICIOUS_ACTIVITY_LIMIT:
        recommendations.append(RECOMMEND_MONITORING)
    return recommendations


def summarize(
    events: Sequence[AuditEvent], start: datetime, end: datetime
) -> ComplianceReport:
    """Build a report from events already filtered to the period."""
    summary = ReportSummary(
        total_events=len(events),
        security_incidents=_count(events, lambda e: e.severity == Severity.CRITICAL),
        data_breaches=_count(
            events,
            lambda e: e.event_type == AuditEventType.DATA_ACCESS
            and e.result == Outcome.BLOCKED,
        ),
        unauthorized_access=_count(
            events,
            lambda e: e.event_type == AuditEventType.AUTHORIZATION
            and e.result == Outcome.FAILURE,
        ),
        compliance_violations=_count(events, lambda e: "compliance" in e.tags),
    )
    details = ReportDetails(
        authentication_events=_count(
            events, lambda e: e.event_type == AuditEventType.AUTHENTICATION
        ),
        data_access_events=_count(
            events, lambda e: e.event_type == AuditEventType.DATA_ACCESS
        ),
        configuration_changes=_count(
            events, lambda e: e.event_type == AuditEventType.CONFIGURATION_CHANGE
        ),
        suspicious_activities=_count(
            events, lambda e: e.event_type == AuditEventType.SUSPICIOUS_ACTIVITY
        ),
    )
    return ComplianceReport(
        period=ReportPeriod(start=start, end=end),
        summary=summary,
        details=details,
        recommendations=build_recommendations(events),
    )


class ComplianceReporter:
    """Aggregates events in a time window into a persisted report."""

    def __init__(
        self,
        store: AuditLogStore,
        buffer: EventBuffer,
        *,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._store = store
        self._buffer = buffer
        self._timeout_seconds = timeout_seconds

    async def collect_events(self, start: datetime, end: datetime) -> list[AuditEvent]:
        """Return persisted plus pending events within ``[start, end]``, by time."""
        # Buffer first: a batch drained after this point is either still
        # in flight in the snapshot or already on disk when the files are read.
        buffered = self._buffer.snapshot()
        persisted = await self._store.read_events(start, end)
        seen = {e.id for e in persisted}
        pending = [
            e for e in buffered if e.id not in seen and start <= e.timestamp <= end
        ]
        return sorted([*persisted, *pending], key=lambda e: e.timestamp)

    async def generate_report(self, start: datetime, end: datetime) -> ComplianceReport:
        start, end = _aware(start), _aware(end)
        if start > end:
            raise ValueError("report start must not be after end")
        try:
            return await asyncio.wait_for(
                self._build_and_save(start, end), timeout=self._timeout_seconds
            )
        except TimeoutError as exc:
            raise ReportTimeoutError(
                f"compliance report exceeded {self._timeout_seconds}s"
            ) from exc

    async def _build_and_save(self, start: datetime, end: datetime) -> ComplianceReport:
        report = summarize(await self.collect_events(start, end), start, end)
        try:
            await self._store.save_report(report)
        except Exception:
            logger.exception(
                "Failed to save compliance report report_id=%s", report.report_id
            )
        return report

    async def load_report(self, report_id: str) -> ComplianceReport | None:
        return await self._store.load_report(report_id)
