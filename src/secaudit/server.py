"""FastMCP administrative surface for a :class:`SecurityAudit` engine.

``create_server(audit)`` returns a server whose tools close over the
given engine; there is no module-level engine instance.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastmcp import FastMCP
from pydantic import ValidationError

from secaudit.auditor import SecurityAudit
from secaudit.models.reports import ComplianceReport
from secaudit.models.reports import SecurityMetrics
from secaudit.models.schemas import RecordEventResult
from secaudit.models.schemas import RuleListResult
from secaudit.models.schemas import RuleMutationResult


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    return str(err.get("msg", "Invalid input"))


def create_server(audit: SecurityAudit, *, name: str = "secaudit") -> FastMCP:
    """Build a FastMCP server exposing *audit*'s ingestion and admin operations."""
    mcp = FastMCP(name)

    @mcp.tool
    async def record_security_event(
        event_type: str,
        context: dict[str, Any] | None = None,
        outcome: str = "success",
        details: dict[str, Any] | None = None,
    ) -> RecordEventResult:
        """Record a security event and return its id.

        Args:
            event_type: One of the 13 audit event types, e.g. "authentication".
            context: ip, user_agent, session_id, user_id, resource, action.
            outcome: success, failure or blocked.
            details: Free-form detail mapping; sensitive keys are redacted.
        """
        with audit.latency.measure("mcp.record_security_event"):
            try:
                event_id = audit.record(event_type, context, outcome, details)
            except ValidationError as exc:
                return RecordEventResult(
                    status="rejected",
                    error_code="validation_error",
                    message=_validation_message(exc),
                )
            except ValueError as exc:
                return RecordEventResult(
                    status="rejected",
                    error_code="validation_error",
                    message=str(exc),
                )
            return RecordEventResult(event_id=event_id)

    @mcp.tool
    async def add_security_rule(rule: dict[str, Any]) -> RuleMutationResult:
        """Add a security rule, replacing any rule with the same id."""
        with audit.latency.measure("mcp.add_security_rule"):
            try:
                added = audit.add_rule(rule)
            except ValidationError as exc:
                return RuleMutationResult(
                    rule_id=str(rule.get("id", "")),
                    status="rejected",
                    error_code="validation_error",
                    message=_validation_message(exc),
                )
            return RuleMutationResult(rule_id=added.id, status="added")

    @mcp.tool
    async def remove_security_rule(rule_id: str) -> RuleMutationResult:
        """Remove a security rule by id."""
        with audit.latency.measure("mcp.remove_security_rule"):
            removed = audit.remove_rule(rule_id)
            return RuleMutationResult(
                rule_id=rule_id, status="removed" if removed else "not_found"
            )

    @mcp.tool
    async def list_security_rules() -> RuleListResult:
        """List the installed security rules."""
        rules = sorted(audit.rules(), key=lambda r: r.id)
        return RuleListResult(rules=rules, total=len(rules))

    @mcp.tool
    async def get_security_metrics() -> SecurityMetrics:
        """Return a snapshot of the running security metrics."""
        return audit.get_security_metrics()

    @mcp.tool
    async def generate_compliance_report(
        start: datetime, end: datetime
    ) -> ComplianceReport:
        """Generate and persist a compliance report for ``[start, end]``.

        Args:
            start: ISO-8601 start of the window (naive values are UTC).
            end: ISO-8601 end of the window, inclusive.
        """
        with audit.latency.measure("mcp.generate_compliance_report"):
            return await audit.generate_compliance_report(start, end)

    return mcp
