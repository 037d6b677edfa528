"""Domain models — events, rules, metrics and reports."""

from secaudit.models.alerts import AlertEventRef
from secaudit.models.alerts import AlertPayload
from secaudit.models.alerts import BlockEntry
from secaudit.models.events import AuditEvent
from secaudit.models.events import AuditEventType
from secaudit.models.events import Outcome
from secaudit.models.events import RequestContext
from secaudit.models.events import Severity
from secaudit.models.fields import compile_field_path
from secaudit.models.fields import resolve_field
from secaudit.models.reports import ComplianceReport
from secaudit.models.reports import IPActivity
from secaudit.models.reports import ReportDetails
from secaudit.models.reports import ReportPeriod
from secaudit.models.reports import ReportSummary
from secaudit.models.reports import risk_bucket
from secaudit.models.reports import RISK_BUCKETS
from secaudit.models.reports import SecurityMetrics
from secaudit.models.reports import SourceCount
from secaudit.models.reports import TrendPoint
from secaudit.models.rules import AlertAction
from secaudit.models.rules import AnomalyCondition
from secaudit.models.rules import BlockAction
from secaudit.models.rules import FrequencyCondition
from secaudit.models.rules import LogAction
from secaudit.models.rules import PatternCondition
from secaudit.models.rules import RuleAction
from secaudit.models.rules import RuleCondition
from secaudit.models.rules import SecurityRule
from secaudit.models.rules import ThresholdCondition
from secaudit.models.rules import WebhookAction
from secaudit.models.schemas import RecordEventResult
from secaudit.models.schemas import RuleListResult
from secaudit.models.schemas import RuleMutationResult

__all__ = [
    "AlertAction",
    "AlertEventRef",
    "AlertPayload",
    "AnomalyCondition",
    "AuditEvent",
    "AuditEventType",
    "BlockAction",
    "BlockEntry",
    "ComplianceReport",
    "FrequencyCondition",
    "IPActivity",
    "LogAction",
    "Outcome",
    "PatternCondition",
    "RecordEventResult",
    "ReportDetails",
    "ReportPeriod",
    "ReportSummary",
    "RequestContext",
    "RISK_BUCKETS",
    "RuleAction",
    "RuleCondition",
    "RuleListResult",
    "RuleMutationResult",
    "SecurityMetrics",
    "SecurityRule",
    "Severity",
    "SourceCount",
    "ThresholdCondition",
    "TrendPoint",
    "WebhookAction",
    "compile_field_path",
    "resolve_field",
    "risk_bucket",
]
