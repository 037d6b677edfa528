"""Engine domain — scoring, rule evaluation, dispatch, metrics and reporting."""

from secaudit.engine.compliance import ComplianceReporter
from secaudit.engine.compliance import ReportTimeoutError
from secaudit.engine.dispatch import ActionDispatcher
from secaudit.engine.dispatch import AlertSink
from secaudit.engine.dispatch import Denylist
from secaudit.engine.dispatch import DispatchError
from secaudit.engine.dispatch import InMemoryDenylist
from secaudit.engine.dispatch import JsonlAlertSink
from secaudit.engine.dispatch import RedisDenylist
from secaudit.engine.dispatch import UrllibWebhookTransport
from secaudit.engine.dispatch import WebhookTransport
from secaudit.engine.metrics import MetricsAggregator
from secaudit.engine.rules import default_rules
from secaudit.engine.rules import RuleEngine
from secaudit.engine.rules import RuleMatch
from secaudit.engine.scoring import classify_severity
from secaudit.engine.scoring import compute_risk_score
from secaudit.engine.scoring import derive_tags
from secaudit.engine.scoring import sanitize_details
from secaudit.engine.windows import SlidingWindows

__all__ = [
    "ActionDispatcher",
    "AlertSink",
    "ComplianceReporter",
    "Denylist",
    "DispatchError",
    "InMemoryDenylist",
    "JsonlAlertSink",
    "MetricsAggregator",
    "RedisDenylist",
    "ReportTimeoutError",
    "RuleEngine",
    "RuleMatch",
    "SlidingWindows",
    "UrllibWebhookTransport",
    "WebhookTransport",
    "classify_severity",
    "compute_risk_score",
    "default_rules",
    "derive_tags",
    "sanitize_details",
]
