"""secaudit — security event audit and rule-evaluation engine."""

from secaudit.auditor import SecurityAudit
from secaudit.config import AuditConfig
from secaudit.config import DispatchConfig
from secaudit.config import MetricsConfig

__all__ = [
    "AuditConfig",
    "DispatchConfig",
    "MetricsConfig",
    "SecurityAudit",
]
