"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem.
No env-var loading or file parsing, just plain defaults that can
be overridden at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuditConfig:
    """Settings for event recording, flushing and report storage."""

    audit_dir: str = "audit-logs"
    source: str = "todo-server"
    flush_interval_seconds: float = 60.0
    shutdown_timeout_seconds: float = 10.0
    report_timeout_seconds: float = 30.0
    # IANA zone used for the off-hours risk adjustment; None = system local.
    business_timezone: str | None = None
    enabled: bool = True


@dataclass(frozen=True)
class MetricsConfig:
    """Bounds for the live metrics aggregates."""

    top_n: int = 10
    trend_buckets: int = 60
    # Distinct sources and addresses tallied before the least seen are evicted.
    max_tracked_keys: int = 1000


@dataclass(frozen=True)
class DispatchConfig:
    """Settings for rule action collaborators."""

    webhook_timeout_seconds: float = 5.0
    denylist_prefix: str = "secaudit:denylist"
