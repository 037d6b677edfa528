"""Running counters over every recorded event."""

from __future__ import annotations

from collections import Counter
from collections import OrderedDict
from datetime import datetime
from threading import Lock

from secaudit.config import MetricsConfig
from secaudit.models.events import AuditEvent
from secaudit.models.reports import IPActivity
from secaudit.models.reports import risk_bucket
from secaudit.models.reports import SecurityMetrics
from secaudit.models.reports import SourceCount
from secaudit.models.reports import TrendPoint


def _trim(tally: Counter[str], limit: int) -> Counter[str]:
    """Keep the most frequent keys, leaving headroom below *limit*."""
    keep = max(1, limit - limit // 10)
    return Counter(dict(tally.most_common(keep)))


class MetricsAggregator:
    """Folds events into :class:`SecurityMetrics` counters.

    The per-type, per-severity and risk-bucket counters are kept directly
    on a ``SecurityMetrics`` instance; the top lists and per-minute trend
    are derived from auxiliary tallies when a snapshot is taken.
    """

    def __init__(self, config: MetricsConfig | None = None) -> None:
        self.config = config or MetricsConfig()
        self._lock = Lock()
        self._reset_state()

    def _reset_state(self) -> None:
        self._metrics = SecurityMetrics()
        self._sources: Counter[str] = Counter()
        self._ip_counts: Counter[str] = Counter()
        self._ip_risk: Counter[str] = Counter()
        # minute bucket -> [count, risk total]
        self._trend: OrderedDict[datetime, list[int]] = OrderedDict()

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            m = self._metrics
            m.total_events += 1
            kind = event.event_type.value
            m.events_by_type[kind] = m.events_by_type.get(kind, 0) + 1
            m.events_by_severity[event.severity.value] += 1
            m.risk_score_distribution[risk_bucket(event.risk_score)] += 1

            self._sources[event.source] += 1
            self._ip_counts[event.ip] += 1
            self._ip_risk[event.ip] += event.risk_score
            self._enforce_key_limit()

            minute = event.timestamp.replace(second=0, microsecond=0)
            bucket = self._trend.get(minute)
            if bucket is None:
                bucket = self._trend[minute] = [0, 0]
            bucket[0] += 1
            bucket[1] += event.risk_score
            while len(self._trend) > self.config.trend_buckets:
                self._trend.popitem(last=False)

    def _enforce_key_limit(self) -> None:
        limit = self.config.max_tracked_keys
        if len(self._sources) > limit:
            self._sources = _trim(self._sources, limit)
        if len(self._ip_counts) > limit:
            self._ip_counts = _trim(self._ip_counts, limit)
            self._ip_risk = Counter({ip: self._ip_risk[ip] for ip in self._ip_counts})

    def tracked_keys(self) -> tuple[int, int]:
        """Return how many distinct sources and addresses are tallied."""
        with self._lock:
            return len(self._sources), len(self._ip_counts)

    def snapshot(self) -> SecurityMetrics:
        """Return a detached copy safe for callers to mutate."""
        top_n = self.config.top_n
        with self._lock:
            snap = self._metrics.model_copy(deep=True)
            snap.top_sources = [
                SourceCount(source=source, count=count)
                for source, count in self._sources.most_common(top_n)
            ]
            snap.top_ips = [
                IPActivity(
                    ip=ip,
                    count=count,
                    risk_score=round(self._ip_risk[ip] / count, 2),
                )
                for ip, count in self._ip_counts.most_common(top_n)
            ]
            snap.recent_trends = [
                TrendPoint(
                    timestamp=minute,
                    count=count,
                    avg_risk_score=round(risk / count, 2),
                )
                for minute, (count, risk) in sorted(self._trend.items())
            ]
        return snap

    def reset(self) -> None:
        with self._lock:
            self._reset_state()
