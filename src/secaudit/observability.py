"""Per-engine latency tallies for record, flush, report and tool calls."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from dataclasses import field
from threading import Lock
from time import perf_counter

logger = logging.getLogger(__name__)

# Recent samples kept per operation for the p95 estimate.
SAMPLE_WINDOW = 256


@dataclass
class LatencySummary:
    """Running aggregate for one named operation."""

    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    last_ms: float = 0.0
    samples: deque[float] = field(default_factory=lambda: deque(maxlen=SAMPLE_WINDOW))

    def add(self, duration_ms: float, ok: bool) -> None:
        first = self.count == 0
        self.count += 1
        self.error_count += 0 if ok else 1
        self.total_ms += duration_ms
        self.last_ms = duration_ms
        self.min_ms = duration_ms if first else min(self.min_ms, duration_ms)
        self.max_ms = duration_ms if first else max(self.max_ms, duration_ms)
        self.samples.append(duration_ms)

    def p95(self) -> float:
        if not self.samples:
            return 0.0
        ordered = sorted(self.samples)
        return ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))]

    def as_dict(self) -> dict[str, float | int]:
        avg = self.total_ms / self.count if self.count else 0.0
        return {
            "count": self.count,
            "error_count": self.error_count,
            "total_ms": round(self.total_ms, 3),
            "avg_ms": round(avg, 3),
            "min_ms": round(self.min_ms, 3),
            "max_ms": round(self.max_ms, 3),
            "last_ms": round(self.last_ms, 3),
            "p95_ms": round(self.p95(), 3),
        }


class LatencyRecorder:
    """Thread-safe latency aggregates keyed by operation name."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._by_operation: dict[str, LatencySummary] = {}

    def record(self, *, operation: str, duration_ms: float, ok: bool = True) -> None:
        duration = max(float(duration_ms), 0.0)
        with self._lock:
            self._by_operation.setdefault(operation, LatencySummary()).add(duration, ok)
        logger.debug(
            "latency operation=%s duration_ms=%.3f ok=%s", operation, duration, ok
        )

    @contextmanager
    def measure(self, operation: str) -> Iterator[None]:
        """Time the enclosed block; an exception marks the sample as an error."""
        started = perf_counter()
        ok = False
        try:
            yield
            ok = True
        finally:
            elapsed = (perf_counter() - started) * 1000
            self.record(operation=operation, duration_ms=elapsed, ok=ok)

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                name: summary.as_dict()
                for name, summary in sorted(self._by_operation.items())
            }

    def reset(self) -> None:
        with self._lock:
            self._by_operation.clear()
