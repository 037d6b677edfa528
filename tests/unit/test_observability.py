"""Unit tests for in-process latency observability helpers."""

from __future__ import annotations

import pytest

from secaudit.observability import LatencyRecorder


class TestLatencyRecorder:
    def test_records_latency_aggregates(self):
        recorder = LatencyRecorder()
        recorder.record(operation="audit.record", duration_ms=10.0, ok=True)
        recorder.record(operation="audit.record", duration_ms=30.0, ok=False)

        metrics = recorder.snapshot()["audit.record"]
        assert metrics["count"] == 2
        assert metrics["error_count"] == 1
        assert metrics["total_ms"] == 40.0
        assert metrics["avg_ms"] == 20.0
        assert metrics["min_ms"] == 10.0
        assert metrics["max_ms"] == 30.0
        assert metrics["last_ms"] == 30.0
        assert metrics["p95_ms"] == 30.0

    def test_negative_durations_clamp_to_zero(self):
        recorder = LatencyRecorder()
        recorder.record(operation="audit.flush", duration_ms=-5.0)
        assert recorder.snapshot()["audit.flush"]["min_ms"] == 0.0

    def test_measure_marks_errors(self):
        recorder = LatencyRecorder()
        with recorder.measure("audit.report"):
            pass
        with pytest.raises(RuntimeError):
            with recorder.measure("audit.report"):
                raise RuntimeError("boom")

        metrics = recorder.snapshot()["audit.report"]
        assert metrics["count"] == 2
        assert metrics["error_count"] == 1

    def test_recorders_are_independent(self):
        first = LatencyRecorder()
        second = LatencyRecorder()
        first.record(operation="audit.record", duration_ms=1.0)
        assert second.snapshot() == {}

    def test_reset_clears_all_metrics(self):
        recorder = LatencyRecorder()
        recorder.record(operation="audit.flush", duration_ms=12.0, ok=True)
        assert "audit.flush" in recorder.snapshot()
        recorder.reset()
        assert recorder.snapshot() == {}

    def test_p95_uses_recent_samples(self):
        recorder = LatencyRecorder()
        for value in range(1, 101):
            recorder.record(operation="audit.record", duration_ms=float(value))
        assert recorder.snapshot()["audit.record"]["p95_ms"] == 96.0
