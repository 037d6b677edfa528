"""Append-only JSONL audit store partitioned by calendar day.

Layout under ``AuditConfig.audit_dir``::

    <YYYY-MM>/audit-<YYYY-MM-DD>.jsonl      one event per line
    alerts.jsonl                            one alert per line
    compliance-reports/compliance-report-<id>.json
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from datetime import datetime
from datetime import timedelta
from datetime import UTC
from functools import partial
from pathlib import Path

from pydantic import ValidationError

from secaudit.config import AuditConfig
from secaudit.models.alerts import AlertPayload
from secaudit.models.events import AuditEvent
from secaudit.models.reports import ComplianceReport

logger = logging.getLogger(__name__)

ALERTS_FILE = "alerts.jsonl"
REPORTS_DIR = "compliance-reports"


def partition_path(root: Path, day: date) -> Path:
    """Return the JSONL file holding events stamped on *day* (UTC)."""
    return root / f"{day:%Y-%m}" / f"audit-{day:%Y-%m-%d}.jsonl"


class AuditLogStore:
    """Durable sink for audit events, alerts and compliance reports.

    Uses ``asyncio.to_thread`` for file operations to avoid blocking
    the event loop, guarded by an ``asyncio.Lock`` for serialization.
    """

    def __init__(self, config: AuditConfig) -> None:
        self.config = config
        self.root = Path(config.audit_dir)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def append_events(self, events: Iterable[AuditEvent]) -> int:
        """Append *events* to their day partitions; return lines written."""
        if not self.config.enabled:
            return 0
        batches: dict[Path, list[str]] = defaultdict(list)
        for event in events:
            day = event.timestamp.astimezone(UTC).date()
            batches[partition_path(self.root, day)].append(
                event.model_dump_json() + "\n"
            )
        if not batches:
            return 0

        written = 0
        async with self._lock:
            for path, lines in batches.items():
                await asyncio.to_thread(partial(self._append, path, "".join(lines)))
                written += len(lines)
        return written

    async def append_alert(self, alert: AlertPayload) -> None:
        """Append *alert* as a single JSON line to the alerts file."""
        if not self.config.enabled:
            return
        line = alert.model_dump_json() + "\n"
        async with self._lock:
            await asyncio.to_thread(
                partial(self._append, self.root / ALERTS_FILE, line)
            )

    async def save_report(self, report: ComplianceReport) -> Path | None:
        """Write *report* as its own JSON document and return the path."""
        if not self.config.enabled:
            return None
        path = self.report_path(report.report_id)
        body = report.model_dump_json(indent=2)
        async with self._lock:
            await asyncio.to_thread(partial(self._write, path, body))
        logger.info("Compliance report saved: %s", path.name)
        return path

    @staticmethod
    def _append(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(text)

    @staticmethod
    def _write(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def report_path(self, report_id: str) -> Path:
        return self.root / REPORTS_DIR / f"compliance-report-{report_id}.json"

    async def load_report(self, report_id: str) -> ComplianceReport | None:
        """Read a persisted report back, or ``None`` if it does not exist."""
        path = self.report_path(report_id)
        if not path.exists():
            return None
        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return ComplianceReport.model_validate_json(raw)

    async def read_events(self, start: datetime, end: datetime) -> list[AuditEvent]:
        """Read events stamped within ``[start, end]`` from the day partitions."""
        events: list[AuditEvent] = []
        day = start.astimezone(UTC).date()
        last = end.astimezone(UTC).date()
        while day <= last:
            path = partition_path(self.root, day)
            day += timedelta(days=1)
            if not path.exists():
                continue
            async with self._lock:
                raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            for line_no, line in enumerate(raw.splitlines(), start=1):
                if not line.strip():
                    continue
                try:
                    evt = AuditEvent.model_validate_json(line)
                except ValidationError:
                    logger.warning(
                        "Skipping malformed audit event line %d in %s",
                        line_no,
                        path,
                    )
                    continue
                if start <= evt.timestamp <= end:
                    events.append(evt)
        return events
