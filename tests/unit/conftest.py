"""Unit test fixtures — deterministic time and recording collaborators."""

from __future__ import annotations

import asyncio
from datetime import datetime
from datetime import timedelta
from datetime import UTC
from pathlib import Path
from typing import Any

import pytest

from secaudit import AuditConfig
from secaudit import SecurityAudit
from secaudit.engine.dispatch import DispatchError
from secaudit.models.alerts import AlertPayload
from secaudit.models.alerts import BlockEntry

# Midday, so the off-hours adjustment never applies by accident.
T0 = datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value


class ManualSleep:
    """Injectable ``sleep`` that blocks until the test calls ``tick``."""

    def __init__(self) -> None:
        self.calls: list[float] = []
        self._waiters: list[asyncio.Future[None]] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    async def wait_for_sleeper(self, timeout: float = 5.0) -> None:
        async def _poll() -> None:
            while not self._waiters:
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout=timeout)

    async def tick(self) -> None:
        """Release one pending sleep and wait until the loop sleeps again."""
        await self.wait_for_sleeper()
        self._waiters.pop(0).set_result(None)
        await self.wait_for_sleeper()


class RecordingAlertSink:
    def __init__(self) -> None:
        self.alerts: list[AlertPayload] = []

    async def send(self, alert: AlertPayload) -> None:
        self.alerts.append(alert)


class RecordingDenylist:
    def __init__(self) -> None:
        self.entries: list[BlockEntry] = []

    async def block(self, entry: BlockEntry) -> None:
        self.entries.append(entry)

    async def is_blocked(self, ip: str) -> bool:
        return any(e.ip == ip for e in self.entries)


class RecordingTransport:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[tuple[str, dict[str, Any], float]] = []
        self.fail = fail

    async def post(
        self, url: str, payload: dict[str, Any], *, timeout_seconds: float
    ) -> None:
        self.calls.append((url, payload, timeout_seconds))
        if self.fail:
            raise DispatchError("webhook HTTP 503")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture()
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture()
def denylist() -> RecordingDenylist:
    return RecordingDenylist()


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def audit_config(tmp_path: Path) -> AuditConfig:
    return AuditConfig(audit_dir=str(tmp_path / "audit"), business_timezone="UTC")


@pytest.fixture()
async def audit(audit_config, clock, sleep, alert_sink, denylist, transport):
    """Yield a SecurityAudit wired to fakes; the flush timer is not started."""
    engine = SecurityAudit(
        audit_config,
        clock=clock,
        sleep=sleep,
        alert_sink=alert_sink,
        denylist=denylist,
        webhook_transport=transport,
    )
    yield engine
    await engine.cleanup()

