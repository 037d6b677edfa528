"""SecurityAudit — the engine facade.

Owns the event buffer, metrics, rule set and background flush task.
``record`` is the request-path entry point: it is synchronous, CPU-bound
and never raises once its arguments have been validated.  Everything that
does I/O (flushes, alert/block/webhook delivery) runs out-of-band on the
engine's owning event loop and is tracked until ``cleanup``.  Callers with
no running loop (sync hosts, worker threads) hand the work to that loop, or
to a background loop thread when none exists, and never wait for it.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import threading
import uuid
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Coroutine
from collections.abc import Mapping
from datetime import datetime
from datetime import UTC
from time import perf_counter
from typing import Any
from zoneinfo import ZoneInfo

from secaudit.audit.buffer import EventBuffer
from secaudit.audit.store import AuditLogStore
from secaudit.config import AuditConfig
from secaudit.config import DispatchConfig
from secaudit.config import MetricsConfig
from secaudit.engine.compliance import ComplianceReporter
from secaudit.engine.dispatch import ActionDispatcher
from secaudit.engine.dispatch import AlertSink
from secaudit.engine.dispatch import Denylist
from secaudit.engine.dispatch import InMemoryDenylist
from secaudit.engine.dispatch import JsonlAlertSink
from secaudit.engine.dispatch import WebhookTransport
from secaudit.engine.metrics import MetricsAggregator
from secaudit.engine.rules import default_rules
from secaudit.engine.rules import RuleEngine
from secaudit.engine.scoring import classify_severity
from secaudit.engine.scoring import compute_risk_score
from secaudit.engine.scoring import derive_tags
from secaudit.engine.scoring import sanitize_details
from secaudit.models.events import AuditEvent
from secaudit.models.events import AuditEventType
from secaudit.models.events import Outcome
from secaudit.models.events import RequestContext
from secaudit.models.events import Severity
from secaudit.models.reports import ComplianceReport
from secaudit.models.reports import SecurityMetrics
from secaudit.models.rules import SecurityRule
from secaudit.observability import LatencyRecorder

logger = logging.getLogger(__name__)

_FORCE_FLUSH_SEVERITIES = frozenset({Severity.HIGH, Severity.CRITICAL})


def _detail_str(details: Mapping[str, Any], key: str) -> str | None:
    value = details.get(key)
    if value is None or value == "":
        return None
    return str(value)


class _LoopThread:
    """An event loop running forever on a daemon thread."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run, name="secaudit-loop", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def stop(self, timeout: float) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout)
        if not self._thread.is_alive():
            self.loop.close()


class SecurityAudit:
    """Security event audit and rule-evaluation engine."""

    def __init__(
        self,
        config: AuditConfig | None = None,
        *,
        metrics_config: MetricsConfig | None = None,
        dispatch_config: DispatchConfig | None = None,
        rules: list[SecurityRule] | None = None,
        alert_sink: AlertSink | None = None,
        denylist: Denylist | None = None,
        webhook_transport: WebhookTransport | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.config = config or AuditConfig()
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._sleep = sleep or asyncio.sleep
        self._tz = (
            ZoneInfo(self.config.business_timezone)
            if self.config.business_timezone
            else None
        )

        self.store = AuditLogStore(self.config)
        self.buffer = EventBuffer()
        self.metrics = MetricsAggregator(metrics_config)
        self.latency = LatencyRecorder()
        self.denylist = denylist or InMemoryDenylist(clock=self._clock)
        self.dispatcher = ActionDispatcher(
            spawn=self._spawn,
            alert_sink=alert_sink or JsonlAlertSink(self.store),
            denylist=self.denylist,
            webhook_transport=webhook_transport,
            config=dispatch_config,
            clock=self._clock,
        )
        self.rule_engine = RuleEngine(
            self.dispatcher,
            rules=default_rules() if rules is None else rules,
        )
        self.reporter = ComplianceReporter(
            self.store,
            self.buffer,
            timeout_seconds=self.config.report_timeout_seconds,
        )

        self._flush_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        # Work handed over from threads without the owning loop.
        self._remote: set[concurrent.futures.Future[None]] = set()
        self._remote_lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._background: _LoopThread | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Adopt the running loop and start the periodic flush task (idempotent).

        Work already handed to a background loop thread is awaited and that
        thread is stopped, so the store is only ever driven from one loop.
        """
        loop = asyncio.get_running_loop()
        if self._background is not None and self._background.loop is not loop:
            await self.drain_pending()
            await self._stop_background(self.config.shutdown_timeout_seconds)
        self._loop = loop
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(
                self._run_periodic_flush(), name="secaudit-periodic-flush"
            )

    async def cleanup(self) -> None:
        """Stop the flush timer, drain out-of-band work and flush once more."""
        task, self._flush_task = self._flush_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        timeout = self.config.shutdown_timeout_seconds
        try:
            await asyncio.wait_for(self.drain_pending(), timeout=timeout)
        except TimeoutError:
            with self._remote_lock:
                leftover = [*self._pending, *self._remote]
            logger.warning(
                "Cancelling %d out-of-band tasks still running after %.1fs",
                len(leftover),
                timeout,
            )
            for pending in leftover:
                pending.cancel()
        try:
            await asyncio.wait_for(self._flush_on_owner(), timeout=timeout)
        except TimeoutError:
            logger.warning("Final audit flush timed out after %.1fs", timeout)
        await self._stop_background(timeout)
        logger.info("Security audit cleanup completed")

    async def __aenter__(self) -> SecurityAudit:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.cleanup()

    @property
    def running(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    async def _run_periodic_flush(self) -> None:
        while True:
            await self._sleep(self.config.flush_interval_seconds)
            await self.flush()
            self.rule_engine.prune_windows(self._clock())

    async def _flush_on_owner(self) -> int:
        background = self._background
        if background is None:
            return await self.flush()
        future = asyncio.run_coroutine_threadsafe(self.flush(), background.loop)
        return await asyncio.wrap_future(future)

    async def _stop_background(self, timeout: float) -> None:
        with self._remote_lock:
            background, self._background = self._background, None
        if background is not None:
            await asyncio.to_thread(background.stop, timeout)
            logger.info("Stopped background audit loop")

    # ------------------------------------------------------------------
    # Out-of-band work
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        owner = self._loop
        if (
            running is not None
            and self._background is None
            and (owner is None or owner is running or not owner.is_running())
        ):
            self._loop = running
            task = running.create_task(self._guarded(coro, name), name=name)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return

        with self._remote_lock:
            future = asyncio.run_coroutine_threadsafe(
                self._guarded(coro, name), self._handoff_loop()
            )
            self._remote.add(future)
        future.add_done_callback(self._forget_remote)

    def _handoff_loop(self) -> asyncio.AbstractEventLoop:
        """Return the loop that runs work handed over from other threads."""
        if self._background is None:
            if self._loop is not None and self._loop.is_running():
                return self._loop
            self._background = _LoopThread()
            logger.info("Started background audit loop for out-of-band work")
        return self._background.loop

    def _forget_remote(self, future: concurrent.futures.Future[None]) -> None:
        with self._remote_lock:
            self._remote.discard(future)

    @staticmethod
    async def _guarded(coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Out-of-band task failed task=%s", name)

    async def drain_pending(self) -> None:
        """Wait until every spawned flush and dispatch task has finished."""
        while True:
            with self._remote_lock:
                remote = list(self._remote)
            waiters = [*self._pending, *(asyncio.wrap_future(f) for f in remote)]
            if not waiters:
                return
            await asyncio.wait(waiters)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        event_type: AuditEventType | str,
        context: RequestContext | Mapping[str, Any] | None = None,
        outcome: Outcome | str = Outcome.SUCCESS,
        details: Mapping[str, Any] | None = None,
    ) -> str:
        """Record one security event and return its id.

        Raises ``ValueError`` for an unknown event type or outcome and
        ``pydantic.ValidationError`` for a malformed context.  Nothing
        raised after validation reaches the caller.
        """
        kind = AuditEventType(event_type)
        result = Outcome(outcome)
        if isinstance(context, RequestContext):
            ctx = context
        else:
            ctx = RequestContext.model_validate(dict(context or {}))
        if details is not None and not isinstance(details, Mapping):
            raise ValueError("details must be a mapping")
        raw = details or {}

        event_id = str(uuid.uuid4())
        start = perf_counter()
        ok = False
        try:
            event = self._build_event(event_id, kind, result, ctx, raw)
            self.buffer.append(event)
            self.metrics.record(event)
            self.rule_engine.evaluate(event)
            if event.severity in _FORCE_FLUSH_SEVERITIES:
                self._spawn(self.flush(), f"flush:{event.severity.value}")
            ok = True
        except Exception:
            logger.exception(
                "Failed to record security event event_id=%s event_type=%s",
                event_id,
                kind.value,
            )
        finally:
            self.latency.record(
                operation="audit.record",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )
        return event_id

    def _build_event(
        self,
        event_id: str,
        kind: AuditEventType,
        result: Outcome,
        ctx: RequestContext,
        raw: Mapping[str, Any],
    ) -> AuditEvent:
        now = self._clock()
        hour = now.astimezone(self._tz).hour
        score = compute_risk_score(kind, result, raw, hour=hour)
        user_id = ctx.user_id or _detail_str(raw, "userId")
        return AuditEvent(
            id=event_id,
            timestamp=now,
            event_type=kind,
            severity=classify_severity(kind, score),
            source=self.config.source,
            user_id=user_id,
            session_id=ctx.session_id or _detail_str(raw, "sessionId"),
            ip=ctx.ip,
            user_agent=ctx.user_agent,
            resource=ctx.resource or _detail_str(raw, "resource"),
            action=ctx.action or _detail_str(raw, "action"),
            result=result,
            details=sanitize_details(raw),
            risk_score=score,
            tags=derive_tags(kind, raw, user_id=user_id),
        )

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    async def flush(self) -> int:
        """Persist every buffered event; return how many were written.

        Drained events stay visible to compliance reports until the write
        returns.
        """
        with self.buffer.draining() as events:
            if not events:
                return 0
            start = perf_counter()
            ok = False
            try:
                written = await self.store.append_events(events)
                ok = True
            except Exception:
                logger.exception("Failed to flush audit events count=%d", len(events))
                return 0
            finally:
                self.latency.record(
                    operation="audit.flush",
                    duration_ms=(perf_counter() - start) * 1000,
                    ok=ok,
                )
        logger.info("Flushed %d audit events", written)
        return written

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def add_rule(self, rule: SecurityRule | Mapping[str, Any]) -> SecurityRule:
        """Add or replace a rule; mappings are validated into a rule first."""
        if not isinstance(rule, SecurityRule):
            rule = SecurityRule.model_validate(dict(rule))
        self.rule_engine.add_rule(rule)
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        return self.rule_engine.remove_rule(rule_id)

    def rules(self) -> list[SecurityRule]:
        return self.rule_engine.rules()

    def get_security_metrics(self) -> SecurityMetrics:
        return self.metrics.snapshot()

    def reset_metrics(self) -> None:
        self.metrics.reset()

    def latency_metrics(self) -> dict[str, dict[str, float | int]]:
        return self.latency.snapshot()

    async def generate_compliance_report(
        self, start: datetime, end: datetime
    ) -> ComplianceReport:
        """Summarize events stamped within ``[start, end]`` and persist the report."""
        with self.latency.measure("audit.report"):
            return await self.reporter.generate_report(start, end)

    async def load_compliance_report(self, report_id: str) -> ComplianceReport | None:
        return await self.reporter.load_report(report_id)
