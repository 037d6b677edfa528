"""In-memory staging area for events awaiting a flush."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

from secaudit.models.events import AuditEvent


class EventBuffer:
    """Ordered append-only sequence with an atomic drain.

    Events taken by :meth:`draining` stay visible to :meth:`snapshot` until
    the block exits, so a reader never loses sight of a batch that is
    between the buffer and the durable store.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: list[AuditEvent] = []
        self._in_flight: list[list[AuditEvent]] = []

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    def drain(self) -> list[AuditEvent]:
        """Detach and return every buffered event, leaving the buffer empty."""
        with self._lock:
            events, self._events = self._events, []
        return events

    @contextmanager
    def draining(self) -> Iterator[list[AuditEvent]]:
        """Detach every buffered event for the duration of a write."""
        with self._lock:
            events, self._events = self._events, []
            self._in_flight.append(events)
        try:
            yield events
        finally:
            with self._lock:
                self._in_flight = [b for b in self._in_flight if b is not events]

    def snapshot(self) -> list[AuditEvent]:
        """Return in-flight then pending events, oldest first."""
        with self._lock:
            return [e for batch in self._in_flight for e in batch] + list(self._events)

    def in_flight(self) -> int:
        with self._lock:
            return sum(len(batch) for batch in self._in_flight)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
