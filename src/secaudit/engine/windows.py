"""Per-key sliding time windows backing frequency and threshold conditions."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from collections.abc import Hashable
from datetime import datetime
from datetime import timedelta
from threading import Lock


class SlidingWindows:
    """Timestamped observations grouped by key, pruned by age on access.

    Each key owns a deque of ``(timestamp, amount)`` pairs kept in
    insertion order and remembers the window length it was last used with.
    Observations are assumed to arrive in roughly chronological order,
    which holds for events stamped at record time.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._windows: dict[Hashable, deque[tuple[datetime, float]]] = {}
        self._spans: dict[Hashable, float] = {}

    def add(
        self,
        key: Hashable,
        at: datetime,
        *,
        window_seconds: float,
        amount: float = 1.0,
    ) -> tuple[int, float]:
        """Record one observation and return ``(count, total)`` inside the window."""
        cutoff = at - timedelta(seconds=window_seconds)
        with self._lock:
            entries = self._windows.setdefault(key, deque())
            self._spans[key] = window_seconds
            entries.append((at, amount))
            while entries and entries[0][0] < cutoff:
                entries.popleft()
            return len(entries), sum(value for _, value in entries)

    def prune(self, now: datetime) -> int:
        """Drop expired observations and empty keys; return keys removed."""
        removed = 0
        with self._lock:
            for key in list(self._windows):
                cutoff = now - timedelta(seconds=self._spans[key])
                entries = self._windows[key]
                while entries and entries[0][0] < cutoff:
                    entries.popleft()
                if not entries:
                    del self._windows[key]
                    del self._spans[key]
                    removed += 1
        return removed

    def discard(self, predicate: Callable[[Hashable], bool]) -> None:
        """Forget every key for which ``predicate(key)`` is true."""
        with self._lock:
            for key in [k for k in self._windows if predicate(k)]:
                del self._windows[key]
                del self._spans[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
