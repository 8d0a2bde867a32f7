"""Bounded chronological log of detected claps."""

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class ClapEvent:
    """A detected clap."""

    timestamp_ms: int  # monotonic clock, milliseconds


class ClapHistory:
    """Thread-safe, append-only clap log with FIFO eviction.

    Insertion order is chronological order. After every ``append`` only
    the most recent ``max_len`` events are kept.
    """

    def __init__(self, max_len: int = 10) -> None:
        if max_len < 1:
            raise ValueError(f"max_len must be >= 1, got {max_len}")
        self.max_len = max_len
        self._events: list[ClapEvent] = []
        self._lock = threading.Lock()

    def append(self, event: ClapEvent) -> None:
        """Add an event, then prune to ``max_len``."""
        with self._lock:
            self._events.append(event)
            self._prune_locked(self.max_len)

    def prune(self, max_len: int) -> None:
        """Keep only the *max_len* most recent events."""
        with self._lock:
            self._prune_locked(max_len)

    def _prune_locked(self, max_len: int) -> None:
        if len(self._events) > max_len:
            del self._events[: len(self._events) - max_len]

    def last_n(self, n: int) -> list[ClapEvent]:
        """Return up to *n* most recent events, oldest first.

        Fewer than *n* events are returned when the history is shorter;
        callers must check the length.
        """
        if n <= 0:
            return []
        with self._lock:
            return self._events[-n:]

    def snapshot(self) -> list[ClapEvent]:
        """Return a copy of every event, oldest first."""
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        """Remove every event."""
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
