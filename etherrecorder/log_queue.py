"""Bounded, thread-safe FIFO of log entries awaiting publication."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterator

from etherrecorder.levels import LogLevel

DEFAULT_CAPACITY = 1024
PURGE_COUNT = 3


@dataclass(frozen=True)
class LogEntry:
    """A single formatted log message with its metadata."""

    index: int
    timestamp: int
    level: LogLevel
    thread_label: str
    message: str


OverflowHandler = Callable[[list[LogEntry]], None]


class LogQueue:
    """FIFO of log entries that purges its oldest entries when full.

    When a push finds the queue full, up to PURGE_COUNT of the oldest
    entries are removed and handed to ``overflow_handler`` so they can be
    published immediately; the new entry is then queued.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        overflow_handler: OverflowHandler | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._overflow_handler = overflow_handler
        self._entries: deque[LogEntry] = deque()
        self._lock = threading.Lock()

    def push(self, entry: LogEntry) -> bool:
        """Append an entry, purging the oldest ones first if the queue is full."""
        if not isinstance(entry, LogEntry):
            raise TypeError("only LogEntry objects can be queued")
        purged: list[LogEntry] = []
        with self._lock:
            if len(self._entries) >= self.capacity:
                for _ in range(min(PURGE_COUNT, len(self._entries))):
                    purged.append(self._entries.popleft())
            self._entries.append(entry)
        if purged and self._overflow_handler is not None:
            self._overflow_handler(purged)
        return True

    def pop(self) -> LogEntry | None:
        """Remove and return the oldest entry, or None when empty."""
        with self._lock:
            return self._entries.popleft() if self._entries else None

    def drain(self) -> Iterator[LogEntry]:
        """Yield entries oldest first until the queue is empty."""
        while (entry := self.pop()) is not None:
            yield entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)