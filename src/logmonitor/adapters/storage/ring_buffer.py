"""Ring buffer storage for the engine's own log records.

Bounded in-memory storage that evicts the oldest entries when full, so the
``/logs`` endpoint has predictable memory usage.
"""

import threading
from collections import deque
from collections.abc import AsyncIterable

from logmonitor.core.models import LogEntry

DEFAULT_MAX_SIZE = 1000


class RingBufferLogStorage:
    """Ring buffer implementation of LogStoragePort.

    ``write`` is synchronous because it is called from logging handlers,
    which may run on any thread.

    Args:
        max_size: Maximum number of entries to keep.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._lock = threading.Lock()
        self._buffer: deque[LogEntry] = deque(maxlen=max_size)

    def __len__(self) -> int:
        return len(self._buffer)

    def write(self, entry: LogEntry) -> None:
        """Append an entry, evicting the oldest one when full."""
        with self._lock:
            self._buffer.append(entry)

    async def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[LogEntry]:
        """Yield entries newer than ``since``, oldest first.

        Args:
            since: Unix timestamp; only entries with a later timestamp are returned.
            level: Optional level filter (case-insensitive).
        """
        with self._lock:
            snapshot = list(self._buffer)
        wanted = level.upper() if level else None
        filtered = [
            e
            for e in snapshot
            if e.timestamp > since and (wanted is None or e.level.upper() == wanted)
        ]
        for entry in sorted(filtered, key=lambda e: e.timestamp):
            yield entry

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()
