"""Storage adapters for cursors and the engine's own log records."""

from logmonitor.adapters.storage.ring_buffer import RingBufferLogStorage
from logmonitor.adapters.storage.sqlite_cursors import SQLiteCursorStore

__all__ = ["RingBufferLogStorage", "SQLiteCursorStore"]
