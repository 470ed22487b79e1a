"""Port interfaces between the engine and its adapters.

These protocols define the contracts that readers, stores and collectors must
implement. The core depends only on these interfaces, not concrete
implementations.
"""

from collections.abc import AsyncIterable, Iterable
from typing import Protocol, runtime_checkable

from logmonitor.core.instruments import MetricFamily
from logmonitor.core.models import LogEntry, SourceSpec


@runtime_checkable
class SourceReader(Protocol):
    """Port for one log source.

    A reader owns exactly one OS resource between ``start`` and ``stop``.
    Examples: PlainFileReader, JournalReader.
    """

    source: str

    async def start(self) -> None:
        """Acquire the OS resource.

        Raises:
            OpenError: If the resource cannot be opened or the reader is
                already started.
        """
        ...

    async def read_line(self) -> str:
        """Wait for and return the next line without its line terminator.

        An empty string means "no data, poll again"; it is returned while the
        reader is being stopped.

        Raises:
            ReadError: On I/O or decoding failures.
        """
        ...

    async def stop(self) -> None:
        """Release the resource and wake up a pending ``read_line``.

        Raises:
            StopError: If the resource could not be released cleanly.
        """
        ...


@runtime_checkable
class ReaderDef(Protocol):
    """Port for a reader implementation (the class, not an instance)."""

    def match_priority(self, spec: SourceSpec) -> int:
        """Return how well this reader fits the source; negative refuses it."""
        ...

    def __call__(self, spec: SourceSpec) -> SourceReader:
        """Construct a reader for the source."""
        ...


@runtime_checkable
class CursorStorePort(Protocol):
    """Port for persisting resumable read positions.

    Keys are source identifiers, values are opaque cursor tokens.
    Examples: SQLiteCursorStore.
    """

    async def load(self, source: str) -> str | None:
        """Return the saved cursor for the source, if any."""
        ...

    async def save(self, source: str, cursor: str) -> None:
        """Persist the cursor for the source, replacing any previous one."""
        ...

    async def delete(self, source: str) -> None:
        """Forget the cursor for the source."""
        ...


@runtime_checkable
class CollectorPort(Protocol):
    """Port for anything exposing metric families at scrape time.

    Examples: MetricRegistry, EngineMetrics.
    """

    def collect(self) -> Iterable[MetricFamily]:
        """Return the families to render."""
        ...


@runtime_checkable
class LogStoragePort(Protocol):
    """Port for the engine's own recent log records.

    Examples: RingBufferLogStorage.
    """

    def write(self, entry: LogEntry) -> None:
        """Write a log entry to storage."""
        ...

    def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[LogEntry]:
        """Read log entries since the given timestamp.

        Args:
            since: Unix timestamp. Returns entries with timestamp > since.
                   Default 0 returns all entries.
            level: Optional level filter (case-insensitive).

        Returns:
            Async iterable of LogEntry objects, ordered by timestamp ascending.
        """
        ...
