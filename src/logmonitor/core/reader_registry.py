"""Registry of reader implementations selected by priority."""

import threading

from logmonitor.core.errors import NoMatchError
from logmonitor.core.logs import get_logger
from logmonitor.core.models import SourceSpec
from logmonitor.core.ports import ReaderDef

logger = get_logger(__name__)


class ReaderRegistry:
    """Ordered list of reader implementations.

    ``select_for`` returns the reader with the highest non-negative
    ``match_priority``; ties go to the reader registered first. Registration
    takes a lock and publishes a new tuple, so lookups never block.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._readers: tuple[ReaderDef, ...] = ()

    def register(self, reader: ReaderDef) -> None:
        """Add a reader implementation.

        Raises:
            TypeError: If the reader has no ``match_priority``.
            ValueError: If the reader is already registered.
        """
        if not callable(getattr(reader, "match_priority", None)):
            raise TypeError("reader must define match_priority(spec)")
        with self._lock:
            if reader in self._readers:
                raise ValueError(f"reader {reader!r} already registered")
            self._readers = (*self._readers, reader)

    @property
    def readers(self) -> tuple[ReaderDef, ...]:
        return self._readers

    def select_for(self, spec: SourceSpec) -> ReaderDef:
        """Pick the best reader for a source.

        Args:
            spec: Source to read.

        Returns:
            The selected reader implementation.

        Raises:
            NoMatchError: If every reader refuses the source.
        """
        best: ReaderDef | None = None
        best_priority = -1
        for reader in self._readers:
            priority = reader.match_priority(spec)
            if priority > best_priority:
                best, best_priority = reader, priority
        if best is None:
            raise NoMatchError(spec.source, "no reader accepts this source")
        logger.with_fields(source=spec.source).debug(
            "selected reader %s (priority %d)",
            getattr(best, "__name__", repr(best)),
            best_priority,
        )
        return best
