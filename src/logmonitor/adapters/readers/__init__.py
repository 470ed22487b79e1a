"""Built-in source readers."""

from logmonitor.adapters.readers.journal import JournalReader, parse_journal_source
from logmonitor.adapters.readers.plainfile import PipeReader, PlainFileReader
from logmonitor.core.reader_registry import ReaderRegistry

__all__ = [
    "JournalReader",
    "PipeReader",
    "PlainFileReader",
    "build_default_registry",
    "parse_journal_source",
]


def build_default_registry() -> ReaderRegistry:
    """Return a registry holding every built-in reader.

    Plain files register first so they win ties against later readers.
    """
    registry = ReaderRegistry()
    registry.register(PlainFileReader)
    registry.register(PipeReader)
    registry.register(JournalReader)
    return registry
