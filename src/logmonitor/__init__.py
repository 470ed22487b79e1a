"""logmonitor: turn log lines into Prometheus metrics.

Follows plain files and the systemd journal, evaluates every line against the
configured filters and exposes counters, last-match timestamps and extracted
values over HTTP.
"""

from logmonitor.adapters.readers import (
    JournalReader,
    PipeReader,
    PlainFileReader,
    build_default_registry,
)
from logmonitor.adapters.storage import RingBufferLogStorage, SQLiteCursorStore
from logmonitor.core.config import load_configuration, parse_configuration
from logmonitor.core.errors import (
    CompileError,
    ConfigurationError,
    LogMonitorError,
    NoMatchError,
    OpenError,
    ParseError,
    PatternError,
    ReadError,
    SourceError,
    StopError,
    StorageError,
    ValidationError,
)
from logmonitor.core.models import (
    Configuration,
    FilterGroup,
    MetricSpec,
    SourceSpec,
    SourceStatus,
)
from logmonitor.core.reader_registry import ReaderRegistry
from logmonitor.core.registry import EngineMetrics, MetricRegistry
from logmonitor.core.supervisor import Supervisor

from logmonitor.version import __version__

__all__ = [
    "CompileError",
    "Configuration",
    "ConfigurationError",
    "EngineMetrics",
    "FilterGroup",
    "JournalReader",
    "LogMonitorError",
    "MetricRegistry",
    "MetricSpec",
    "NoMatchError",
    "OpenError",
    "ParseError",
    "PatternError",
    "PipeReader",
    "PlainFileReader",
    "ReadError",
    "ReaderRegistry",
    "RingBufferLogStorage",
    "SQLiteCursorStore",
    "SourceError",
    "SourceSpec",
    "SourceStatus",
    "StopError",
    "StorageError",
    "Supervisor",
    "ValidationError",
    "__version__",
    "build_default_registry",
    "load_configuration",
    "parse_configuration",
]
