"""Error hierarchy for logmonitor.

Configuration-level errors abort a configuration load. Source-level errors
are local to a single worker and never abort the process.
"""


class LogMonitorError(Exception):
    """Base class for all logmonitor errors."""


class ConfigurationError(LogMonitorError):
    """Configuration could not be loaded; the load attempt is aborted."""


class ValidationError(ConfigurationError):
    """Configuration violates a naming, label or uniqueness rule."""


class CompileError(ConfigurationError):
    """A regular expression in the configuration does not compile."""


class PatternError(CompileError):
    """A filter pattern failed to compile.

    Attributes:
        pattern: The offending pattern text.
        kind: Which list the pattern came from ("include", "exclude" or "value").
    """

    def __init__(self, pattern: str, kind: str, reason: str) -> None:
        super().__init__(f"error compiling {kind} pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.kind = kind
        self.reason = reason


class SourceError(LogMonitorError):
    """Error bound to one source; isolated to that source's worker.

    Attributes:
        source: Source identifier the error belongs to.
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class OpenError(SourceError):
    """Reader failed to acquire its OS resource."""


class ReadError(SourceError):
    """Reader failed while waiting for or decoding the next line."""


class StopError(SourceError):
    """Reader failed to release its OS resource cleanly."""


class NoMatchError(SourceError):
    """No registered reader accepts the source identifier."""


class ParseError(LogMonitorError):
    """Extracted value is not a valid floating-point number."""


class StorageError(LogMonitorError):
    """A persistence backend (cursor store) failed."""
