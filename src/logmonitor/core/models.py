"""Core domain models for exported samples and engine log records."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class LogEntry:
    """A structured log record produced by the engine itself.

    Attributes:
        timestamp: Unix timestamp in seconds.
        level: Log level (e.g., INFO, ERROR, DEBUG).
        message: The log message.
        attributes: Additional structured fields.
    """

    timestamp: float
    level: str
    message: str
    attributes: dict[str, str | int | float | bool] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSample:
    """A single metric measurement.

    Attributes:
        name: Metric name (e.g., errors_total).
        timestamp: Unix timestamp in seconds of the last update.
        value: The metric value.
        labels: Key-value pairs for metric dimensions.
    """

    name: str
    timestamp: float
    value: float
    labels: dict[str, str] = field(default_factory=dict)


class SourceStatus(str, Enum):
    """Per-source status exposed alongside the metrics."""

    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass(frozen=True)
class FilterGroup:
    """Include/exclude regular-expression bundle.

    A group with no includes accepts every line unless an exclude matches.
    """

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()


@dataclass(frozen=True)
class MetricSpec:
    """Configuration of one exported metric inside a source.

    Attributes:
        name: Metric name, also the prefix of the exported instrument names.
        enabled: Disabled metrics are neither registered nor evaluated.
        labels: Static labels in declaration order.
        value: Optional pattern whose first group is exported as a gauge value.
        filters: Filter groups deciding which lines count for this metric.
    """

    name: str
    enabled: bool = True
    labels: dict[str, str] = field(default_factory=dict)
    value: str | None = None
    filters: tuple[FilterGroup, ...] = ()


@dataclass(frozen=True)
class SourceSpec:
    """Configuration of one monitored source.

    Attributes:
        source: Plain path or a reserved scheme such as ``:sd_journal/system``.
        enabled: Disabled sources get no worker.
        options: Reader-specific options.
        metrics: Metrics evaluated against every line of the source.
    """

    source: str
    enabled: bool = True
    options: dict[str, object] = field(default_factory=dict)
    metrics: tuple[MetricSpec, ...] = ()

    def enabled_metrics(self) -> list[MetricSpec]:
        """Return enabled metrics in declaration order."""
        return [m for m in self.metrics if m.enabled]


@dataclass(frozen=True)
class Configuration:
    """Ordered list of sources; the engine's whole input."""

    sources: tuple[SourceSpec, ...] = ()

    def enabled_sources(self) -> list[SourceSpec]:
        """Return enabled sources in declaration order."""
        return [s for s in self.sources if s.enabled]
