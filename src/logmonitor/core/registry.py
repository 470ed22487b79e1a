"""Exported metric instruments.

MetricRegistry holds the per-metric instrument triples derived from the
configuration and is rebuilt on every reload. EngineMetrics holds the
process-wide counters that survive reloads.
"""

import threading
from collections.abc import Mapping
from dataclasses import dataclass

from logmonitor.core.config import SOURCE_LABEL
from logmonitor.core.instruments import MetricFamily, counter, gauge
from logmonitor.core.logs import get_logger
from logmonitor.core.models import Configuration, SourceStatus
from logmonitor.version import __version__

logger = get_logger(__name__)

ENGINE_NAMESPACE = "logmonitor"


def metric_label_schemas(config: Configuration) -> dict[str, tuple[str, ...]]:
    """Return the label schema of every enabled metric.

    The schema is ``source`` followed by the static label keys of the first
    occurrence of the metric, in declaration order.
    """
    schemas: dict[str, tuple[str, ...]] = {}
    for source in config.enabled_sources():
        for metric in source.enabled_metrics():
            if metric.name not in schemas:
                schemas[metric.name] = (SOURCE_LABEL, *metric.labels)
    return schemas


@dataclass(frozen=True)
class MetricGroup:
    """Instrument triple exported for one metric name."""

    matched: MetricFamily
    last_match: MetricFamily
    value: MetricFamily

    @classmethod
    def create(cls, name: str, labelnames: tuple[str, ...]) -> "MetricGroup":
        return cls(
            matched=counter(
                f"{name}_total", "Total number of lines matched", labelnames
            ),
            last_match=gauge(
                f"{name}_last_match_seconds", "Last line match unix time", labelnames
            ),
            value=gauge(f"{name}_value", "Last value extracted from lines", labelnames),
        )

    def families(self) -> tuple[MetricFamily, ...]:
        return (self.matched, self.last_match, self.value)


class MetricRegistry:
    """Live set of per-metric instruments keyed by metric name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._groups: dict[str, MetricGroup] = {}

    def reconcile(self, config: Configuration) -> None:
        """Replace every instrument with fresh ones for the configuration.

        All previous instruments are dropped, so values restart from zero and
        no stale label schema survives a reload.
        """
        schemas = metric_label_schemas(config)
        groups = {
            name: MetricGroup.create(name, labelnames)
            for name, labelnames in schemas.items()
        }
        with self._lock:
            dropped = len(self._groups)
            self._groups = groups
        logger.debug(
            "metrics reconciled: %d dropped, %d registered", dropped, len(groups)
        )
        for name, labelnames in schemas.items():
            logger.with_fields(metric=name).debug(
                "registered metric with labels %s", ", ".join(labelnames)
            )

    def names(self) -> list[str]:
        """Return registered metric names in registration order."""
        return list(self._groups)

    def label_schema(self, name: str) -> tuple[str, ...] | None:
        """Return the label schema of a metric, or None if not registered."""
        group = self._groups.get(name)
        return None if group is None else group.matched.labelnames

    def group(self, name: str) -> MetricGroup | None:
        return self._groups.get(name)

    def observe(self, name: str, labels: Mapping[str, str]) -> None:
        """Count a match: increment the counter and stamp the last-match time.

        Unknown names are ignored.
        """
        group = self._groups.get(name)
        if group is None:
            return
        try:
            group.matched.inc(labels)
            group.last_match.set_to_current_time(labels)
        except ValueError as e:
            logger.with_fields(metric=name).warning("observe failed: %s", e)

    def observe_with_value(
        self, name: str, labels: Mapping[str, str], value: float
    ) -> None:
        """Count a match and record the extracted value.

        Unknown names are ignored.
        """
        group = self._groups.get(name)
        if group is None:
            return
        try:
            group.matched.inc(labels)
            group.last_match.set_to_current_time(labels)
            group.value.set(value, labels)
        except ValueError as e:
            logger.with_fields(metric=name).warning("observe failed: %s", e)

    def collect(self) -> list[MetricFamily]:
        """Return every registered family."""
        groups = list(self._groups.values())
        return [family for group in groups for family in group.families()]


class EngineMetrics:
    """Process-wide counters labeled by source identifier."""

    def __init__(self, namespace: str = ENGINE_NAMESPACE) -> None:
        def name(suffix: str) -> str:
            return f"{namespace}_{suffix}"

        labels = (SOURCE_LABEL,)
        self.lines_processed = counter(
            name("lines_processed_total"), "Total number of lines processed", labels
        )
        self.lines_matched = counter(
            name("lines_matched_total"),
            "Total number of lines matched by at least one metric",
            labels,
        )
        self.lines_unmatched = counter(
            name("lines_unmatched_total"),
            "Total number of lines matched by no metric",
            labels,
        )
        self.read_errors = counter(
            name("read_errors_total"), "Total number of errors reading lines", labels
        )
        self.stop_errors = counter(
            name("stop_errors_total"), "Total number of errors stopping readers", labels
        )
        self.last_processed = gauge(
            name("last_processed_seconds"), "Last processed line unix time", labels
        )
        self.source_status = gauge(
            name("source_status"),
            "Current status of each source (running, stopped or error)",
            (SOURCE_LABEL, "status"),
        )
        self.config_reloads = counter(
            name("config_reloads_total"),
            "Total number of configuration reloads by result",
            ("result",),
        )
        self.build_info = gauge(
            name("build_info"),
            "A metric with a constant 1 value labeled by the logmonitor version",
            ("version",),
        )
        self.build_info.set(1.0, {"version": __version__})

    def set_status(self, source: str, status: SourceStatus) -> None:
        """Flag ``status`` as the current status of a source."""
        for candidate in SourceStatus:
            self.source_status.set(
                1.0 if candidate is status else 0.0,
                {SOURCE_LABEL: source, "status": candidate.value},
            )

    def clear_status(self) -> None:
        """Forget the status of every source."""
        self.source_status.clear()

    def collect(self) -> list[MetricFamily]:
        return [
            self.lines_processed,
            self.lines_matched,
            self.lines_unmatched,
            self.read_errors,
            self.stop_errors,
            self.last_processed,
            self.source_status,
            self.config_reloads,
            self.build_info,
        ]
