"""Counter and gauge instrument families.

A family is one exported metric name with a fixed label schema; each distinct
combination of label values is one series. Updates take the family's lock,
so many workers may update the same family concurrently.
"""

import threading
import time
from collections.abc import Iterable, Mapping

from logmonitor.core.models import MetricSample

COUNTER = "counter"
GAUGE = "gauge"


class MetricFamily:
    """A named counter or gauge with a fixed label schema.

    Args:
        name: Exported metric name.
        kind: COUNTER or GAUGE.
        help_text: Description rendered as ``# HELP``.
        labelnames: Label schema, in exposition order.
    """

    def __init__(
        self,
        name: str,
        kind: str,
        help_text: str,
        labelnames: Iterable[str] = (),
    ) -> None:
        if kind not in (COUNTER, GAUGE):
            raise ValueError(f"unknown metric kind {kind!r}")
        self.name = name
        self.kind = kind
        self.help_text = help_text
        self.labelnames = tuple(labelnames)
        self._lock = threading.Lock()
        self._series: dict[tuple[str, ...], tuple[float, float]] = {}

    def _key(self, labels: Mapping[str, str]) -> tuple[str, ...]:
        missing = [n for n in self.labelnames if n not in labels]
        if missing:
            raise ValueError(f"{self.name}: missing label values for {missing}")
        return tuple(str(labels[n]) for n in self.labelnames)

    def inc(self, labels: Mapping[str, str] | None = None, amount: float = 1.0) -> None:
        """Add ``amount`` to the series; counters only accept non-negative steps."""
        if self.kind == COUNTER and amount < 0:
            raise ValueError(f"{self.name}: counters can only increase")
        key = self._key(labels or {})
        with self._lock:
            current, _ = self._series.get(key, (0.0, 0.0))
            self._series[key] = (current + amount, time.time())

    def set(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        """Set a gauge series to ``value``."""
        if self.kind != GAUGE:
            raise ValueError(f"{self.name}: only gauges can be set")
        key = self._key(labels or {})
        with self._lock:
            self._series[key] = (float(value), time.time())

    def set_to_current_time(self, labels: Mapping[str, str] | None = None) -> None:
        """Set a gauge series to the current unix time."""
        self.set(time.time(), labels)

    def get(self, labels: Mapping[str, str] | None = None) -> float | None:
        """Return the current value of a series, or None if never updated."""
        key = self._key(labels or {})
        with self._lock:
            entry = self._series.get(key)
        return None if entry is None else entry[0]

    def clear(self) -> None:
        """Drop all series."""
        with self._lock:
            self._series.clear()

    def samples(self) -> list[MetricSample]:
        """Return a snapshot of every series, ordered by label values."""
        with self._lock:
            items = sorted(self._series.items())
        return [
            MetricSample(
                name=self.name,
                timestamp=updated,
                value=value,
                labels=dict(zip(self.labelnames, key, strict=True)),
            )
            for key, (value, updated) in items
        ]


def counter(name: str, help_text: str, labelnames: Iterable[str] = ()) -> MetricFamily:
    """Create a counter family."""
    return MetricFamily(name, COUNTER, help_text, labelnames)


def gauge(name: str, help_text: str, labelnames: Iterable[str] = ()) -> MetricFamily:
    """Create a gauge family."""
    return MetricFamily(name, GAUGE, help_text, labelnames)
