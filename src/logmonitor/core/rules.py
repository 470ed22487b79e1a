"""Per-metric line evaluation."""

import math
import re
from dataclasses import dataclass

from logmonitor.core.config import SOURCE_LABEL
from logmonitor.core.errors import ParseError
from logmonitor.core.filters import FilterSet, compile_pattern
from logmonitor.core.logs import get_logger
from logmonitor.core.models import FilterGroup, MetricSpec
from logmonitor.core.registry import MetricRegistry

logger = get_logger(__name__)


def parse_value(text: str) -> float:
    """Parse an extracted capture as a float.

    Raises:
        ParseError: If the text is not a number. NaN is rejected.
    """
    try:
        value = float(text.strip())
    except ValueError as e:
        raise ParseError(f"not a number: {text!r}") from e
    if math.isnan(value):
        raise ParseError(f"not a number: {text!r}")
    return value


@dataclass(frozen=True)
class MetricRule:
    """One metric's filters, value extraction and static labels.

    Attributes:
        name: Metric name in the registry.
        filters: Compiled filter set deciding acceptance.
        labels: Static labels, without the source label.
        value_pattern: Optional compiled extraction pattern.
    """

    name: str
    filters: FilterSet
    labels: dict[str, str]
    value_pattern: re.Pattern[str] | None = None

    @classmethod
    def from_spec(cls, spec: MetricSpec) -> "MetricRule":
        """Compile a metric specification.

        A value pattern without explicit filters doubles as the only include
        filter, so lines that cannot yield a value are not counted.

        Raises:
            PatternError: If a pattern does not compile.
        """
        value_pattern = None
        groups = spec.filters
        if spec.value is not None:
            value_pattern = compile_pattern(spec.value, "value")
            if not any(g.include or g.exclude for g in groups):
                groups = (FilterGroup(include=(spec.value,)),)
        return cls(
            name=spec.name,
            filters=FilterSet.compile(groups),
            labels=dict(spec.labels),
            value_pattern=value_pattern,
        )

    def extract(self, line: str) -> float | None:
        """Return the value captured from the line, or None if there is none."""
        if self.value_pattern is None:
            return None
        match = self.value_pattern.search(line)
        if match is None:
            logger.with_fields(metric=self.name).debug("value pattern did not match")
            return None
        try:
            return parse_value(match.group(1) or "")
        except ParseError as e:
            logger.with_fields(metric=self.name).debug("cannot extract value: %s", e)
            return None

    def evaluate(self, line: str, registry: MetricRegistry, source: str) -> bool:
        """Evaluate a line and record an observation if it is accepted.

        Args:
            line: Line without terminator.
            registry: Registry receiving the observation.
            source: Source identifier used as the ``source`` label.

        Returns:
            True if the line was accepted by this rule.
        """
        if not self.filters.accepts(line):
            return False
        labels = {SOURCE_LABEL: source, **self.labels}
        value = self.extract(line)
        if value is None:
            registry.observe(self.name, labels)
        else:
            registry.observe_with_value(self.name, labels, value)
        return True
