"""YAML configuration loading and validation.

The file is a mapping with a ``sources`` list; see ``examples/logmonitor.yml``.
Loading either returns a fully validated Configuration or raises a
ConfigurationError subclass, so a failed reload never replaces a working
configuration.
"""

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from logmonitor.core.errors import ConfigurationError, ValidationError
from logmonitor.core.filters import FilterSet, compile_pattern
from logmonitor.core.logs import get_logger
from logmonitor.core.models import Configuration, FilterGroup, MetricSpec, SourceSpec

logger = get_logger(__name__)

METRIC_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
LABEL_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Label added by the engine to every per-metric instrument
SOURCE_LABEL = "source"

_CONFIG_KEYS = frozenset({"sources"})
_SOURCE_KEYS = frozenset({"source", "enabled", "options", "metrics"})
_METRIC_KEYS = frozenset({"name", "enabled", "labels", "value", "filters"})
_FILTER_KEYS = frozenset({"include", "exclude"})


def _warn_unknown(data: Mapping[str, Any], known: frozenset[str], where: str) -> None:
    unknown = sorted(str(k) for k in data if k not in known)
    if unknown:
        logger.with_fields(where=where).warning(
            "unknown fields in configuration: %s", ", ".join(unknown)
        )


def _expect_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"{where}: expected a mapping, got {type(value).__name__}")
    return value


def _expect_list(value: Any, where: str) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, list):
        raise ValidationError(f"{where}: expected a list, got {type(value).__name__}")
    return value


def _expect_bool(value: Any, where: str) -> bool:
    if value is None:
        return True
    if not isinstance(value, bool):
        raise ValidationError(f"{where}: expected true or false, got {value!r}")
    return value


def _patterns(value: Any, where: str) -> tuple[str, ...]:
    items = _expect_list(value, where)
    for item in items:
        if not isinstance(item, str):
            raise ValidationError(f"{where}: patterns must be strings, got {item!r}")
    return tuple(items)


def _parse_filter(data: Any, where: str) -> FilterGroup:
    data = _expect_mapping(data, where)
    _warn_unknown(data, _FILTER_KEYS, where)
    return FilterGroup(
        include=_patterns(data.get("include"), f"{where}.include"),
        exclude=_patterns(data.get("exclude"), f"{where}.exclude"),
    )


def _parse_metric(data: Any, where: str) -> MetricSpec:
    data = _expect_mapping(data, where)
    _warn_unknown(data, _METRIC_KEYS, where)
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ValidationError(f"{where}: missing metric 'name'")
    value = data.get("value")
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{where}: 'value' must be a pattern string")
    labels = {
        str(k): "" if v is None else str(v)
        for k, v in _expect_mapping(data.get("labels"), f"{where}.labels").items()
    }
    filters = tuple(
        _parse_filter(f, f"{where}.filters[{i}]")
        for i, f in enumerate(_expect_list(data.get("filters"), f"{where}.filters"))
    )
    return MetricSpec(
        name=name,
        enabled=_expect_bool(data.get("enabled"), f"{where}.enabled"),
        labels=labels,
        value=value or None,
        filters=filters,
    )


def _parse_source(data: Any, where: str) -> SourceSpec:
    data = _expect_mapping(data, where)
    _warn_unknown(data, _SOURCE_KEYS, where)
    source = data.get("source")
    if not isinstance(source, str) or not source:
        raise ValidationError(f"{where}: missing 'source'")
    metrics = tuple(
        _parse_metric(m, f"{where}.metrics[{i}]")
        for i, m in enumerate(_expect_list(data.get("metrics"), f"{where}.metrics"))
    )
    options = {
        str(k): v
        for k, v in _expect_mapping(data.get("options"), f"{where}.options").items()
    }
    return SourceSpec(
        source=source,
        enabled=_expect_bool(data.get("enabled"), f"{where}.enabled"),
        options=options,
        metrics=metrics,
    )


def parse_configuration(data: Any) -> Configuration:
    """Build and validate a Configuration from decoded YAML data.

    Args:
        data: The document as returned by ``yaml.safe_load``.

    Returns:
        Validated Configuration.

    Raises:
        ValidationError: On structural or invariant violations.
        PatternError: On a pattern that does not compile.
    """
    data = _expect_mapping(data, "configuration")
    _warn_unknown(data, _CONFIG_KEYS, "configuration")
    sources = tuple(
        _parse_source(s, f"sources[{i}]")
        for i, s in enumerate(_expect_list(data.get("sources"), "sources"))
    )
    config = Configuration(sources=sources)
    validate_configuration(config)
    return config


def _validate_metric(metric: MetricSpec, where: str) -> None:
    if not METRIC_NAME_RE.match(metric.name):
        raise ValidationError(f"{where}: invalid metric name {metric.name!r}")
    for key in metric.labels:
        if not LABEL_NAME_RE.match(key) or key.startswith("__"):
            raise ValidationError(f"{where}: invalid label name {key!r}")
        if key == SOURCE_LABEL:
            raise ValidationError(f"{where}: label name {key!r} is reserved")
    FilterSet.compile(metric.filters)
    if metric.value is not None:
        pattern = compile_pattern(metric.value, "value")
        if pattern.groups != 1:
            raise ValidationError(
                f"{where}: value pattern {metric.value!r} must have exactly one "
                f"capturing group, has {pattern.groups}"
            )


def validate_configuration(config: Configuration) -> None:
    """Check configuration invariants.

    Only enabled sources and metrics take part in the uniqueness and label
    shape checks, because only they are registered and exported.

    Raises:
        ValidationError: On the first violated invariant.
        PatternError: On a pattern that does not compile.
    """
    if not config.sources:
        raise ValidationError("no sources to monitor")

    seen_sources: set[str] = set()
    label_keys: dict[str, tuple[frozenset[str], str]] = {}
    for i, source in enumerate(config.sources):
        where = f"sources[{i}] ({source.source})"
        if not source.enabled:
            continue
        if source.source in seen_sources:
            raise ValidationError(f"{where}: duplicated source")
        seen_sources.add(source.source)

        seen_metrics: set[str] = set()
        for j, metric in enumerate(source.metrics):
            metric_where = f"{where}.metrics[{j}] ({metric.name})"
            _validate_metric(metric, metric_where)
            if not metric.enabled:
                continue
            if metric.name in seen_metrics:
                raise ValidationError(f"{metric_where}: duplicated metric name")
            seen_metrics.add(metric.name)

            keys = frozenset(metric.labels)
            if metric.name in label_keys:
                expected, first_where = label_keys[metric.name]
                if keys != expected:
                    raise ValidationError(
                        f"{metric_where}: labels {sorted(keys)} differ from "
                        f"{sorted(expected)} declared in {first_where}"
                    )
            else:
                label_keys[metric.name] = (keys, metric_where)


def load_configuration(path: str | Path) -> Configuration:
    """Read and validate a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Validated Configuration.

    Raises:
        ConfigurationError: If the file cannot be read or parsed, or if any
            validation fails.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read configuration {path}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"cannot parse configuration {path}: {e}") from e
    config = parse_configuration(data)
    logger.with_fields(path=str(path)).debug(
        "configuration loaded: %d sources", len(config.sources)
    )
    return config
