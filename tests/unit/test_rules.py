"""Tests for per-metric rules and value parsing."""

import pytest

from logmonitor.core.errors import ParseError
from logmonitor.core.models import Configuration, FilterGroup, MetricSpec, SourceSpec
from logmonitor.core.registry import MetricRegistry
from logmonitor.core.rules import MetricRule, parse_value


def _registry_for(*metrics: MetricSpec) -> MetricRegistry:
    registry = MetricRegistry()
    registry.reconcile(
        Configuration(sources=(SourceSpec(source="/a", metrics=metrics),))
    )
    return registry


class TestParseValue:
    @pytest.mark.core
    @pytest.mark.parametrize(
        ("text", "expected"),
        [("42", 42.0), (" 1.5 ", 1.5), ("-3", -3.0), ("1e3", 1000.0), ("inf", float("inf"))],
    )
    def test_parses_numbers(self, text: str, expected: float) -> None:
        assert parse_value(text) == expected

    @pytest.mark.core
    @pytest.mark.parametrize("text", ["", "abc", "nan", "12ms"])
    def test_rejects_non_numbers(self, text: str) -> None:
        with pytest.raises(ParseError):
            parse_value(text)


class TestMetricRule:
    @pytest.mark.tier(1)
    @pytest.mark.core
    def test_value_extraction_round_trip(self) -> None:
        spec = MetricSpec(name="v", value=r"value=(\d+)")
        registry = _registry_for(spec)
        rule = MetricRule.from_spec(spec)
        labels = {"source": "/a"}

        assert rule.evaluate("no match", registry, "/a") is False
        assert rule.evaluate("value=42 ok", registry, "/a") is True

        group = registry.group("v")
        assert group is not None
        assert group.matched.get(labels) == 1.0
        assert group.value.get(labels) == 42.0

    @pytest.mark.core
    def test_value_pattern_with_filters_keeps_filters(self) -> None:
        spec = MetricSpec(
            name="v",
            value=r"took (\d+)ms",
            filters=(FilterGroup(include=("GET",)),),
        )
        registry = _registry_for(spec)
        rule = MetricRule.from_spec(spec)
        labels = {"source": "/a"}

        assert rule.evaluate("GET / done", registry, "/a") is True

        group = registry.group("v")
        assert group is not None
        assert group.matched.get(labels) == 1.0
        assert group.value.get(labels) is None

    @pytest.mark.core
    def test_unparsable_capture_leaves_gauge_unchanged(self) -> None:
        spec = MetricSpec(
            name="v",
            value=r"took (\S+)",
            filters=(FilterGroup(include=("took",)),),
        )
        registry = _registry_for(spec)
        rule = MetricRule.from_spec(spec)
        labels = {"source": "/a"}

        rule.evaluate("took 5", registry, "/a")
        rule.evaluate("took forever", registry, "/a")

        group = registry.group("v")
        assert group is not None
        assert group.matched.get(labels) == 2.0
        assert group.value.get(labels) == 5.0

    @pytest.mark.core
    def test_static_labels_are_added(self) -> None:
        spec = MetricSpec(name="m", labels={"severity": "high"})
        registry = _registry_for(spec)
        rule = MetricRule.from_spec(spec)

        rule.evaluate("anything", registry, "/a")

        group = registry.group("m")
        assert group is not None
        assert group.matched.get({"source": "/a", "severity": "high"}) == 1.0

    @pytest.mark.core
    def test_rule_is_immutable(self) -> None:
        rule = MetricRule.from_spec(MetricSpec(name="m"))

        with pytest.raises(AttributeError):
            rule.name = "other"  # type: ignore[misc]
