"""Prometheus text exposition format (version 0.0.4) encoder."""

import math
from collections.abc import Iterable

from logmonitor.core.instruments import MetricFamily

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == int(value) and abs(value) < 1e15:
        return f"{int(value)}.0"
    return repr(value)


def _format_labels(labels: dict[str, str]) -> str:
    if not labels:
        return ""
    pairs = ",".join(f'{k}="{_escape_label_value(v)}"' for k, v in labels.items())
    return "{" + pairs + "}"


def encode_families(families: Iterable[MetricFamily]) -> str:
    """Encode metric families to Prometheus text format.

    Args:
        families: Families to render. Families are sorted by name; families
            with no series still emit their HELP and TYPE lines.

    Returns:
        Exposition text ending with a newline, or an empty string when there
        are no families.
    """
    lines: list[str] = []
    for family in sorted(families, key=lambda f: f.name):
        lines.append(f"# HELP {family.name} {_escape_help(family.help_text)}")
        lines.append(f"# TYPE {family.name} {family.kind}")
        for sample in family.samples():
            lines.append(
                f"{sample.name}{_format_labels(sample.labels)} "
                f"{_format_value(sample.value)}"
            )

    if not lines:
        return ""

    return "\n".join(lines) + "\n"
