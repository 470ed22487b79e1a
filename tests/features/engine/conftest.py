"""BDD step definitions for the end-to-end engine features.

Each "When" step runs the whole engine inside one ``asyncio.run`` call:
apply the configuration, append the lines, wait for them to be processed,
snapshot metrics and status, then shut down.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import pytest
import yaml
from pytest_bdd import given, parsers, then, when

from logmonitor.adapters.readers import build_default_registry
from logmonitor.core.encoding.prometheus import encode_families
from logmonitor.core.supervisor import Supervisor
from tests.helpers import wait_for

POLL_OPTIONS = {"poll": True, "poll_interval": 0.02}


@dataclass
class EngineScenarioContext:
    """State shared between the steps of one scenario."""

    tmp_path: Path
    log_path: Path | None = None
    config_path: Path | None = None
    processed: float = 0.0
    metrics_text: str = ""
    status: dict[str, str] = field(default_factory=dict)


@pytest.fixture
def ctx(tmp_path: Path) -> EngineScenarioContext:
    return EngineScenarioContext(tmp_path=tmp_path)


def _sample_values(text: str, name: str) -> list[float]:
    values = []
    for line in text.splitlines():
        if line.startswith("#"):
            continue
        series, _, value = line.rpartition(" ")
        if series.split("{", 1)[0] == name:
            values.append(float(value))
    return values


async def _run_engine(ctx: EngineScenarioContext, lines: list[str]) -> None:
    assert ctx.log_path is not None and ctx.config_path is not None
    supervisor = Supervisor(build_default_registry(), ctx.config_path)
    await supervisor.apply(supervisor.load())
    source = {"source": str(ctx.log_path)}
    processed = supervisor.engine_metrics.lines_processed
    try:
        with ctx.log_path.open("a", encoding="utf-8") as f:
            f.writelines(f"{line}\n" for line in lines)
        await wait_for(lambda: processed.get(source) == len(lines), timeout=5.0)
        ctx.processed = processed.get(source) or 0.0
        ctx.status = {s: status.value for s, status in supervisor.status().items()}
        ctx.metrics_text = encode_families(supervisor.collect())
    finally:
        await supervisor.shutdown()


# === Given ===
@given(parsers.parse('a log file "{name}"'))
def step_log_file(ctx: EngineScenarioContext, name: str) -> None:
    ctx.log_path = ctx.tmp_path / name
    ctx.log_path.write_text("", encoding="utf-8")


@given("a configuration watching it with:")
def step_configuration(ctx: EngineScenarioContext, docstring: str) -> None:
    assert ctx.log_path is not None
    source = {"source": str(ctx.log_path), "options": POLL_OPTIONS}
    source.update(yaml.safe_load(docstring))
    ctx.config_path = ctx.tmp_path / "logmonitor.yml"
    ctx.config_path.write_text(
        yaml.safe_dump({"sources": [source]}), encoding="utf-8"
    )


# === When ===
@when("these lines are appended:")
def step_append_lines(ctx: EngineScenarioContext, datatable: list[list[str]]) -> None:
    header, *rows = datatable
    column = header.index("line")
    asyncio.run(_run_engine(ctx, [row[column] for row in rows]))


# === Then ===
@then(parsers.parse("{count:d} lines are processed"))
def step_lines_processed(ctx: EngineScenarioContext, count: int) -> None:
    assert ctx.processed == count


@then(parsers.parse('the metrics page shows "{name}" equal to {value:g}'))
def step_metric_value(ctx: EngineScenarioContext, name: str, value: float) -> None:
    assert _sample_values(ctx.metrics_text, name) == [value]


@then(parsers.parse('the metrics page has no "{name}" series'))
def step_no_series(ctx: EngineScenarioContext, name: str) -> None:
    assert f"# TYPE {name} " in ctx.metrics_text
    assert _sample_values(ctx.metrics_text, name) == []


@then(parsers.parse('the source is reported as "{status}"'))
def step_source_status(ctx: EngineScenarioContext, status: str) -> None:
    assert ctx.log_path is not None
    assert ctx.status == {str(ctx.log_path): status}
