"""Shared test fixtures for all test modules."""

from collections.abc import Iterable
from pathlib import Path

import httpx
import pytest

from logmonitor.adapters.storage.ring_buffer import RingBufferLogStorage
from logmonitor.core.errors import ReadError
from logmonitor.core.models import FilterGroup, MetricSpec, SourceSpec
from logmonitor.core.reader_registry import ReaderRegistry
from logmonitor.core.registry import EngineMetrics, MetricRegistry
from tests.helpers import FakeReader


@pytest.fixture(autouse=True)
def _reset_fake_readers() -> Iterable[None]:
    FakeReader.instances = []
    yield
    FakeReader.instances = []


@pytest.fixture
def fake_registry() -> ReaderRegistry:
    """Reader registry holding only FakeReader."""
    registry = ReaderRegistry()
    registry.register(FakeReader)
    return registry


@pytest.fixture
def metric_registry() -> MetricRegistry:
    return MetricRegistry()


@pytest.fixture
def engine_metrics() -> EngineMetrics:
    return EngineMetrics()


@pytest.fixture
def make_source():
    """Factory fixture building a SourceSpec with one or more metrics."""

    def _source(
        source: str = "/var/log/app.log",
        *metrics: MetricSpec,
        options: dict[str, object] | None = None,
        enabled: bool = True,
    ) -> SourceSpec:
        return SourceSpec(
            source=source,
            enabled=enabled,
            options=options or {},
            metrics=metrics,
        )

    return _source


@pytest.fixture
def errors_metric() -> MetricSpec:
    """Metric counting ERROR lines except ignored ones."""
    return MetricSpec(
        name="errors",
        filters=(FilterGroup(include=("ERROR",), exclude=("ERROR: ignore",)),),
    )


@pytest.fixture
def read_error() -> ReadError:
    return ReadError("/var/log/app.log", "boom")


@pytest.fixture
def config_file(tmp_path: Path):
    """Factory fixture writing a YAML configuration and returning its path."""

    def _write(text: str, name: str = "logmonitor.yml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def cursor_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for cursor store tests."""
    return str(tmp_path / "cursors.db")


@pytest.fixture
def log_storage() -> RingBufferLogStorage:
    return RingBufferLogStorage(max_size=100)


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app([collector])
            async with asgi_test_client(app) as client:
                response = await client.get("/metrics")
    """

    def _get_client(app):
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
