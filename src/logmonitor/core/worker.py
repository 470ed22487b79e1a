"""Worker: one source reader evaluated against its metric rules."""

import asyncio
import enum
from collections.abc import Sequence

from logmonitor.core.config import SOURCE_LABEL
from logmonitor.core.errors import ReadError, StopError
from logmonitor.core.logs import bind_log_context, clear_log_context, get_logger
from logmonitor.core.models import SourceSpec, SourceStatus
from logmonitor.core.ports import SourceReader
from logmonitor.core.registry import EngineMetrics, MetricRegistry
from logmonitor.core.rules import MetricRule

logger = get_logger(__name__)


class WorkerState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Worker:
    """Runs one read loop task pulling lines from a reader.

    Reader errors never stop the worker: they are logged and counted and the
    loop reads again, relying on the reader's own wait before re-polling.

    Args:
        spec: Source configuration.
        reader: Reader owned by this worker.
        rules: Rules for the enabled metrics, in declaration order.
        registry: Registry receiving per-metric observations.
        engine_metrics: Process-wide counters.
    """

    def __init__(
        self,
        spec: SourceSpec,
        reader: SourceReader,
        rules: Sequence[MetricRule],
        registry: MetricRegistry,
        engine_metrics: EngineMetrics,
    ) -> None:
        self.spec = spec
        self.reader = reader
        self.rules = tuple(rules)
        self.registry = registry
        self.engine_metrics = engine_metrics
        self.state = WorkerState.CREATED
        self.read_errors = 0
        self.failed = False
        self._labels = {SOURCE_LABEL: spec.source}
        self._task: asyncio.Task[None] | None = None
        self._log = logger.with_fields(source=spec.source)

    @classmethod
    def from_spec(
        cls,
        spec: SourceSpec,
        reader: SourceReader,
        registry: MetricRegistry,
        engine_metrics: EngineMetrics,
    ) -> "Worker":
        """Build a worker with rules compiled from the enabled metrics."""
        rules = [MetricRule.from_spec(m) for m in spec.enabled_metrics()]
        return cls(spec, reader, rules, registry, engine_metrics)

    @property
    def source(self) -> str:
        return self.spec.source

    @property
    def status(self) -> SourceStatus:
        if self.failed:
            return SourceStatus.ERROR
        if self.state is WorkerState.RUNNING:
            return SourceStatus.RUNNING
        return SourceStatus.STOPPED

    async def start(self) -> None:
        """Open the reader and spawn the read loop.

        Raises:
            OpenError: If the reader cannot be opened; the worker stays in
                its current state.
            RuntimeError: If the worker was already started.
        """
        if self.state is not WorkerState.CREATED:
            raise RuntimeError(f"worker for {self.source} already started")
        await self.reader.start()
        self.state = WorkerState.RUNNING
        self._task = asyncio.create_task(
            self._read_loop(), name=f"logmonitor-worker:{self.source}"
        )
        self._log.info("worker started")

    async def stop(self) -> None:
        """Ask the read loop to exit and release the reader.

        Does not wait for the loop; use ``wait_stopped`` for that.
        """
        if self.state is not WorkerState.RUNNING:
            return
        self.state = WorkerState.STOPPING
        self._log.debug("stopping worker")
        await self._stop_reader()

    async def _stop_reader(self) -> None:
        try:
            await self.reader.stop()
        except StopError as e:
            self.engine_metrics.stop_errors.inc(self._labels)
            self._log.warning("error stopping reader: %s", e)

    async def wait_stopped(self, timeout: float | None = None) -> bool:
        """Wait until the read loop has exited.

        Returns:
            True if the loop exited (or never ran), False on timeout.
        """
        if self._task is None:
            return True
        done, _ = await asyncio.wait({self._task}, timeout=timeout)
        return bool(done)

    async def _read_loop(self) -> None:
        # The task inherits the context of whoever applied the configuration
        clear_log_context()
        bind_log_context(source=self.source)
        try:
            while self.state is WorkerState.RUNNING:
                try:
                    line = await self.reader.read_line()
                except ReadError as e:
                    if self.state is not WorkerState.RUNNING:
                        break
                    self.read_errors += 1
                    self.engine_metrics.read_errors.inc(self._labels)
                    self._log.info("read error: %s", e)
                    continue
                if self.state is not WorkerState.RUNNING:
                    break
                if not line:
                    continue
                self.process_line(line)
        except Exception:
            self.failed = True
            self._log.exception("read loop crashed")
            await self._stop_reader()
        finally:
            self.state = WorkerState.STOPPED
            self._log.info("worker stopped")

    def process_line(self, line: str) -> int:
        """Evaluate one line against every rule.

        Returns:
            Number of rules that accepted the line.
        """
        self.engine_metrics.lines_processed.inc(self._labels)
        self.engine_metrics.last_processed.set_to_current_time(self._labels)
        matched = 0
        for rule in self.rules:
            if rule.evaluate(line, self.registry, self.source):
                matched += 1
        if matched:
            self._log.debug("line accepted by %d metrics", matched)
            self.engine_metrics.lines_matched.inc(self._labels)
        else:
            self.engine_metrics.lines_unmatched.inc(self._labels)
        return matched
