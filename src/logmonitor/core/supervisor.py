"""Supervisor: owns the worker set of the active configuration."""

import asyncio
from pathlib import Path

from logmonitor.core.config import load_configuration
from logmonitor.core.errors import ConfigurationError, OpenError, SourceError
from logmonitor.core.instruments import MetricFamily
from logmonitor.core.logs import get_logger
from logmonitor.core.models import Configuration, SourceStatus
from logmonitor.core.reader_registry import ReaderRegistry
from logmonitor.core.registry import EngineMetrics, MetricRegistry
from logmonitor.core.worker import Worker

logger = get_logger(__name__)

# Upper bound for waiting on read loops at shutdown
SHUTDOWN_TIMEOUT = 5.0


class Supervisor:
    """Builds, starts and replaces workers as configurations are applied.

    Reloads are serialized; a second ``apply`` waits for the first to finish
    and then replaces its result.

    Args:
        readers: Registry used to pick a reader for every source.
        config_path: Default path used by ``load`` and ``reload``.
        registry: Per-metric instruments; created when omitted.
        engine_metrics: Process-wide counters; created when omitted.
    """

    def __init__(
        self,
        readers: ReaderRegistry,
        config_path: str | Path | None = None,
        registry: MetricRegistry | None = None,
        engine_metrics: EngineMetrics | None = None,
    ) -> None:
        self.readers = readers
        self.config_path = config_path
        self.registry = registry or MetricRegistry()
        self.engine_metrics = engine_metrics or EngineMetrics()
        self.config: Configuration | None = None
        self._workers: tuple[Worker, ...] = ()
        self._failed: dict[str, SourceStatus] = {}
        self._lock = asyncio.Lock()

    @property
    def workers(self) -> tuple[Worker, ...]:
        return self._workers

    def collect(self) -> list[MetricFamily]:
        """Return engine and per-metric families, refreshing source status."""
        self._publish_status()
        return [*self.engine_metrics.collect(), *self.registry.collect()]

    def load(self, path: str | Path | None = None) -> Configuration:
        """Load and validate a configuration file.

        Raises:
            ConfigurationError: If the file cannot be loaded or is invalid.
        """
        path = path or self.config_path
        if path is None:
            raise ConfigurationError("no configuration file given")
        return load_configuration(path)

    def _build_workers(self, config: Configuration) -> list[Worker]:
        workers: list[Worker] = []
        for spec in config.enabled_sources():
            log = logger.with_fields(source=spec.source)
            try:
                reader_def = self.readers.select_for(spec)
                reader = reader_def(spec)
                workers.append(
                    Worker.from_spec(spec, reader, self.registry, self.engine_metrics)
                )
            except (SourceError, ConfigurationError) as e:
                log.error("cannot create worker: %s", e)
                self._failed[spec.source] = SourceStatus.ERROR
        return workers

    async def apply(self, config: Configuration) -> None:
        """Replace the running workers with workers for ``config``.

        Per-source failures are logged and leave that source in the error
        status; every other source is started.
        """
        async with self._lock:
            old = self._workers
            for worker in old:
                await worker.stop()

            self._failed = {}
            workers = self._build_workers(config)
            self.registry.reconcile(config)

            started: list[Worker] = []
            for worker in workers:
                try:
                    await worker.start()
                except OpenError as e:
                    logger.with_fields(source=worker.source).error(
                        "cannot start worker: %s", e
                    )
                    self._failed[worker.source] = SourceStatus.ERROR
                    continue
                started.append(worker)

            self._workers = tuple(started)
            self.config = config
            self._publish_status()
            logger.info(
                "configuration applied: %d workers running, %d failed",
                len(started),
                len(self._failed),
            )

    async def reload(self, path: str | Path | None = None) -> bool:
        """Load the configuration again and apply it.

        On a load failure the active configuration keeps running.

        Returns:
            True if the new configuration was applied.
        """
        try:
            config = self.load(path)
        except ConfigurationError as e:
            self.engine_metrics.config_reloads.inc({"result": "failure"})
            logger.error("reloading configuration failed: %s", e)
            logger.error("using old configuration")
            return False
        await self.apply(config)
        self.engine_metrics.config_reloads.inc({"result": "success"})
        logger.info("configuration reloaded")
        return True

    async def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Stop every worker and wait for their read loops to exit."""
        async with self._lock:
            workers = self._workers
            for worker in workers:
                await worker.stop()
            for worker in workers:
                if not await worker.wait_stopped(timeout):
                    logger.with_fields(source=worker.source).warning(
                        "read loop did not exit within %.1fs", timeout
                    )
            self._workers = ()
            self._failed = {}
            self._publish_status()

    def status(self) -> dict[str, SourceStatus]:
        """Return the status of every source of the active configuration."""
        statuses = {w.source: w.status for w in self._workers}
        statuses.update(self._failed)
        return statuses

    def _publish_status(self) -> None:
        self.engine_metrics.clear_status()
        for source, status in self.status().items():
            self.engine_metrics.set_status(source, status)
