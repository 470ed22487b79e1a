"""Command line entry point.

Usage:
    logmonitor --config.file logmonitor.yml --web.listen-address :9704

Endpoints:
    /metrics  - Prometheus text format
    /status   - JSON map of source to status
    /logs     - NDJSON of the engine's recent log records (?since=, ?level=)

Send SIGHUP to reload the configuration; SIGINT or SIGTERM stop every worker
before the process exits.
"""

import argparse
import asyncio
import signal
import sys
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import uvicorn

from logmonitor.adapters.frameworks.asgi import create_asgi_app
from logmonitor.adapters.logging import LEVELS, configure_logging
from logmonitor.adapters.readers import build_default_registry
from logmonitor.adapters.storage import RingBufferLogStorage
from logmonitor.core.errors import ConfigurationError
from logmonitor.core.logs import get_logger
from logmonitor.core.supervisor import Supervisor
from logmonitor.version import __version__

logger = get_logger("logmonitor.cli")

DEFAULT_CONFIG_FILE = "logmonitor.yml"
DEFAULT_LISTEN_ADDRESS = ":9704"


def parse_listen_address(address: str) -> tuple[str, int]:
    """Split ``[host]:port`` into host and port.

    An empty host listens on every interface; IPv6 hosts go in brackets.

    Raises:
        ValueError: If the address has no valid port.
    """
    host, sep, port_text = address.rpartition(":")
    if not sep:
        raise ValueError(f"listen address {address!r} has no port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"invalid port in listen address {address!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range in listen address {address!r}")
    return host or "0.0.0.0", port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logmonitor", description="Export metrics extracted from log lines."
    )
    parser.add_argument(
        "--config.file",
        dest="config_file",
        default=DEFAULT_CONFIG_FILE,
        help=f"configuration file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=DEFAULT_LISTEN_ADDRESS,
        help=f"address to expose metrics on (default: {DEFAULT_LISTEN_ADDRESS})",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=sorted(LEVELS),
        help="minimum level of logged records (default: info)",
    )
    parser.add_argument(
        "--log.file", dest="log_file", default=None, help="log to this file"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


class _Server(uvicorn.Server):
    """uvicorn server that leaves SIGINT and SIGTERM to ``run``.

    uvicorn re-raises the captured signal once ``serve`` returns, which would
    kill the process before the workers are stopped.
    """

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


async def run(
    config_file: str, host: str, port: int, log_storage: RingBufferLogStorage
) -> int:
    """Load the configuration, start the workers and serve until signalled.

    SIGHUP reloads the configuration. SIGINT and SIGTERM stop the HTTP
    server, then every worker, before returning.

    Returns:
        Process exit status.
    """
    supervisor = Supervisor(build_default_registry(), config_file)
    try:
        config = supervisor.load()
    except ConfigurationError as e:
        logger.error("cannot load configuration: %s", e)
        return 1

    app = create_asgi_app([supervisor], log_storage, supervisor.status)
    server = _Server(
        uvicorn.Config(app, host=host, port=port, lifespan="off", log_config=None)
    )

    loop = asyncio.get_running_loop()
    reloads: set[asyncio.Task[bool]] = set()

    def on_sighup() -> None:
        logger.info("SIGHUP received, reloading configuration")
        task = loop.create_task(supervisor.reload())
        reloads.add(task)
        task.add_done_callback(reloads.discard)

    def on_terminate(signum: signal.Signals) -> None:
        logger.info("%s received, stopping", signum.name)
        server.should_exit = True

    loop.add_signal_handler(signal.SIGHUP, on_sighup)
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, on_terminate, signum)
    try:
        await supervisor.apply(config)
        logger.info("listening on %s:%d", host, port)
        await server.serve()
    finally:
        for signum in (signal.SIGHUP, signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        logger.info("shutting down")
        await supervisor.shutdown()
    logger.info("shutdown complete")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        host, port = parse_listen_address(args.listen_address)
    except ValueError as e:
        parser.error(str(e))

    log_storage = RingBufferLogStorage()
    try:
        configure_logging(args.log_level, args.log_file, log_storage)
    except OSError as e:
        print(f"logmonitor: cannot open log file: {e}", file=sys.stderr)
        return 1
    logger.info("starting logmonitor %s", __version__)
    return asyncio.run(run(args.config_file, host, port, log_storage))
