"""Bridges the standard logging module to logmonitor's outputs.

LogStorageHandler mirrors records into a LogStoragePort so the engine's own
logs can be served at ``/logs``. KeyValueFormatter renders structured fields
as ``key=value`` pairs after the message.
"""

import logging
import sys
import traceback
from typing import Any

from logmonitor.core.models import LogEntry
from logmonitor.core.ports import LogStoragePort

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Return the structured fields attached to a record via ``extra``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_LOGRECORD_ATTRS and not key.startswith("_")
    }


class KeyValueFormatter(logging.Formatter):
    """Formatter appending structured fields as ``key=value`` pairs.

    Example:
        ``2024-05-01 12:00:00,000 INFO logmonitor.core.worker: worker started
        source=/var/log/syslog``
    """

    def __init__(self, fmt: str = DEFAULT_FORMAT) -> None:
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        fields = extra_fields(record)
        if not fields:
            return text
        pairs = " ".join(f"{key}={_quote(value)}" for key, value in fields.items())
        head, sep, tail = text.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


def _quote(value: Any) -> str:
    text = str(value)
    if not text or any(c.isspace() for c in text) or '"' in text:
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


class LogStorageHandler(logging.Handler):
    """Logging handler that writes records to a LogStoragePort.

    Example:
        ```python
        storage = RingBufferLogStorage()
        logging.getLogger("logmonitor").addHandler(LogStorageHandler(storage))
        ```
    """

    def __init__(self, storage: LogStoragePort, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._storage = storage

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._storage.write(self._to_entry(record))
        except Exception:
            self.handleError(record)

    def _to_entry(self, record: logging.LogRecord) -> LogEntry:
        attributes: dict[str, str | int | float | bool] = {
            "logger": record.name,
            "funcName": record.funcName or "",
            "lineno": record.lineno,
        }
        for key, value in extra_fields(record).items():
            if isinstance(value, (str, int, float, bool)):
                attributes[key] = value
            else:
                attributes[key] = str(value)

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                attributes["exc_type"] = exc_type.__name__
            if exc_value is not None:
                attributes["exc_message"] = str(exc_value)
            if exc_tb is not None:
                attributes["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )

        return LogEntry(
            timestamp=record.created,
            level=record.levelname,
            message=record.getMessage(),
            attributes=attributes,
        )


def parse_level(name: str) -> int:
    """Map a ``--log.level`` value to a logging level.

    Raises:
        ValueError: If the name is unknown.
    """
    try:
        return LEVELS[name.lower()]
    except KeyError:
        raise ValueError(
            f"unknown log level {name!r}, expected one of {', '.join(LEVELS)}"
        ) from None


def configure_logging(
    level: int | str = logging.INFO,
    filename: str | None = None,
    log_storage: LogStoragePort | None = None,
) -> logging.Logger:
    """Configure the ``logmonitor`` logger.

    Args:
        level: Level as a number or a name such as "debug".
        filename: Write to this file instead of stderr.
        log_storage: Also mirror records into this storage.

    Returns:
        The configured package logger.
    """
    if isinstance(level, str):
        level = parse_level(level)
    package_logger = logging.getLogger("logmonitor")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    output: logging.Handler
    if filename:
        output = logging.FileHandler(filename, encoding="utf-8")
    else:
        output = logging.StreamHandler(sys.stderr)
    output.setFormatter(KeyValueFormatter())
    package_logger.addHandler(output)
    if log_storage is not None:
        package_logger.addHandler(LogStorageHandler(log_storage))

    package_logger.setLevel(level)
    package_logger.propagate = False
    return package_logger
