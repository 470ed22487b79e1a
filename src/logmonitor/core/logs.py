"""Structured logger used throughout logmonitor.

Wraps the standard library logger so that structured fields travel as
``extra`` attributes on each LogRecord. Fields come from two places: fields
bound with ``with_fields`` and the task-local log context set with
``bind_log_context`` (each worker task binds its source identifier).
"""

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_log_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "logmonitor_log_context", default=None
)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current task-local log context."""
    return dict(_log_context.get() or {})


def bind_log_context(**fields: Any) -> None:
    """Add fields to the task-local log context.

    asyncio tasks copy the context when created, so fields bound inside a
    task do not leak into the task that spawned it.
    """
    _log_context.set({**get_log_context(), **fields})


def clear_log_context() -> None:
    """Remove all fields from the task-local log context."""
    _log_context.set(None)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind fields for the duration of a ``with`` block."""
    token = _log_context.set({**get_log_context(), **fields})
    try:
        yield
    finally:
        _log_context.reset(token)


class StructuredLogger:
    """Thin wrapper over logging.Logger with bound structured fields.

    Example:
        ```python
        logger = get_logger(__name__)
        logger.with_fields(source="/var/log/syslog").info("worker started")
        ```
    """

    def __init__(
        self, logger: logging.Logger, fields: Mapping[str, Any] | None = None
    ) -> None:
        self._logger = logger
        self._fields = dict(fields or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def with_fields(self, **fields: Any) -> "StructuredLogger":
        """Return a logger that adds the given fields to every record."""
        return StructuredLogger(self._logger, {**self._fields, **fields})

    def isEnabledFor(self, level: int) -> bool:  # noqa: N802
        return self._logger.isEnabledFor(level)

    def _log(
        self, level: int, msg: str, args: tuple[Any, ...], exc_info: bool = False
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {**get_log_context(), **self._fields}
        self._logger.log(
            level, msg, *args, extra=extra or None, exc_info=exc_info, stacklevel=3
        )

    def debug(self, msg: str, *args: Any) -> None:
        self._log(logging.DEBUG, msg, args)

    def info(self, msg: str, *args: Any) -> None:
        self._log(logging.INFO, msg, args)

    def warning(self, msg: str, *args: Any) -> None:
        self._log(logging.WARNING, msg, args)

    def error(self, msg: str, *args: Any) -> None:
        self._log(logging.ERROR, msg, args)

    def exception(self, msg: str, *args: Any) -> None:
        """Log at ERROR level with the active exception attached."""
        self._log(logging.ERROR, msg, args, exc_info=True)


def get_logger(name: str) -> StructuredLogger:
    """Return a StructuredLogger for the given module name."""
    return StructuredLogger(logging.getLogger(name))


def log_exception(message: str, **fields: Any) -> None:
    """Log the active exception under the package logger.

    Args:
        message: Message describing what failed.
        **fields: Additional structured fields.
    """
    get_logger("logmonitor").with_fields(**fields).exception(message)
