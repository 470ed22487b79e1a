"""Unit tests for the logging bridge to log storage."""

import logging
import sys
from pathlib import Path

import pytest

from logmonitor.adapters.logging import (
    KeyValueFormatter,
    LogStorageHandler,
    configure_logging,
    parse_level,
)
from logmonitor.adapters.storage.ring_buffer import RingBufferLogStorage


def _record(msg: str = "test message", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="logmonitor.test",
        level=logging.INFO,
        pathname="",
        lineno=7,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


async def _entries(storage: RingBufferLogStorage) -> list:
    return [e async for e in storage.read()]


@pytest.fixture
def restore_package_logger():
    """Undo configure_logging so later tests still see records in caplog."""
    logger = logging.getLogger("logmonitor")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.mark.core
class TestLogStorageHandler:
    def test_handler_is_logging_handler(self, log_storage) -> None:
        assert isinstance(LogStorageHandler(log_storage), logging.Handler)

    async def test_emit_writes_log_entry(self, log_storage) -> None:
        LogStorageHandler(log_storage).emit(_record())

        (entry,) = await _entries(log_storage)
        assert entry.message == "test message"
        assert entry.level == "INFO"
        assert entry.attributes["logger"] == "logmonitor.test"
        assert entry.attributes["lineno"] == 7

    async def test_extra_fields_become_attributes(self, log_storage) -> None:
        LogStorageHandler(log_storage).emit(_record(source="/a", count=3, obj=[1]))

        (entry,) = await _entries(log_storage)
        assert entry.attributes["source"] == "/a"
        assert entry.attributes["count"] == 3
        assert entry.attributes["obj"] == "[1]"

    async def test_exception_info_is_captured(self, log_storage) -> None:
        try:
            raise ValueError("bad value")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        LogStorageHandler(log_storage).emit(record)

        (entry,) = await _entries(log_storage)
        assert entry.attributes["exc_type"] == "ValueError"
        assert entry.attributes["exc_message"] == "bad value"
        assert "Traceback" in entry.attributes["exc_traceback"]


@pytest.mark.core
class TestKeyValueFormatter:
    def test_appends_fields(self) -> None:
        formatter = KeyValueFormatter("%(levelname)s %(message)s")

        text = formatter.format(_record("worker started", source="/var/log/a b"))

        assert text == 'INFO worker started source="/var/log/a b"'

    def test_no_fields_leaves_message_alone(self) -> None:
        formatter = KeyValueFormatter("%(message)s")

        assert formatter.format(_record("plain")) == "plain"


@pytest.mark.core
class TestConfigureLogging:
    @pytest.mark.parametrize(
        ("name", "level"),
        [("debug", logging.DEBUG), ("INFO", logging.INFO), ("warn", logging.WARNING)],
    )
    def test_parse_level(self, name: str, level: int) -> None:
        assert parse_level(name) == level

    def test_parse_level_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="unknown log level"):
            parse_level("verbose")

    async def test_mirrors_records_into_storage(
        self, log_storage, restore_package_logger, tmp_path: Path
    ) -> None:
        log_file = tmp_path / "logmonitor.log"

        logger = configure_logging("debug", str(log_file), log_storage)
        logging.getLogger("logmonitor.core.worker").info("worker started")

        assert logger.level == logging.DEBUG
        (entry,) = await _entries(log_storage)
        assert entry.message == "worker started"
        for handler in logger.handlers:
            handler.flush()
        assert "worker started" in log_file.read_text(encoding="utf-8")
