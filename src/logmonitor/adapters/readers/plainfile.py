"""Readers following plain files and named pipes.

PlainFileReader starts at the end of the file and follows it across rotation
(the path points to a new inode) and truncation (the file shrank below the
read offset). Changes are picked up through a watchdog observer on the
parent directory, with a bounded wait as a fallback; ``poll: true`` disables
the observer entirely.

PipeReader reads non-seekable sources such as FIFOs and reopens them when
the writer goes away.
"""

import asyncio
import codecs
import os
import stat
from contextlib import suppress
from pathlib import Path
from typing import BinaryIO

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from logmonitor.adapters.readers.options import (
    is_reserved,
    option_bool,
    option_float,
    option_str,
)
from logmonitor.core.errors import OpenError, ReadError, SourceError, StopError
from logmonitor.core.logs import get_logger
from logmonitor.core.models import SourceSpec

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 0.25
# Upper bound on a wait while the observer is active
WATCH_FALLBACK_INTERVAL = 1.0
OBSERVER_JOIN_TIMEOUT = 2.0
PIPE_PRIORITY = 10

_WATCHED_EVENTS = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED}
)


def _decode(raw: bytes, encoding: str) -> str:
    return raw.rstrip(b"\r\n").decode(encoding, errors="replace")


def _encoding_option(spec: SourceSpec) -> str:
    encoding = option_str(spec.source, spec.options, "encoding", "utf-8") or "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError as e:
        raise SourceError(spec.source, f"unknown encoding {encoding!r}") from e
    return encoding


class _ChangeHandler(FileSystemEventHandler):
    """Wakes the reader when the followed path changes.

    Runs on the observer thread and hands over to the event loop.
    """

    def __init__(
        self, path: str, loop: asyncio.AbstractEventLoop, changed: asyncio.Event
    ) -> None:
        self._path = path
        self._loop = loop
        self._changed = changed

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _WATCHED_EVENTS:
            return
        paths = {os.fsdecode(event.src_path), os.fsdecode(event.dest_path or "")}
        if self._path not in paths:
            return
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._changed.set)


class PlainFileReader:
    """Follows a regular file, tail style.

    Options:
        poll: Disable the filesystem observer and only poll (default false).
        poll_interval: Seconds between polls (default 0.25).
        encoding: Text encoding; undecodable bytes are replaced (default utf-8).
    """

    @classmethod
    def match_priority(cls, spec: SourceSpec) -> int:
        if not spec.source or is_reserved(spec.source):
            return -1
        return 0

    def __init__(self, spec: SourceSpec) -> None:
        self.source = spec.source
        self.path = os.path.abspath(spec.source)
        self.poll = option_bool(spec.source, spec.options, "poll", False)
        self.poll_interval = option_float(
            spec.source, spec.options, "poll_interval", DEFAULT_POLL_INTERVAL
        )
        self.encoding = _encoding_option(spec)
        self._file: BinaryIO | None = None
        self._started = False
        self._stopping = False
        self._pending = b""
        self._changed: asyncio.Event | None = None
        self._observer: BaseObserver | None = None
        self._log = logger.with_fields(source=spec.source)

    async def start(self) -> None:
        """Open the file and seek to its end.

        A file that does not exist yet is waited for and read from its start
        once it appears.

        Raises:
            OpenError: If the file cannot be opened or the reader is running.
        """
        if self._started:
            raise OpenError(self.source, "reader already started")
        try:
            self._file = open(self.path, "rb")  # noqa: SIM115
            self._file.seek(0, os.SEEK_END)
        except FileNotFoundError:
            self._file = None
        except OSError as e:
            self._close_file()
            raise OpenError(self.source, f"cannot open file: {e}") from e
        self._started = True
        self._stopping = False
        self._pending = b""
        self._changed = asyncio.Event()
        if not self.poll:
            self._start_observer()
        if self._file is None:
            self._log.info("file does not exist yet, waiting for it")
        else:
            self._log.debug("following file from offset %d", self._file.tell())

    def _start_observer(self) -> None:
        assert self._changed is not None
        handler = _ChangeHandler(
            self.path, asyncio.get_running_loop(), self._changed
        )
        observer = Observer()
        try:
            observer.schedule(handler, str(Path(self.path).parent), recursive=False)
            observer.start()
        except OSError as e:
            self._log.warning("cannot watch file, falling back to polling: %s", e)
            return
        self._observer = observer

    async def read_line(self) -> str:
        """Return the next complete line, or "" once the reader is stopping.

        Raises:
            ReadError: If reading or reopening the file fails.
        """
        while self._started and not self._stopping:
            if self._file is None:
                self._reopen()
            if self._file is not None:
                try:
                    chunk = self._file.readline()
                except OSError as e:
                    raise ReadError(self.source, f"read failed: {e}") from e
                if chunk:
                    self._pending += chunk
                    if chunk.endswith(b"\n"):
                        return self._take_pending()
                    continue
                if self._follow_rotation():
                    if self._pending:
                        return self._take_pending()
                    continue
            await self._wait()
        return ""

    def _take_pending(self) -> str:
        raw, self._pending = self._pending, b""
        return _decode(raw, self.encoding)

    def _follow_rotation(self) -> bool:
        """Switch to a new file or rewind a truncated one.

        Returns:
            True if the read position changed.
        """
        assert self._file is not None
        try:
            current = os.stat(self.path)
            opened = os.fstat(self._file.fileno())
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ReadError(self.source, f"stat failed: {e}") from e
        if (current.st_dev, current.st_ino) != (opened.st_dev, opened.st_ino):
            self._log.info("file rotated, reopening")
            self._close_file()
            self._reopen()
            return self._file is not None
        if opened.st_size < self._file.tell():
            self._log.info("file truncated, reading from the start")
            self._file.seek(0)
            return True
        return False

    def _reopen(self) -> None:
        try:
            self._file = open(self.path, "rb")  # noqa: SIM115
        except FileNotFoundError:
            self._file = None
        except OSError as e:
            self._file = None
            raise ReadError(self.source, f"cannot reopen file: {e}") from e

    async def _wait(self) -> None:
        assert self._changed is not None
        timeout = self.poll_interval
        if self._observer is not None:
            timeout = max(timeout, WATCH_FALLBACK_INTERVAL)
        with suppress(TimeoutError):
            await asyncio.wait_for(self._changed.wait(), timeout)
        self._changed.clear()

    async def stop(self) -> None:
        """Stop the observer, close the file and wake a pending read.

        Raises:
            StopError: If the file cannot be closed.
        """
        if not self._started:
            return
        self._stopping = True
        self._started = False
        if self._changed is not None:
            self._changed.set()
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join, OBSERVER_JOIN_TIMEOUT)
        try:
            self._close_file()
        except OSError as e:
            raise StopError(self.source, f"cannot close file: {e}") from e

    def _close_file(self) -> None:
        file, self._file = self._file, None
        if file is not None:
            file.close()


class PipeReader:
    """Reads a named pipe or another non-seekable source.

    Selected over PlainFileReader for FIFOs and for sources with
    ``pipe: true``. When every writer closes the pipe the reader waits
    ``poll_interval`` and opens it again.

    Options:
        pipe: Force pipe mode (default false).
        poll_interval: Seconds to wait before reopening (default 0.25).
        encoding: Text encoding (default utf-8).
    """

    @classmethod
    def match_priority(cls, spec: SourceSpec) -> int:
        if not spec.source or is_reserved(spec.source):
            return -1
        if spec.options.get("pipe") is True:
            return PIPE_PRIORITY
        try:
            mode = os.stat(spec.source).st_mode
        except OSError:
            return -1
        return PIPE_PRIORITY if stat.S_ISFIFO(mode) else -1

    def __init__(self, spec: SourceSpec) -> None:
        self.source = spec.source
        self.path = spec.source
        option_bool(spec.source, spec.options, "pipe", False)
        self.poll_interval = option_float(
            spec.source, spec.options, "poll_interval", DEFAULT_POLL_INTERVAL
        )
        self.encoding = _encoding_option(spec)
        self._reader: asyncio.StreamReader | None = None
        self._transport: asyncio.ReadTransport | None = None
        self._started = False
        self._stopping = False
        self._wakeup: asyncio.Event | None = None
        self._log = logger.with_fields(source=spec.source)

    async def start(self) -> None:
        """Open the pipe without blocking on a writer.

        Raises:
            OpenError: If the pipe cannot be opened or the reader is running.
        """
        if self._started:
            raise OpenError(self.source, "reader already started")
        self._stopping = False
        self._wakeup = asyncio.Event()
        await self._open()
        self._started = True

    async def _open(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            fd = os.open(self.path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as e:
            raise OpenError(self.source, f"cannot open pipe: {e}") from e
        pipe = os.fdopen(fd, "rb", buffering=0)
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        try:
            transport, _ = await loop.connect_read_pipe(lambda: protocol, pipe)
        except (OSError, ValueError) as e:
            pipe.close()
            raise OpenError(self.source, f"cannot read pipe: {e}") from e
        self._reader = reader
        self._transport = transport

    async def read_line(self) -> str:
        """Return the next line, or "" once the reader is stopping.

        Raises:
            ReadError: If a line exceeds the stream limit or reopening fails.
        """
        while self._started and not self._stopping:
            if self._reader is None:
                try:
                    await self._open()
                except OpenError as e:
                    raise ReadError(self.source, str(e)) from e
            assert self._reader is not None
            try:
                raw = await self._reader.readline()
            except ValueError as e:
                raise ReadError(self.source, f"line too long: {e}") from e
            if raw:
                return _decode(raw, self.encoding)
            self._close_transport()
            if self._stopping:
                break
            self._log.debug("pipe writer closed, reopening")
            await self._wait()
        return ""

    async def _wait(self) -> None:
        assert self._wakeup is not None
        with suppress(TimeoutError):
            await asyncio.wait_for(self._wakeup.wait(), self.poll_interval)

    def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        self._reader = None
        if transport is not None:
            transport.close()

    async def stop(self) -> None:
        """Close the pipe and wake a pending read."""
        if not self._started:
            return
        self._stopping = True
        self._started = False
        if self._wakeup is not None:
            self._wakeup.set()
        try:
            self._close_transport()
        except OSError as e:
            raise StopError(self.source, f"cannot close pipe: {e}") from e
